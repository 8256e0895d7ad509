from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version


def _package_version() -> str:
    try:
        return version("mdemit")
    except PackageNotFoundError:
        # Running from a source checkout, or otherwise not installed.
        return "0.0.0"


__version__ = _package_version()

from mdemit.annotations import text_without_annotations  # noqa: E402
from mdemit.config import RenderConfig  # noqa: E402
from mdemit.document import DocumentRenderer, render_markdown  # noqa: E402
from mdemit.errors import (  # noqa: E402
    MdemitBuildError,
    MdemitConfigError,
    MdemitError,
    MdemitSourceError,
)
from mdemit.renderer import Renderer, TableCellFlags  # noqa: E402
from mdemit.slug import create_id  # noqa: E402

__all__ = [
    "DocumentRenderer",
    "MdemitBuildError",
    "MdemitConfigError",
    "MdemitError",
    "MdemitSourceError",
    "RenderConfig",
    "Renderer",
    "TableCellFlags",
    "__version__",
    "create_id",
    "render_markdown",
    "text_without_annotations",
]
