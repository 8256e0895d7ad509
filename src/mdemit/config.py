"""Render options and project configuration loading.

`RenderConfig` is the immutable option snapshot a `Renderer` is built with.
`load_config` reads a project's `mdemit.toml` and performs light validation;
it is only used by the build/CLI layers, never by the rendering core.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mdemit.errors import MdemitConfigError
from mdemit.highlight import Highlighter, resolve_highlighter

CONFIG_FILENAME = "mdemit.toml"

EXTENSIONS = ("table", "strikethrough", "footnote", "math")


@dataclass(frozen=True, slots=True)
class RenderConfig:
    lang_prefix: str = "lang-"
    # Typographic substitution is done by the tokenizer, not the renderer.
    smartypants: bool = False
    # Prepended to auto-generated heading ids only.
    header_prefix: str = ""
    header_auto_id: bool = True
    xhtml: bool = False
    sanitize_links: bool = False
    highlight: Highlighter | None = None


@dataclass(frozen=True)
class PathsConfig:
    sources: list[str]
    output_dir: str


@dataclass(frozen=True)
class MarkdownConfig:
    extensions: list[str]
    html: bool


@dataclass(frozen=True)
class BuildConfig:
    jobs: int


@dataclass(frozen=True)
class MdemitConfig:
    version: int
    paths: PathsConfig
    render: RenderConfig
    markdown: MarkdownConfig
    build: BuildConfig
    highlighter_name: str = "none"


def find_project_root(start: Path) -> Path:
    """Walk upward from `start` (file or directory) looking for `mdemit.toml`."""

    cur = start
    try:
        if cur.is_file():
            cur = cur.parent
    except OSError:
        cur = cur.parent

    cur = cur.resolve()
    while True:
        if (cur / CONFIG_FILENAME).is_file():
            return cur
        if cur.parent == cur:
            break
        cur = cur.parent

    raise MdemitConfigError("Could not find mdemit.toml by walking upward from start path.")


def _as_table(value: Any, *, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MdemitConfigError(f"Expected [{name}] to be a table.")
    return value


def _as_str_list(value: Any, *, name: str) -> list[str]:
    if not isinstance(value, list) or any(not isinstance(x, str) for x in value):
        raise MdemitConfigError(f"Expected {name} to be a list of strings.")
    return list(value)


def _as_bool(value: Any, *, name: str) -> bool:
    if not isinstance(value, bool):
        raise MdemitConfigError(f"Expected {name} to be a boolean.")
    return value


def _as_int(value: Any, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise MdemitConfigError(f"Expected {name} to be an integer.")
    return value


def _as_str(value: Any, *, name: str) -> str:
    if not isinstance(value, str):
        raise MdemitConfigError(f"Expected {name} to be a string.")
    return value


def _get(tbl: dict[str, Any], key: str, default: Any, conv: Any, *, section: str) -> Any:
    if key not in tbl:
        return default
    return conv(tbl[key], name=f"{section}.{key}")


def load_config(*, root: Path | None = None, config_path: Path | None = None) -> MdemitConfig:
    """Load and validate `mdemit.toml`.

    If neither `root` nor `config_path` are provided, the project root is
    discovered by walking upward from the current working directory.
    """

    if config_path is None:
        if root is None:
            root = find_project_root(Path.cwd())
        config_path = root / CONFIG_FILENAME

    try:
        raw = config_path.read_bytes()
    except FileNotFoundError as e:
        raise MdemitConfigError(f"Missing mdemit.toml at: {config_path}") from e
    except OSError as e:
        raise MdemitConfigError(f"Failed reading config file: {config_path}") from e

    try:
        data = tomllib.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise MdemitConfigError(f"Config is not valid UTF-8: {config_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise MdemitConfigError(f"Invalid TOML in {config_path}: {e}") from e

    version = data.get("version", None)
    if version is None:
        raise MdemitConfigError("Missing required `version = 1` in mdemit.toml.")
    version_i = _as_int(version, name="version")
    if version_i != 1:
        raise MdemitConfigError(f"Unsupported config version: {version_i} (expected 1).")

    paths_tbl = _as_table(data.get("paths"), name="paths")
    render_tbl = _as_table(data.get("render"), name="render")
    markdown_tbl = _as_table(data.get("markdown"), name="markdown")
    build_tbl = _as_table(data.get("build"), name="build")

    sources = _get(paths_tbl, "sources", ["docs"], _as_str_list, section="paths")
    output_dir = _get(paths_tbl, "output_dir", "site", _as_str, section="paths")

    lang_prefix = _get(render_tbl, "lang_prefix", "lang-", _as_str, section="render")
    smartypants = _get(render_tbl, "smartypants", False, _as_bool, section="render")
    header_prefix = _get(render_tbl, "header_prefix", "", _as_str, section="render")
    header_auto_id = _get(render_tbl, "header_auto_id", True, _as_bool, section="render")
    xhtml = _get(render_tbl, "xhtml", False, _as_bool, section="render")
    sanitize_links = _get(render_tbl, "sanitize_links", False, _as_bool, section="render")
    highlighter_name = _get(render_tbl, "highlight", "none", _as_str, section="render")

    extensions = _get(markdown_tbl, "extensions", list(EXTENSIONS), _as_str_list, section="markdown")
    allow_html = _get(markdown_tbl, "html", True, _as_bool, section="markdown")

    jobs = _get(build_tbl, "jobs", 4, _as_int, section="build")

    # Validation
    if not sources:
        raise MdemitConfigError("Invalid config: paths.sources must not be empty.")

    if not output_dir.strip():
        raise MdemitConfigError("Invalid config: paths.output_dir must not be empty.")

    unknown = sorted(set(extensions) - set(EXTENSIONS))
    if unknown:
        raise MdemitConfigError(
            f"Invalid config: unknown markdown.extensions: {', '.join(unknown)} "
            f"(expected any of: {', '.join(EXTENSIONS)})."
        )

    if jobs < 1:
        raise MdemitConfigError("Invalid config: build.jobs must be >= 1.")

    return MdemitConfig(
        version=version_i,
        paths=PathsConfig(sources=sources, output_dir=output_dir),
        render=RenderConfig(
            lang_prefix=lang_prefix,
            smartypants=smartypants,
            header_prefix=header_prefix,
            header_auto_id=header_auto_id,
            xhtml=xhtml,
            sanitize_links=sanitize_links,
            highlight=resolve_highlighter(highlighter_name),
        ),
        markdown=MarkdownConfig(extensions=extensions, html=allow_html),
        build=BuildConfig(jobs=jobs),
        highlighter_name=highlighter_name.strip().lower() or "none",
    )
