"""Syntax highlighting hook for fenced code blocks.

The renderer treats a highlighter as an injected strategy: any callable taking
``(code, lang)`` and returning highlighted HTML, or None for "leave the code
alone". Highlighter output is trusted as already escaped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from mdemit.errors import MdemitConfigError

HIGHLIGHTERS = ("none", "pygments")


class Highlighter(Protocol):
    def __call__(self, code: str, lang: str | None) -> str | None: ...


@dataclass(frozen=True, slots=True)
class HighlightResult:
    code: str
    was_transformed: bool


def run_highlighter(highlighter: Highlighter | None, code: str, lang: str | None) -> HighlightResult:
    """Invoke `highlighter` and report whether it actually changed anything."""

    if highlighter is None:
        return HighlightResult(code=code, was_transformed=False)
    out = highlighter(code, lang)
    if out is None or out == code:
        return HighlightResult(code=code, was_transformed=False)
    return HighlightResult(code=out, was_transformed=True)


class PygmentsHighlighter:
    """Highlight with Pygments, leaving the ``<pre><code>`` shell to the renderer."""

    def __init__(self, *, style: str = "default") -> None:
        self._formatter = HtmlFormatter(nowrap=True, style=style)

    def __call__(self, code: str, lang: str | None) -> str | None:
        if not lang:
            return None
        try:
            lexer = get_lexer_by_name(lang.strip())
        except ClassNotFound:
            return None
        # The renderer appends its own newline before </code>.
        return highlight(code, lexer, self._formatter).rstrip("\n")


def resolve_highlighter(name: str) -> Highlighter | None:
    """Map a configured highlighter name to an instance (None for "none")."""

    key = (name or "none").strip().lower()
    if key == "none":
        return None
    if key == "pygments":
        return PygmentsHighlighter()
    raise MdemitConfigError(
        f"Unknown highlighter: {name!r} (expected one of: {', '.join(HIGHLIGHTERS)})."
    )
