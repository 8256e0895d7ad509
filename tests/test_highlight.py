from __future__ import annotations

import pytest

from mdemit.config import RenderConfig
from mdemit.errors import MdemitConfigError
from mdemit.highlight import (
    HighlightResult,
    PygmentsHighlighter,
    resolve_highlighter,
    run_highlighter,
)
from mdemit.renderer import Renderer


def test_run_highlighter_without_hook() -> None:
    assert run_highlighter(None, "x", "py") == HighlightResult(code="x", was_transformed=False)


def test_run_highlighter_none_result() -> None:
    res = run_highlighter(lambda code, lang: None, "x", "py")
    assert res == HighlightResult(code="x", was_transformed=False)


def test_run_highlighter_unchanged_result() -> None:
    res = run_highlighter(lambda code, lang: code, "x", "py")
    assert res.was_transformed is False


def test_run_highlighter_transformed() -> None:
    res = run_highlighter(lambda code, lang: f"<i>{code}</i>", "x", None)
    assert res == HighlightResult(code="<i>x</i>", was_transformed=True)


def test_pygments_highlights_known_language() -> None:
    out = PygmentsHighlighter()("print(1)", "python")
    assert out is not None
    assert "<span" in out
    assert not out.startswith("<pre")
    assert not out.endswith("\n")


def test_pygments_skips_missing_or_unknown_language() -> None:
    hl = PygmentsHighlighter()
    assert hl("x", None) is None
    assert hl("x", "") is None
    assert hl("x", "definitely-not-a-language") is None


def test_pygments_output_is_not_escaped_twice() -> None:
    r = Renderer(RenderConfig(highlight=PygmentsHighlighter()))
    out = r.code("a < b", "python")
    assert out.startswith('<pre><code class="lang-python">')
    assert "&lt;" in out
    assert "&amp;lt;" not in out


def test_resolve_highlighter() -> None:
    assert resolve_highlighter("none") is None
    assert resolve_highlighter("") is None
    assert isinstance(resolve_highlighter("Pygments"), PygmentsHighlighter)


def test_resolve_highlighter_unknown() -> None:
    with pytest.raises(MdemitConfigError, match="Unknown highlighter"):
        resolve_highlighter("highlightjs")
