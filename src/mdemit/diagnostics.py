"""Error formatting and actionable hints for CLI output.

Keep this module small and dependency-light: it is imported by the CLI layer
and only depends on the error hierarchy.
"""

from __future__ import annotations

from pathlib import Path

from mdemit.errors import MdemitBuildError, MdemitConfigError, MdemitSourceError


def format_render_failures(failed: dict[Path, list[str]], *, root: Path | None = None) -> str:
    """Format per-page build failures into a human-readable stderr summary."""
    if not failed:
        return ""
    lines = [f"Render failed for {len(failed)} page(s):\n"]
    for path in sorted(failed):
        shown = path
        if root is not None and path.is_relative_to(root):
            shown = path.relative_to(root)
        lines.append(f"  {shown}:")
        for err in failed[path]:
            lines.append(f"    - {err}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def format_hint(exc: BaseException) -> str | None:
    """Return an actionable hint for a known error, or None."""
    msg = str(exc)

    if isinstance(exc, MdemitConfigError):
        if "mdemit.toml" in msg and "find" in msg.lower():
            return "create an mdemit.toml with `version = 1` in your project root, or pass --config"
        if "highlighter" in msg.lower():
            return 'set [render] highlight to "none" or "pygments"'
        return None

    if isinstance(exc, MdemitSourceError):
        return "check [paths] sources in mdemit.toml (entries are relative to the project root)"

    if isinstance(exc, MdemitBuildError):
        return "re-run with --verbose to see per-page log output"

    if isinstance(exc, ImportError) and "watchfiles" in msg:
        return "install the watch extra: pip install mdemit[watch]"

    return None


def format_error_with_hint(exc: BaseException) -> str:
    """Format error message + optional hint for stderr output."""
    msg = (str(exc) or repr(exc)).strip()
    result = f"error: {msg}"
    hint = format_hint(exc)
    if hint:
        result += f"\nhint: {hint}"
    return result
