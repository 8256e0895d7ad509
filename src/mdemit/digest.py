"""Stable digests for incremental build decisions.

Every built page starts with a one-line stamp::

    <!-- mdemit:digest=sha256:<hex> -->

The digest covers the markdown text and every setting that can change the
emitted HTML, so a page is rebuilt when either changes.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Iterable

from mdemit.config import RenderConfig

STAMP_PREFIX = "<!-- mdemit:digest="
_STAMP_RE = re.compile(r"\A<!-- mdemit:digest=(sha256:[0-9a-f]{64}) -->\n")


def _highlighter_key(render: RenderConfig) -> str | None:
    if render.highlight is None:
        return None
    h = render.highlight
    return f"{type(h).__module__}.{type(h).__qualname__}"


def settings_fingerprint(
    render: RenderConfig,
    *,
    extensions: Iterable[str],
    html: bool,
) -> dict[str, object]:
    """Return a JSON-serializable view of everything that shapes the output."""

    return {
        "lang_prefix": render.lang_prefix,
        "smartypants": render.smartypants,
        "header_prefix": render.header_prefix,
        "header_auto_id": render.header_auto_id,
        "xhtml": render.xhtml,
        "sanitize_links": render.sanitize_links,
        "highlight": _highlighter_key(render),
        "extensions": sorted(set(extensions)),
        "html": html,
    }


def source_digest(text: str, fingerprint: dict[str, object]) -> str:
    """sha256 over the settings fingerprint and the normalized markdown text."""

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    payload = {"settings": fingerprint, "source": normalized}
    data = json.dumps(payload, sort_keys=True, ensure_ascii=True, separators=(",", ":"))
    return "sha256:" + hashlib.sha256(data.encode("utf-8")).hexdigest()


def format_stamp(digest: str) -> str:
    if not digest.startswith("sha256:"):
        digest = "sha256:" + digest
    return f"{STAMP_PREFIX}{digest} -->\n"


def extract_digest(html: str) -> str | None:
    """Return the digest stamped on the first line of `html`, or None."""

    m = _STAMP_RE.match(html or "")
    return m.group(1) if m else None
