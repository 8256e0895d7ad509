"""HTML escaping and link-protocol sanitization.

Two escaping modes are used by the renderer:

- ``escape(text)`` for text that may already contain entity references: a bare
  ``&`` is encoded but ``&amp;``/``&#39;``-style references are left alone.
- ``escape(text, encode=True)`` for verbatim text (code bodies, attribute
  values built from raw input): every ``&`` is encoded.
"""

from __future__ import annotations

import html
import re
from urllib.parse import unquote

_AMP_RE = re.compile(r"&(?!#?\w+;)")
_MALFORMED_PERCENT_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_NON_PROTOCOL_RE = re.compile(r"[^\w:]", re.ASCII)

UNSAFE_PROTOCOLS: tuple[str, ...] = ("javascript:",)


def escape(text: str, *, encode: bool = False) -> str:
    """Escape ``& < > " '`` for use in HTML text or attribute positions."""

    if encode:
        out = text.replace("&", "&amp;")
    else:
        out = _AMP_RE.sub("&amp;", text)
    return (
        out.replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )


def unescape(text: str) -> str:
    """Decode HTML character references (named, decimal and hex)."""

    return html.unescape(text)


def decode_uri_component(text: str) -> str:
    """Percent-decode `text` strictly.

    Raises ValueError for a ``%`` not followed by two hex digits, and
    UnicodeDecodeError when the decoded bytes are not valid UTF-8.
    """

    if _MALFORMED_PERCENT_RE.search(text):
        raise ValueError(f"malformed percent-escape in {text!r}")
    return unquote(text, encoding="utf-8", errors="strict")


def link_protocol(href: str) -> str | None:
    """Return the normalized form of `href` used for protocol checks.

    The href is HTML-unescaped, URI-decoded, stripped of everything except
    ``[A-Za-z0-9_:]`` and lower-cased, so ``java&#115;cript:`` and
    ``JaVa%20Script:`` both normalize to ``javascript:...``. Returns None when
    the href cannot be decoded.
    """

    try:
        decoded = decode_uri_component(unescape(href))
    except ValueError:
        # UnicodeDecodeError is a ValueError subclass.
        return None
    return _NON_PROTOCOL_RE.sub("", decoded).lower()


def is_safe_link(href: str) -> bool:
    """True unless `href` is undecodable or uses a script-injection protocol."""

    protocol = link_protocol(href)
    if protocol is None:
        return False
    return not protocol.startswith(UNSAFE_PROTOCOLS)
