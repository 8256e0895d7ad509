"""Heading id slugs."""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

logger = logging.getLogger("mdemit.slug")

_SEPARATOR_RUN_RE = re.compile(r"[\s\]\[!\"#$%&'()*+,./:;<=>?@\\^_`{|}~-]+")
_NON_WORD_RUN_RE = re.compile(r"[^\w]+", re.ASCII)

# Characters encodeURIComponent leaves alone besides ASCII alphanumerics.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def create_id(text: str) -> str:
    """Derive a stable, URL-safe id from heading text.

    >>> create_id("Hello, World!")
    'hello-world'
    >>> create_id("Ünïcode Title")
    '%C3%BCn%C3%AFcode-title'
    """

    slug = _SEPARATOR_RUN_RE.sub("-", (text or "").lower())
    try:
        slug = quote(slug, safe=_URI_COMPONENT_SAFE)
    except UnicodeEncodeError:
        logger.debug("slug %r is not encodable; substituting non-word characters", slug)
        slug = _NON_WORD_RUN_RE.sub("-", slug)
    if slug.endswith("-"):
        slug = slug[:-1]
    return slug
