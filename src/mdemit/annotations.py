"""Inline ``{#id}`` / ``{: .class}`` annotations.

Annotations are written by authors directly in markdown source and survive
tokenization as plain text, so they are recognized here in already-assembled
text. Two shapes exist:

- id tags: ``{#intro}`` or ``{: #intro}``, matched anywhere in the text.
- class tags: ``{: .wide}``, matched together with the character that precedes
  the opening brace (the *anchor*, plus any whitespace in between).

Several constructs can see the same trailing class tag (a paragraph holding an
image, a list whose last item ends the source slice, ...). The anchor is what
decides ownership: each construct filters on it with an `AnchorMustMatch` or
`AnchorMustNotMatch` rule.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_ID_TAG_RE = re.compile(r"\{:?\s*#([^}\n]+)\}")
_CLASS_TAG_RE = re.compile(r"(\S\s*\{):\s*\.([^}\n]+)\}")

# Shapes removed from final output, independent of which tag (if any) a
# construct claimed.
_STRIP_ID_RE = re.compile(r"\{:?\s*#[^}\n]+\}")
_STRIP_CLASS_RE = re.compile(r"\{:\s*\.[^}\n]+\}")


@dataclass(frozen=True, slots=True)
class ClassTag:
    """A class annotation and the anchor text immediately before it."""

    name: str
    anchor: str


@dataclass(frozen=True, slots=True)
class AnchorMustMatch:
    """Claim a class tag only when its anchor matches `pattern`."""

    pattern: re.Pattern[str]

    def accepts(self, anchor: str) -> bool:
        return self.pattern.search(anchor) is not None


@dataclass(frozen=True, slots=True)
class AnchorMustNotMatch:
    """Claim a class tag only when its anchor does not match `pattern`."""

    pattern: re.Pattern[str]

    def accepts(self, anchor: str) -> bool:
        return self.pattern.search(anchor) is None


AnchorRule = AnchorMustMatch | AnchorMustNotMatch

# A list's own tag sits on the line after its last item.
LIST_CLASS_RULE = AnchorMustMatch(re.compile(r".*\n\{"))
# An image's tag directly follows the closing paren of ``![alt](src)``.
IMAGE_CLASS_RULE = AnchorMustMatch(re.compile(r"\)\s*\{"))
# A tag right after a closing HTML tag belongs to that element, not the <p>.
PARAGRAPH_CLASS_RULE = AnchorMustNotMatch(re.compile(r">\s*\{"))


def extract_id(text: str) -> str | None:
    """Return the first id tag's name (untrimmed), or None."""

    m = _ID_TAG_RE.search(text or "")
    return m.group(1) if m else None


def find_class_tag(text: str) -> ClassTag | None:
    """Return the first class tag in `text` with its anchor, or None."""

    m = _CLASS_TAG_RE.search(text or "")
    if m is None:
        return None
    return ClassTag(name=m.group(2), anchor=m.group(1))


def extract_class(text: str, rule: AnchorRule) -> str | None:
    """Return the first class tag's name if `rule` accepts its anchor."""

    tag = find_class_tag(text)
    if tag is None or not rule.accepts(tag.anchor):
        return None
    return tag.name


def text_without_annotations(text: str) -> str:
    """Remove every id and class tag from `text`.

    Removal repeats until nothing matches, so nested leftovers such as
    ``{{#a}#b}`` cannot reassemble into a new tag and the result is stable
    under a second application.
    """

    out = text or ""
    while True:
        out, n_ids = _STRIP_ID_RE.subn("", out)
        out, n_classes = _STRIP_CLASS_RE.subn("", out)
        if not n_ids and not n_classes:
            return out
