"""Per-construct HTML emission.

`Renderer` has one method per markdown construct. Text arguments are expected
to be rendered (and escaped) already by the caller; `raw` arguments carry the
untouched source slice a construct came from and are only used to read
annotations and derive ids. Every method is a pure function of its arguments
and the renderer's frozen `RenderConfig`, so one instance may be shared freely
between threads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from mdemit.annotations import (
    IMAGE_CLASS_RULE,
    LIST_CLASS_RULE,
    PARAGRAPH_CLASS_RULE,
    extract_class,
    extract_id,
    text_without_annotations,
)
from mdemit.config import RenderConfig
from mdemit.escaping import escape, is_safe_link
from mdemit.highlight import run_highlighter
from mdemit.slug import create_id

logger = logging.getLogger("mdemit.renderer")

Align = Literal["left", "right", "center"]


@dataclass(frozen=True, slots=True)
class TableCellFlags:
    header: bool = False
    align: Align | None = None


def _id_attr(value: str | None) -> str:
    return f' id="{escape(value)}"' if value else ""


def _class_attr(value: str | None) -> str:
    return f' class="{escape(value)}"' if value else ""


class Renderer:
    def __init__(self, config: RenderConfig | None = None) -> None:
        self._config = config if config is not None else RenderConfig()

    @property
    def config(self) -> RenderConfig:
        return self._config

    def __getattr__(self, name: str):
        # `del` is a keyword; the markdown name resolves to `del_`.
        if name == "del":
            return self.del_
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    # -- block level -------------------------------------------------------

    def code(self, code: str, lang: str | None = None, escaped: bool = False) -> str:
        result = run_highlighter(self._config.highlight, code, lang)
        if result.was_transformed:
            code = result.code
            escaped = True

        body = code if escaped else escape(code, encode=True)
        if not lang:
            return f"<pre><code>{body}\n</code></pre>"

        css = self._config.lang_prefix + escape(lang, encode=True)
        return f'<pre><code class="{css}">{body}\n</code></pre>\n'

    def blockquote(self, quote: str) -> str:
        return f"<blockquote>\n{quote}</blockquote>\n"

    def html(self, html: str) -> str:
        return html

    def heading(self, text: str, level: int, raw: str) -> str:
        """Emit ``<hN>``, preferring an explicit ``{#id}`` over the auto slug."""

        heading_id = extract_id(raw)
        if not heading_id and self._config.header_auto_id:
            heading_id = self._config.header_prefix + create_id(raw)
        return f"<h{level}{_id_attr(heading_id)}>{text_without_annotations(text)}</h{level}>\n"

    def hr(self) -> str:
        return "<hr/>\n" if self._config.xhtml else "<hr>\n"

    def list(self, body: str, ordered: bool = False) -> str:
        tag = "ol" if ordered else "ul"
        list_id = extract_id(body)
        list_class = extract_class(body, LIST_CLASS_RULE)
        return (
            f"<{tag}{_id_attr(list_id)}{_class_attr(list_class)}>\n"
            f"{text_without_annotations(body)}</{tag}>\n"
        )

    def listitem(self, text: str) -> str:
        return f"<li>{text}</li>\n"

    def paragraph(self, text: str) -> str:
        # A tag anchored on a closing ">" belongs to the element before it.
        para_class = extract_class(text, PARAGRAPH_CLASS_RULE)
        text = text.replace("\\\n", self.br())
        return f"<p{_class_attr(para_class)}>{text_without_annotations(text)}</p>\n"

    def table(self, header: str, body: str) -> str:
        return (
            "<table>\n"
            f"<thead>\n{header}</thead>\n"
            f"<tbody>\n{body}</tbody>\n"
            "</table>\n"
        )

    def tablerow(self, content: str) -> str:
        return f"<tr>\n{content}</tr>\n"

    def tablecell(self, content: str, flags: TableCellFlags | None = None) -> str:
        flags = flags or TableCellFlags()
        tag = "th" if flags.header else "td"
        if flags.align:
            return f'<{tag} style="text-align:{flags.align}">{content}</{tag}>\n'
        return f"<{tag}>{content}</{tag}>\n"

    def math(self, content: str, language: str, display: bool = False) -> str:
        mode = "; mode=display" if display else ""
        return f'<script type="{language}{mode}">{content}</script>'

    def footnote(self, refname: str, text: str) -> str:
        return (
            f'<blockquote id="fn_{refname}">\n'
            f"<sup>{refname}</sup>. {text}"
            f'<a href="#reffn_{refname}" title="Jump back to footnote [{refname}] in the text.">'
            " &#8617;</a>\n"
            "</blockquote>\n"
        )

    # -- span level --------------------------------------------------------

    def strong(self, text: str) -> str:
        return f"<strong>{text}</strong>"

    def em(self, text: str) -> str:
        return f"<em>{text}</em>"

    def codespan(self, text: str) -> str:
        return f"<code>{text}</code>"

    def br(self) -> str:
        return "<br/>" if self._config.xhtml else "<br>"

    def del_(self, text: str) -> str:
        return f"<del>{text}</del>"

    def reffn(self, refname: str) -> str:
        return f'<sup><a href="#fn_{refname}" id="reffn_{refname}">{refname}</a></sup>'

    def link(self, href: str, title: str | None, text: str, raw: str | None = None) -> str:
        if self._config.sanitize_links and not is_safe_link(href):
            logger.debug("suppressed link with unsafe or undecodable href %r", href)
            return ""
        out = f'<a href="{href}"'
        if title:
            out += f' title="{title}"'
        return out + f">{text}</a>"

    def image(self, href: str, title: str | None, text: str, raw: str | None = None) -> str:
        img_class = extract_class(raw or "", IMAGE_CLASS_RULE)
        out = f'<img src="{href}" alt="{text}"'
        if title:
            out += f' title="{title}"'
        out += _class_attr(img_class)
        return out + ("/>" if self._config.xhtml else ">")

