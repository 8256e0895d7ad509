"""Render whole markdown documents through `Renderer`.

Tokenizing is delegated to markdown-it-py. Its token stream is folded into a
`SyntaxTreeNode` tree which is rendered bottom-up: children first, then the
matching `Renderer` operation with the rendered children as its text. Leaf
text is escaped here, exactly once. The `raw` source slices passed alongside
stay unescaped; the renderer escapes any annotation value it puts in an
attribute.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode
from mdit_py_plugins.dollarmath import dollarmath_plugin
from mdit_py_plugins.footnote import footnote_plugin

from mdemit.config import EXTENSIONS, RenderConfig
from mdemit.escaping import escape
from mdemit.renderer import Align, Renderer, TableCellFlags

logger = logging.getLogger("mdemit.document")

MATH_LANGUAGE = "math/tex"

_ALIGN_RE = re.compile(r"text-align:\s*(left|right|center)")
_ALIGNMENTS: dict[str, Align] = {"left": "left", "right": "right", "center": "center"}
_DISPLAY_MATH = frozenset({"math_block", "math_block_label", "math_inline_double"})


def create_parser(
    extensions: Iterable[str] = EXTENSIONS,
    *,
    html: bool = True,
    typographer: bool = False,
) -> MarkdownIt:
    """Build a CommonMark parser with the requested extensions enabled."""

    wanted = set(extensions)
    unknown = sorted(wanted - set(EXTENSIONS))
    if unknown:
        raise ValueError(f"unknown markdown extensions: {', '.join(unknown)}")

    md = MarkdownIt("commonmark", {"html": html, "typographer": typographer})
    if "table" in wanted:
        md.enable("table")
    if "strikethrough" in wanted:
        md.enable("strikethrough")
    if typographer:
        md.enable(["replacements", "smartquotes"])
    if "footnote" in wanted:
        md.use(footnote_plugin)
    if "math" in wanted:
        md.use(dollarmath_plugin)
    return md


def _plain_text(node: SyntaxTreeNode) -> str:
    if node.type in ("text", "code_inline", "math_inline"):
        return node.content
    if node.type in ("softbreak", "hardbreak"):
        return "\n"
    return "".join(_plain_text(child) for child in node.children)


def _enclosing_inline(node: SyntaxTreeNode) -> SyntaxTreeNode | None:
    cur = node.parent
    while cur is not None and cur.type != "inline":
        cur = cur.parent
    return cur


def _image_source_slice(node: SyntaxTreeNode) -> str:
    """Source text from this image up to the next image in the same inline."""

    inline = _enclosing_inline(node)
    if inline is None:
        return ""
    source = inline.content
    needle = f"![{node.content}]"
    # Earlier images with the same alt text own the earlier occurrences.
    ordinal = 0
    for other in inline.walk(include_self=False):
        if other is node:
            break
        if other.type == "image" and other.content == node.content:
            ordinal += 1
    start = -1
    for _ in range(ordinal + 1):
        start = source.find(needle, start + 1)
        if start < 0:
            return source
    end = source.find("![", start + 2)
    return source[start:] if end < 0 else source[start:end]


class DocumentRenderer:
    def __init__(self, renderer: Renderer | None = None, parser: MarkdownIt | None = None) -> None:
        self.renderer = renderer if renderer is not None else Renderer()
        if parser is None:
            parser = create_parser(typographer=self.renderer.config.smartypants)
        self.parser = parser

    def render(self, source: str) -> str:
        tokens = self.parser.parse(source or "")
        return self._render_children(SyntaxTreeNode(tokens))

    def _render_children(self, node: SyntaxTreeNode) -> str:
        return "".join(self._render_node(child) for child in node.children)

    def _render_node(self, node: SyntaxTreeNode) -> str:
        handler = getattr(self, f"_render_{node.type}", None)
        if handler is None:
            logger.debug("no handler for %r; rendering children", node.type)
            if node.children:
                return self._render_children(node)
            return escape(node.content or "", encode=True)
        return handler(node)

    # -- block level -------------------------------------------------------

    def _render_paragraph(self, node: SyntaxTreeNode) -> str:
        text = self._render_children(node)
        if node.hidden:
            # Tight list items carry their text without a <p>.
            return text
        return self.renderer.paragraph(text)

    def _render_heading(self, node: SyntaxTreeNode) -> str:
        raw = "".join(child.content for child in node.children if child.type == "inline")
        return self.renderer.heading(self._render_children(node), int(node.tag[1:]), raw)

    def _render_blockquote(self, node: SyntaxTreeNode) -> str:
        return self.renderer.blockquote(self._render_children(node))

    def _render_bullet_list(self, node: SyntaxTreeNode) -> str:
        return self.renderer.list(self._render_children(node), False)

    def _render_ordered_list(self, node: SyntaxTreeNode) -> str:
        return self.renderer.list(self._render_children(node), True)

    def _render_list_item(self, node: SyntaxTreeNode) -> str:
        return self.renderer.listitem(self._render_children(node))

    def _render_fence(self, node: SyntaxTreeNode) -> str:
        info = (node.info or "").strip()
        lang = info.split()[0] if info else None
        return self.renderer.code(_strip_final_newline(node.content), lang, False)

    def _render_code_block(self, node: SyntaxTreeNode) -> str:
        return self.renderer.code(_strip_final_newline(node.content), None, False)

    def _render_hr(self, node: SyntaxTreeNode) -> str:
        return self.renderer.hr()

    def _render_html_block(self, node: SyntaxTreeNode) -> str:
        return self.renderer.html(node.content)

    def _render_table(self, node: SyntaxTreeNode) -> str:
        header = ""
        body = ""
        for section in node.children:
            if section.type == "thead":
                header += self._render_children(section)
            elif section.type == "tbody":
                body += self._render_children(section)
        return self.renderer.table(header, body)

    def _render_tr(self, node: SyntaxTreeNode) -> str:
        return self.renderer.tablerow(self._render_children(node))

    def _render_th(self, node: SyntaxTreeNode) -> str:
        return self._render_cell(node, header=True)

    def _render_td(self, node: SyntaxTreeNode) -> str:
        return self._render_cell(node, header=False)

    def _render_cell(self, node: SyntaxTreeNode, *, header: bool) -> str:
        m = _ALIGN_RE.search(str(node.attrs.get("style", "")))
        flags = TableCellFlags(header=header, align=_ALIGNMENTS[m.group(1)] if m else None)
        return self.renderer.tablecell(self._render_children(node), flags)

    def _render_math_block(self, node: SyntaxTreeNode) -> str:
        return self.renderer.math(node.content, MATH_LANGUAGE, True) + "\n"

    _render_math_block_label = _render_math_block

    def _render_footnote_block(self, node: SyntaxTreeNode) -> str:
        out = []
        for item in node.children:
            if item.type != "footnote":
                continue
            out.append(self.renderer.footnote(_footnote_name(item), self._render_children(item)))
        return "".join(out)

    def _render_footnote_anchor(self, node: SyntaxTreeNode) -> str:
        # Renderer.footnote emits its own back-link.
        return ""

    # -- span level --------------------------------------------------------

    def _render_inline(self, node: SyntaxTreeNode) -> str:
        return self._render_children(node)

    def _render_text(self, node: SyntaxTreeNode) -> str:
        return escape(node.content, encode=True)

    def _render_softbreak(self, node: SyntaxTreeNode) -> str:
        return "\n"

    def _render_hardbreak(self, node: SyntaxTreeNode) -> str:
        return self.renderer.br() + "\n"

    def _render_html_inline(self, node: SyntaxTreeNode) -> str:
        return self.renderer.html(node.content)

    def _render_strong(self, node: SyntaxTreeNode) -> str:
        return self.renderer.strong(self._render_children(node))

    def _render_em(self, node: SyntaxTreeNode) -> str:
        return self.renderer.em(self._render_children(node))

    def _render_s(self, node: SyntaxTreeNode) -> str:
        return self.renderer.del_(self._render_children(node))

    def _render_code_inline(self, node: SyntaxTreeNode) -> str:
        return self.renderer.codespan(escape(node.content, encode=True))

    def _render_link(self, node: SyntaxTreeNode) -> str:
        href = escape(str(node.attrs.get("href", "")), encode=True)
        title = node.attrs.get("title")
        return self.renderer.link(
            href,
            escape(str(title), encode=True) if title else None,
            self._render_children(node),
            "",
        )

    def _render_image(self, node: SyntaxTreeNode) -> str:
        href = escape(str(node.attrs.get("src", "")), encode=True)
        title = node.attrs.get("title")
        return self.renderer.image(
            href,
            escape(str(title), encode=True) if title else None,
            escape(_plain_text(node), encode=True),
            _image_source_slice(node),
        )

    def _render_math_inline(self, node: SyntaxTreeNode) -> str:
        return self.renderer.math(node.content, MATH_LANGUAGE, node.type in _DISPLAY_MATH)

    _render_math_inline_double = _render_math_inline

    def _render_footnote_ref(self, node: SyntaxTreeNode) -> str:
        return self.renderer.reffn(_footnote_name(node))


def _strip_final_newline(text: str) -> str:
    return text[:-1] if text.endswith("\n") else text


def _footnote_name(node: SyntaxTreeNode) -> str:
    meta = node.meta or {}
    label = meta.get("label")
    if label:
        return escape(str(label), encode=True)
    return str(int(meta.get("id", 0)) + 1)


def render_markdown(
    source: str,
    config: RenderConfig | None = None,
    *,
    extensions: Sequence[str] = EXTENSIONS,
    html: bool = True,
) -> str:
    """Render a markdown document to HTML in one call."""

    renderer = Renderer(config)
    parser = create_parser(extensions, html=html, typographer=renderer.config.smartypants)
    return DocumentRenderer(renderer, parser).render(source)
