"""Serialize a normalized canonical tree to Markdown (GFM) or hypertext."""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import bleach
from bs4 import BeautifulSoup
from markdownify import markdownify as md_convert

from .assets import AssetManifest
from .nodes import (
    BlockNode,
    InlineNode,
    ListBlock,
    Paragraph,
    RootNode,
    Table,
    TableCell,
    TableRow,
)
from .styles import apply_inline_styles, resolve_rules


LOG = logging.getLogger("html2canon")

FORMAT_MARKDOWN = "markdown"
FORMAT_HTML = "html"

MATH_LATEX = "latex"
MATH_NONE = "none"
MATH_IMAGE = "image"

UNSAFE_TAGS = ["script", "style"]
UNSAFE_SCHEMES = ("javascript:", "vbscript:")

ALLOWED_TAGS = frozenset(
    {
        "a", "abbr", "audio", "b", "blockquote", "br", "caption", "cite", "code", "del", "details", "div",
        "em", "figcaption", "figure", "h1", "h2", "h3", "h4", "h5", "h6", "hr", "i", "iframe", "img", "kbd",
        "li", "mark", "ol", "p", "picture", "pre", "q", "s", "section", "source", "span", "strong", "sub",
        "summary", "sup", "table", "tbody", "td", "tfoot", "th", "thead", "tr", "u", "ul", "video",
    }
)
ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "rel", "target"],
    "img": ["src", "srcset", "alt", "title", "width", "height"],
    "iframe": ["src", "title", "width", "height", "allow", "allowfullscreen", "frameborder", "loading"],
    "video": ["src", "poster", "controls", "width", "height"],
    "audio": ["src", "controls"],
    "source": ["src", "srcset", "type", "media"],
    "td": ["colspan", "rowspan", "align"],
    "th": ["colspan", "rowspan", "align"],
    "ol": ["start"],
    "*": ["id", "class", "title"],
}
ALLOWED_PROTOCOLS = frozenset({"http", "https", "mailto"})

MD_ESCAPE_RE = re.compile(r"([\\`*_\[\]<])")
MD_LINE_START_RE = re.compile(r"^([ \t]*)([#>+\-]|\d+[.)])(?=\s|$)", re.MULTILINE)
WHITESPACE_RE = re.compile(r"\s+")
BACKTICK_RUN_RE = re.compile(r"`+")
HARD_BREAK = "\\\n"


@dataclass
class SerializeOptions:
    format: str = FORMAT_MARKDOWN
    url_mapping: Optional[Dict[str, str]] = None
    inline_styles: bool = False
    theme: str = "default"
    styles: Optional[Dict[str, str]] = None
    math_rendering: str = MATH_LATEX
    raw_html: bool = True
    flatten_merged_tables: bool = True


def serialize(tree: RootNode, assets: AssetManifest, options: Optional[SerializeOptions] = None) -> str:
    options = options or SerializeOptions()
    if options.format == FORMAT_MARKDOWN:
        return MarkdownSerializer(assets, options).render(tree)
    if options.format == FORMAT_HTML:
        return HtmlSerializer(assets, options).render(tree)
    raise ValueError(f"Unsupported output format: {options.format}")


def to_markdown(tree: RootNode, assets: AssetManifest, **kwargs) -> str:
    return serialize(tree, assets, SerializeOptions(format=FORMAT_MARKDOWN, **kwargs))


def to_html(tree: RootNode, assets: AssetManifest, **kwargs) -> str:
    return serialize(tree, assets, SerializeOptions(format=FORMAT_HTML, **kwargs))


def sanitize_fragment(markup: str) -> str:
    """Re-emit opaque markup through an allow-list of tags, attributes and URL schemes."""
    soup = BeautifulSoup(markup, "html.parser")
    # bleach keeps the text of stripped tags; script and style bodies must go entirely.
    for tag in soup.find_all(UNSAFE_TAGS):
        tag.decompose()
    return bleach.clean(
        str(soup),
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )


def _is_unsafe_url(url: str) -> bool:
    return url.strip().lower().startswith(UNSAFE_SCHEMES)


class _Serializer:
    def __init__(self, assets: AssetManifest, options: SerializeOptions) -> None:
        self.assets = assets
        self.options = options

    def link_url(self, url: str) -> str:
        mapping = self.options.url_mapping or {}
        return mapping.get(url) or url

    def image_url(self, asset_id: str, original_url: str) -> str:
        return self.assets.image_url(asset_id, self.options.url_mapping, fallback=original_url)

    def formula_image(self, asset_id: Optional[str]) -> Optional[str]:
        if self.options.math_rendering != MATH_IMAGE:
            return None
        entry = self.assets.formula(asset_id)
        if entry is None or not entry.rendered_url:
            return None
        return self.link_url(entry.rendered_url)


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


def escape_markdown(text: str) -> str:
    return MD_ESCAPE_RE.sub(r"\\\1", text)


def _escape_line_starts(text: str) -> str:
    return MD_LINE_START_RE.sub(lambda m: m.group(1) + m.group(2)[:-1] + "\\" + m.group(2)[-1], text)


def _wrap(content: str, marker: str) -> str:
    stripped = content.strip()
    if not stripped:
        return content
    lead = content[: len(content) - len(content.lstrip())]
    trail = content[len(content.rstrip()):]
    return f"{lead}{marker}{stripped}{marker}{trail}"


def _code_span(value: str) -> str:
    value = value.replace("\n", " ")
    longest = max((len(run) for run in BACKTICK_RUN_RE.findall(value)), default=0)
    fence = "`" * (longest + 1)
    pad = " " if value.startswith("`") or value.endswith("`") else ""
    return f"{fence}{pad}{value}{pad}{fence}"


def _destination(url: str, title: Optional[str]) -> str:
    dest = f"<{url}>" if re.search(r"[\s()<>]", url) else url
    if title:
        return f'{dest} "{title.replace(chr(34), chr(92) + chr(34))}"'
    return dest


class MarkdownSerializer(_Serializer):
    def render(self, root: RootNode) -> str:
        return self.blocks(root.children)

    def blocks(self, nodes: Sequence[BlockNode]) -> str:
        rendered = [self.block(node) for node in nodes]
        return "\n\n".join(text for text in rendered if text)

    def block(self, node: BlockNode) -> str:
        method = getattr(self, f"_block_{node.type}", None)
        if method is None:
            LOG.debug("No Markdown rendering for %s", node.type)
            return ""
        return method(node)

    def _block_paragraph(self, node) -> str:
        return _escape_line_starts(self.inlines(node.children).strip())

    def _block_heading(self, node) -> str:
        text = self.inlines(node.children).replace(HARD_BREAK, " ").strip()
        return f"{'#' * node.depth} {text}"

    def _block_blockquote(self, node) -> str:
        inner = self.blocks(node.children)
        return "\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))

    def _block_list(self, node: ListBlock) -> str:
        items: List[str] = []
        number = node.start or 1
        loose = any(len(item.children) > 1 for item in node.children)
        for item in node.children:
            marker = f"{number}. " if node.ordered else "- "
            number += 1
            body = self.blocks(item.children)
            if item.checked is not None:
                body = ("[x] " if item.checked else "[ ] ") + body
            indent = " " * len(marker)
            lines = body.split("\n")
            rendered = [(marker + lines[0]).rstrip()]
            rendered.extend(indent + line if line else "" for line in lines[1:])
            items.append("\n".join(rendered))
        return ("\n\n" if loose else "\n").join(items)

    def _block_codeBlock(self, node) -> str:
        value = node.value.rstrip("\n")
        longest = max((len(run) for run in BACKTICK_RUN_RE.findall(value)), default=0)
        fence = "`" * max(3, longest + 1)
        return f"{fence}{node.lang or ''}\n{value}\n{fence}"

    def _cell(self, cell: TableCell) -> str:
        text = self.inlines(cell.children)
        text = text.replace(HARD_BREAK, "<br>" if self.options.raw_html else " ")
        text = WHITESPACE_RE.sub(" ", text).strip()
        return re.sub(r"(?<!\\)\|", r"\\|", text)

    def _row(self, cells: Sequence[str]) -> str:
        return "| " + " | ".join(cells) + " |"

    def _block_table(self, node: Table) -> str:
        parts: List[str] = []
        rows = node.children
        if (node.has_rowspan or node.has_colspan) and self.options.flatten_merged_tables:
            parts.extend(self._flat_row(row) for row in rows)
        elif rows:
            parts.append(self._gfm_table(node))
        if node.caption:
            parts.append(_escape_line_starts(self.inlines(node.caption).strip()))
        return "\n\n".join(part for part in parts if part)

    def _flat_row(self, row: TableRow) -> str:
        return _escape_line_starts(" | ".join(text for text in (self._cell(cell) for cell in row.children) if text))

    def _gfm_table(self, node: Table) -> str:
        rows = node.children
        columns = max(len(row.children) for row in rows)
        if columns == 0:
            return ""
        header = rows[0].children
        header_cells = [self._cell(cell) for cell in header] + [""] * (columns - len(header))
        delimiter = []
        for index in range(columns):
            align = None
            if node.align and index < len(node.align):
                align = node.align[index]
            if align is None and index < len(header):
                align = header[index].align
            delimiter.append({"left": ":---", "center": ":---:", "right": "---:"}.get(align or "", "---"))
        lines = [self._row(header_cells), self._row(delimiter)]
        lines.extend(self._row([self._cell(cell) for cell in row.children]) for row in rows[1:])
        return "\n".join(lines)

    def _block_thematicBreak(self, node) -> str:
        return "---"

    def _image(self, asset_id: str, alt: Optional[str], title: Optional[str], original_url: str) -> str:
        url = self.image_url(asset_id, original_url)
        return f"![{escape_markdown(alt or '')}]({_destination(url, title)})"

    def _block_imageBlock(self, node) -> str:
        image = self._image(node.asset_id, node.alt, node.title, node.original_url)
        if node.caption:
            return f"{image}\n\n{_wrap(self.inlines(node.caption), '*')}"
        return image

    def _opaque(self, value: str) -> str:
        if self.options.raw_html:
            return value.strip()
        return md_convert(value, heading_style="ATX").strip()

    def _block_htmlBlock(self, node) -> str:
        return self._opaque(node.value)

    def _block_embedBlock(self, node) -> str:
        if node.url:
            label = escape_markdown(node.provider or node.embed_type)
            return f"[{label}]({_destination(self.link_url(node.url), None)})"
        return self._opaque(node.html) if node.html else ""

    def _math(self, tex: str, asset_id: Optional[str], display: bool) -> str:
        if self.options.math_rendering == MATH_NONE:
            return escape_markdown(f"[formula: {tex}]")
        rendered = self.formula_image(asset_id)
        if rendered:
            return f"![formula]({_destination(rendered, None)})"
        if display:
            return f"$$\n{tex}\n$$"
        return f"${tex}$"

    def _block_mathBlock(self, node) -> str:
        return self._math(node.tex, node.asset_id, True)

    def inlines(self, nodes: Sequence[InlineNode]) -> str:
        return "".join(self.inline(node) for node in nodes)

    def inline(self, node: InlineNode) -> str:
        kind = node.type
        if kind == "text":
            return escape_markdown(WHITESPACE_RE.sub(" ", node.value))
        if kind == "strong":
            return _wrap(self.inlines(node.children), "**")
        if kind == "emphasis":
            return _wrap(self.inlines(node.children), "*")
        if kind == "delete":
            return _wrap(self.inlines(node.children), "~~")
        if kind == "inlineCode":
            return _code_span(node.value)
        if kind == "link":
            url = self.link_url(node.url)
            text = self.inlines(node.children).strip() or escape_markdown(url)
            return f"[{text}]({_destination(url, node.title)})"
        if kind == "imageInline":
            return self._image(node.asset_id, node.alt, node.title, node.original_url)
        if kind == "mathInline":
            return self._math(node.tex, node.asset_id, False)
        if kind == "break":
            return HARD_BREAK
        if kind == "htmlInline":
            return self._opaque(node.value)
        LOG.debug("No Markdown rendering for %s", kind)
        return ""


# ---------------------------------------------------------------------------
# Hypertext
# ---------------------------------------------------------------------------


def _attrs(values: Dict[str, object]) -> str:
    parts: List[str] = []
    for key, value in values.items():
        if value is None or value is False:
            continue
        if value is True:
            parts.append(f' {key}=""')
        else:
            parts.append(f' {key}="{html.escape(str(value), quote=True)}"')
    return "".join(parts)


class HtmlSerializer(_Serializer):
    def render(self, root: RootNode) -> str:
        output = self.blocks(root.children)
        if self.options.inline_styles:
            output = apply_inline_styles(output, resolve_rules(self.options.theme, self.options.styles))
        return output

    def blocks(self, nodes: Sequence[BlockNode]) -> str:
        return "".join(self.block(node) for node in nodes)

    def block(self, node: BlockNode) -> str:
        method = getattr(self, f"_block_{node.type}", None)
        if method is None:
            LOG.debug("No HTML rendering for %s", node.type)
            return ""
        return method(node)

    def _block_paragraph(self, node) -> str:
        return f"<p>{self.inlines(node.children)}</p>"

    def _block_heading(self, node) -> str:
        return f"<h{node.depth}>{self.inlines(node.children)}</h{node.depth}>"

    def _block_blockquote(self, node) -> str:
        return f"<blockquote>{self.blocks(node.children)}</blockquote>"

    def _block_list(self, node: ListBlock) -> str:
        tag = "ol" if node.ordered else "ul"
        start = node.start if node.ordered and node.start not in (None, 1) else None
        items: List[str] = []
        for item in node.children:
            checkbox = ""
            if item.checked is not None:
                state = {"type": "checkbox", "disabled": True, "checked": bool(item.checked)}
                checkbox = f"<input{_attrs(state)}> "
            if len(item.children) == 1 and isinstance(item.children[0], Paragraph):
                content = self.inlines(item.children[0].children)
            else:
                content = self.blocks(item.children)
            if checkbox:
                content = content.lstrip()
            items.append(f"<li>{checkbox}{content}</li>")
        return f"<{tag}{_attrs({'start': start})}>{''.join(items)}</{tag}>"

    def _block_codeBlock(self, node) -> str:
        lang = f"language-{node.lang}" if node.lang else None
        return f"<pre><code{_attrs({'class': lang})}>{html.escape(node.value, quote=False)}</code></pre>"

    def _block_table(self, node: Table) -> str:
        rows = node.children
        head_count = 0
        for row in rows:
            if row.children and all(cell.header for cell in row.children):
                head_count += 1
            else:
                break
        parts = ["<table>"]
        if node.caption:
            parts.append(f"<caption>{self.inlines(node.caption)}</caption>")
        if head_count:
            parts.append("<thead>" + "".join(self._tr(row) for row in rows[:head_count]) + "</thead>")
        if rows[head_count:]:
            parts.append("<tbody>" + "".join(self._tr(row) for row in rows[head_count:]) + "</tbody>")
        parts.append("</table>")
        return "".join(parts)

    def _tr(self, row: TableRow) -> str:
        cells = []
        for cell in row.children:
            tag = "th" if cell.header else "td"
            attrs = _attrs(
                {
                    "rowspan": cell.rowspan,
                    "colspan": cell.colspan,
                    "style": f"text-align: {cell.align}" if cell.align else None,
                }
            )
            cells.append(f"<{tag}{attrs}>{self.inlines(cell.children)}</{tag}>")
        return f"<tr>{''.join(cells)}</tr>"

    def _block_thematicBreak(self, node) -> str:
        return "<hr>"

    def _img(self, asset_id: str, alt: Optional[str], title: Optional[str], original_url: str) -> str:
        url = self.image_url(asset_id, original_url)
        return f"<img{_attrs({'src': url, 'alt': alt or '', 'title': title})}>"

    def _block_imageBlock(self, node) -> str:
        image = self._img(node.asset_id, node.alt, node.title, node.original_url)
        if node.caption:
            return f"<figure>{image}<figcaption>{self.inlines(node.caption)}</figcaption></figure>"
        return f"<p>{image}</p>"

    def _opaque(self, value: str) -> str:
        if self.options.raw_html:
            return sanitize_fragment(value)
        return html.escape(BeautifulSoup(value, "html.parser").get_text(), quote=False)

    def _block_htmlBlock(self, node) -> str:
        return self._opaque(node.value)

    def _block_embedBlock(self, node) -> str:
        if self.options.raw_html and node.html:
            return sanitize_fragment(node.html)
        if node.url and not _is_unsafe_url(node.url):
            label = html.escape(node.provider or node.embed_type, quote=False)
            return f"<p><a{_attrs({'href': self.link_url(node.url)})}>{label}</a></p>"
        return ""

    def _math(self, tex: str, asset_id: Optional[str], display: bool) -> str:
        if self.options.math_rendering == MATH_NONE:
            return html.escape(f"[formula: {tex}]", quote=False)
        rendered = self.formula_image(asset_id)
        if rendered:
            return f"<img{_attrs({'src': rendered, 'alt': tex, 'class': 'math-image'})}>"
        tag = "section" if display else "span"
        attrs = _attrs(
            {
                "class": "math-block" if display else "math-inline",
                "data-sync-math": True,
                "data-tex": tex,
                "data-display": "true" if display else "false",
            }
        )
        source = f"$${tex}$$" if display else f"${tex}$"
        return f"<{tag}{attrs}>{html.escape(source, quote=False)}</{tag}>"

    def _block_mathBlock(self, node) -> str:
        content = self._math(node.tex, node.asset_id, True)
        if content.startswith("<section"):
            return content
        return f"<p>{content}</p>"

    def inlines(self, nodes: Sequence[InlineNode]) -> str:
        return "".join(self.inline(node) for node in nodes)

    def inline(self, node: InlineNode) -> str:
        kind = node.type
        if kind == "text":
            return html.escape(node.value, quote=False)
        if kind == "strong":
            return f"<strong>{self.inlines(node.children)}</strong>"
        if kind == "emphasis":
            return f"<em>{self.inlines(node.children)}</em>"
        if kind == "delete":
            return f"<del>{self.inlines(node.children)}</del>"
        if kind == "inlineCode":
            return f"<code>{html.escape(node.value, quote=False)}</code>"
        if kind == "link":
            text = self.inlines(node.children) or html.escape(node.url, quote=False)
            if _is_unsafe_url(node.url):
                return text
            return f"<a{_attrs({'href': self.link_url(node.url), 'title': node.title})}>{text}</a>"
        if kind == "imageInline":
            return self._img(node.asset_id, node.alt, node.title, node.original_url)
        if kind == "mathInline":
            return self._math(node.tex, node.asset_id, False)
        if kind == "break":
            return "<br>"
        if kind == "htmlInline":
            return self._opaque(node.value)
        LOG.debug("No HTML rendering for %s", kind)
        return ""
