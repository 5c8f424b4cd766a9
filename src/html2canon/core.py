"""Core pipeline for html2canon: markup fragment -> canonical tree + asset manifest."""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Union

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PageElement, PreformattedString, Tag
from soupsieve import SelectorSyntaxError

from .assets import AssetManifest, AssetRegistry, ImageEntry
from .detectors import class_list, detect_embed, detect_math, is_math_rendering
from .nodes import (
    AnyNode,
    Blockquote,
    Break,
    CodeBlock,
    Converted,
    Delete,
    Emphasis,
    Heading,
    HtmlBlock,
    HtmlInline,
    ImageBlock,
    ImageInline,
    InlineCode,
    Link,
    ListBlock,
    ListItem,
    Paragraph,
    RootNode,
    Strong,
    Table,
    Text,
    ThematicBreak,
    walk,
)
from .normalize import normalize
from .tables import convert_table
from .urls import validate_base_url

LOG = logging.getLogger("html2canon")

PRESERVE_UNKNOWN_HTML_ENV = "HTML2CANON_PRESERVE_UNKNOWN_HTML"

BLOCK = "block"
INLINE = "inline"

IGNORED_TAGS = frozenset(
    {
        "script",
        "style",
        "noscript",
        "nav",
        "footer",
        "aside",
        "header",
        "form",
        "button",
        "input",
        "template",
        "head",
        "title",
    }
)
CONTAINER_TAGS = frozenset({"div", "section", "article", "main", "span"})
LAZY_SRC_ATTRS = ("data-src", "data-original", "data-lazy-src", "data-actualsrc")
SVG_PLACEHOLDER_PREFIX = "data:image/svg+xml"
CODE_LANG_RE = re.compile(r"^(?:language|lang)-([\w+#.-]+)$")
LEADING_INT_RE = re.compile(r"^\s*(\d+)")
WHITESPACE_RE = re.compile(r"\s+")
# Elements nested deeper than this are flattened to their text.
MAX_NESTING_DEPTH = 100

ElementHandler = Callable[[Tag, "ConversionContext"], Converted]


class ConversionError(ValueError):
    """Raised only when a conversion cannot start at all."""


def _env_flag_enabled(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() not in {"", "0", "false", "off", "no"}


def preserve_unknown_html_default() -> bool:
    return _env_flag_enabled(os.environ.get(PRESERVE_UNKNOWN_HTML_ENV))


def _resolve_log_level(verbose: bool, debug: bool) -> int:
    return logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)


def _configure_html2canon_logger(level: int) -> None:
    LOG.setLevel(level)
    LOG.propagate = False
    if not LOG.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        handler.setLevel(level)
        LOG.addHandler(handler)
    else:
        for handler in LOG.handlers:
            handler.setLevel(level)
            if handler.formatter is None:
                handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))


def setup_logging(verbose: bool, debug: bool) -> None:
    level = _resolve_log_level(verbose, debug)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    _configure_html2canon_logger(level)


@dataclass
class ConversionOptions:
    base_url: Optional[str] = None
    content_selector: Optional[str] = None
    preserve_unknown_html: bool = False
    custom_handlers: Dict[str, ElementHandler] = field(default_factory=dict)


@dataclass
class ConversionMetrics:
    images: int = 0
    formulas: int = 0
    embeds: int = 0
    tables: int = 0
    code_blocks: int = 0
    word_count: int = 0
    processing_time: float = 0.0


@dataclass
class ConversionResult:
    tree: RootNode
    assets: AssetManifest
    metrics: ConversionMetrics
    title: Optional[str] = None

    @property
    def cover(self) -> Optional[ImageEntry]:
        return self.assets.images[0] if self.assets.images else None

    def summary(self, max_length: int = 200) -> str:
        texts: List[str] = []
        length = 0
        for block in self.tree.children:
            if length >= max_length:
                break
            text = "".join(node.value for node in walk(block) if isinstance(node, Text))
            texts.append(text)
            length += len(text)
        summary = WHITESPACE_RE.sub(" ", " ".join(texts)).strip()
        if len(summary) > max_length:
            summary = summary[:max_length] + "..."
        return summary


class ConversionContext:
    """State shared by one conversion: options plus the asset registry."""

    def __init__(self, options: Optional[ConversionOptions] = None) -> None:
        self.options = options or ConversionOptions()
        self.registry = AssetRegistry(self.options.base_url)
        self.depth = 0

    @property
    def assets(self) -> AssetManifest:
        return self.registry.manifest

    def convert_children(self, parent: Tag, mode: str = BLOCK) -> List[AnyNode]:
        return convert_children(parent, self, mode)


# ---------------------------------------------------------------------------
# Tree walk
# ---------------------------------------------------------------------------


def _extend(result: List[AnyNode], converted: Converted) -> None:
    if converted is None:
        return
    items = converted if isinstance(converted, list) else [converted]
    for item in items:
        if isinstance(item, Text) and not item.value:
            continue
        result.append(item)


def convert_children(parent: Tag, ctx: ConversionContext, mode: str) -> List[AnyNode]:
    result: List[AnyNode] = []
    for child in list(parent.children):
        _extend(result, convert_node(child, ctx, mode))
    return result


def convert_node(node: PageElement, ctx: ConversionContext, mode: str) -> Converted:
    if isinstance(node, Tag):
        return convert_element(node, ctx, mode)
    if isinstance(node, PreformattedString):
        return None
    if isinstance(node, NavigableString):
        text = str(node)
        if not text.strip():
            # Separates inline siblings; blank runs are dropped by normalize.
            return Text(" ")
        return Text(text)
    return None


def convert_element(tag: Tag, ctx: ConversionContext, mode: str) -> Converted:
    if ctx.depth >= MAX_NESTING_DEPTH:
        return _flatten_deep(tag, ctx, mode)
    ctx.depth += 1
    try:
        return _dispatch_element(tag, ctx, mode)
    finally:
        ctx.depth -= 1


def _flatten_deep(tag: Tag, ctx: ConversionContext, mode: str) -> Converted:
    LOG.debug("Flattening <%s> nested deeper than %d levels", tag.name, MAX_NESTING_DEPTH)
    if ctx.options.preserve_unknown_html:
        if mode == BLOCK:
            return HtmlBlock(value=str(tag))
        return HtmlInline(value=str(tag))
    text = tag.get_text(" ")
    return Text(text) if text.strip() else None


def _dispatch_element(tag: Tag, ctx: ConversionContext, mode: str) -> Converted:
    name = (tag.name or "").lower()

    handler = ctx.options.custom_handlers.get(name)
    if handler is not None:
        return handler(tag, ctx)

    math = detect_math(tag, ctx.registry)
    if math is not None:
        return math
    if is_math_rendering(tag):
        return None

    embed = detect_embed(tag, ctx.registry)
    if embed is not None:
        return embed

    converter = TAG_CONVERTERS.get(name)
    if converter is not None:
        return converter(tag, ctx, mode)
    if name in IGNORED_TAGS:
        return None
    if name in CONTAINER_TAGS:
        return _convert_container(tag, ctx, mode)
    return _convert_unknown(tag, ctx, mode)


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


def _convert_heading(tag: Tag, ctx: ConversionContext, mode: str) -> Heading:
    depth = int(tag.name[1])
    return Heading(depth=depth, children=convert_children(tag, ctx, INLINE))


def _convert_paragraph(tag: Tag, ctx: ConversionContext, mode: str) -> Optional[Paragraph]:
    children = convert_children(tag, ctx, INLINE)
    if not children:
        return None
    return Paragraph(children=children)


def _convert_blockquote(tag: Tag, ctx: ConversionContext, mode: str) -> Blockquote:
    return Blockquote(children=convert_children(tag, ctx, BLOCK))


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    match = LEADING_INT_RE.match(str(value))
    return int(match.group(1)) if match else None


def _convert_list(tag: Tag, ctx: ConversionContext, mode: str) -> ListBlock:
    ordered = tag.name == "ol"
    start = (_parse_int(tag.get("start")) or 1) if ordered else None
    items = [_convert_list_item(li, ctx, BLOCK) for li in tag.find_all("li", recursive=False)]
    return ListBlock(ordered=ordered, start=start, children=items)


def _leading_checkbox(li: Tag) -> Optional[Tag]:
    """The item's own checkbox, when no visible text comes before it."""
    for node in li.descendants:
        if isinstance(node, NavigableString):
            if not isinstance(node, PreformattedString) and node.strip():
                return None
            continue
        if node.name != "input" or (node.get("type") or "").lower() != "checkbox":
            continue
        if node.find_parent("li") is li:
            return node
    return None


def _convert_list_item(tag: Tag, ctx: ConversionContext, mode: str) -> ListItem:
    checked: Optional[bool] = None
    checkbox = _leading_checkbox(tag)
    if checkbox is not None:
        checked = checkbox.has_attr("checked")
    return ListItem(checked=checked, children=convert_children(tag, ctx, BLOCK))


def _code_language(tag: Tag) -> Optional[str]:
    for cls in class_list(tag):
        match = CODE_LANG_RE.match(cls)
        if match:
            return match.group(1)
    lang = (tag.get("data-lang") or "").strip()
    return lang or None


def _convert_code_block(tag: Tag, ctx: ConversionContext, mode: str) -> CodeBlock:
    code = tag.find("code") or tag
    lang = _code_language(code) or (_code_language(tag) if code is not tag else None)
    return CodeBlock(value=code.get_text(), lang=lang)


def _convert_table(tag: Tag, ctx: ConversionContext, mode: str) -> Table:
    return convert_table(tag, lambda cell: convert_children(cell, ctx, INLINE))


def _convert_thematic_break(tag: Tag, ctx: ConversionContext, mode: str) -> ThematicBreak:
    return ThematicBreak()


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


def parse_srcset(srcset: Optional[str]) -> str:
    """Pick the widest candidate of a ``srcset`` attribute."""
    best_url = ""
    best_width = -1
    for candidate in (srcset or "").split(","):
        parts = candidate.split()
        if not parts:
            continue
        width = 0
        if len(parts) > 1 and parts[1].lower().endswith("w"):
            width = _parse_int(parts[1][:-1]) or 0
        if width > best_width:
            best_url, best_width = parts[0], width
    return best_url


def image_source(img: Tag) -> str:
    src = (img.get("src") or "").strip()
    placeholder = ""
    if src.lower().startswith(SVG_PLACEHOLDER_PREFIX):
        placeholder, src = src, ""
    if not src:
        src = parse_srcset(img.get("srcset"))
    if not src:
        for attr in LAZY_SRC_ATTRS:
            src = (img.get(attr) or "").strip()
            if src:
                break
    if not src and isinstance(img.parent, Tag) and img.parent.name == "picture":
        source = img.parent.find("source", srcset=True)
        if source is not None:
            src = parse_srcset(source.get("srcset"))
    return src or placeholder


def _dimension(img: Tag, attr: str) -> Optional[int]:
    return _parse_int(img.get(attr)) or None


def _register_image(img: Tag, ctx: ConversionContext) -> Optional[str]:
    src = image_source(img)
    if not src:
        LOG.debug("Dropping image without a usable source: %s", str(img)[:120])
        return None
    return ctx.registry.register_image(
        src,
        alt=img.get("alt") or None,
        title=img.get("title") or None,
        width=_dimension(img, "width"),
        height=_dimension(img, "height"),
    )


def _convert_image(tag: Tag, ctx: ConversionContext, mode: str) -> Union[ImageBlock, ImageInline, None]:
    asset_id = _register_image(tag, ctx)
    if asset_id is None:
        return None
    alt = tag.get("alt") or None
    title = tag.get("title") or None
    original_url = ctx.assets.image(asset_id).original_url
    if mode == BLOCK:
        return ImageBlock(asset_id=asset_id, alt=alt, title=title, original_url=original_url)
    return ImageInline(asset_id=asset_id, alt=alt, title=title, original_url=original_url)


def _convert_figure(tag: Tag, ctx: ConversionContext, mode: str) -> Converted:
    img = tag.find("img")
    if img is None:
        return _convert_container(tag, ctx, mode)
    asset_id = _register_image(img, ctx)
    if asset_id is None:
        return _convert_container(tag, ctx, mode)
    figcaption = tag.find("figcaption")
    caption = convert_children(figcaption, ctx, INLINE) if figcaption is not None else None
    return ImageBlock(
        asset_id=asset_id,
        alt=img.get("alt") or None,
        title=img.get("title") or None,
        caption=caption or None,
        original_url=ctx.assets.image(asset_id).original_url,
    )


# ---------------------------------------------------------------------------
# Inline formatting
# ---------------------------------------------------------------------------


def _convert_strong(tag: Tag, ctx: ConversionContext, mode: str) -> Strong:
    return Strong(children=convert_children(tag, ctx, INLINE))


def _convert_emphasis(tag: Tag, ctx: ConversionContext, mode: str) -> Emphasis:
    return Emphasis(children=convert_children(tag, ctx, INLINE))


def _convert_delete(tag: Tag, ctx: ConversionContext, mode: str) -> Delete:
    return Delete(children=convert_children(tag, ctx, INLINE))


def _convert_inline_code(tag: Tag, ctx: ConversionContext, mode: str) -> InlineCode:
    return InlineCode(value=tag.get_text())


def _convert_link(tag: Tag, ctx: ConversionContext, mode: str) -> Converted:
    children = convert_children(tag, ctx, INLINE)
    href = (tag.get("href") or "").strip()
    if not href:
        return children
    return Link(url=ctx.registry.resolve_url(href), title=tag.get("title") or None, children=children)


def _convert_break(tag: Tag, ctx: ConversionContext, mode: str) -> Break:
    return Break()


# ---------------------------------------------------------------------------
# Containers and unknown elements
# ---------------------------------------------------------------------------


def _convert_container(tag: Tag, ctx: ConversionContext, mode: str) -> Converted:
    children = convert_children(tag, ctx, mode)
    if len(children) == 1:
        return children[0]
    if children:
        return children
    return None


def _convert_unknown(tag: Tag, ctx: ConversionContext, mode: str) -> Converted:
    children = convert_children(tag, ctx, mode)
    if children:
        return children
    if ctx.options.preserve_unknown_html:
        if mode == BLOCK:
            return HtmlBlock(value=str(tag))
        return HtmlInline(value=str(tag))
    LOG.debug("Dropping empty unknown element <%s>", tag.name)
    return None


TAG_CONVERTERS: Dict[str, Callable[[Tag, ConversionContext, str], Converted]] = {
    "h1": _convert_heading,
    "h2": _convert_heading,
    "h3": _convert_heading,
    "h4": _convert_heading,
    "h5": _convert_heading,
    "h6": _convert_heading,
    "p": _convert_paragraph,
    "blockquote": _convert_blockquote,
    "ul": _convert_list,
    "ol": _convert_list,
    "li": _convert_list_item,
    "pre": _convert_code_block,
    "table": _convert_table,
    "hr": _convert_thematic_break,
    "figure": _convert_figure,
    "img": _convert_image,
    "strong": _convert_strong,
    "b": _convert_strong,
    "em": _convert_emphasis,
    "i": _convert_emphasis,
    "del": _convert_delete,
    "s": _convert_delete,
    "strike": _convert_delete,
    "code": _convert_inline_code,
    "a": _convert_link,
    "br": _convert_break,
}


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def compute_metrics(tree: RootNode, assets: AssetManifest, started: float) -> ConversionMetrics:
    metrics = ConversionMetrics(
        images=len(assets.images),
        formulas=len(assets.formulas),
        embeds=len(assets.embeds),
    )
    for node in walk(tree):
        if node.type == "table":
            metrics.tables += 1
        elif node.type == "codeBlock":
            metrics.code_blocks += 1
        elif isinstance(node, Text):
            metrics.word_count += len(node.value)
    metrics.processing_time = time.perf_counter() - started
    return metrics


def _checked_options(options: Optional[ConversionOptions]) -> ConversionOptions:
    options = options or ConversionOptions()
    base_url = options.base_url
    if base_url is None or base_url == "":
        return replace(options, base_url=None)
    if not isinstance(base_url, str):
        try:
            base_url = str(base_url)
        except Exception as exc:
            raise ConversionError(f"Base URL cannot be converted to a string: {exc}") from exc
    try:
        return replace(options, base_url=validate_base_url(base_url))
    except ValueError as exc:
        raise ConversionError(f"Invalid base URL {base_url!r}: {exc}") from exc


def _select_content(root: Tag, selector: str) -> Tag:
    try:
        region = root.select_one(selector)
    except SelectorSyntaxError as exc:
        raise ConversionError(f"Invalid content selector {selector!r}: {exc}") from exc
    if region is None:
        raise ConversionError(f"Content not found: {selector}")
    return region


def document_title(soup: BeautifulSoup) -> Optional[str]:
    if soup.title is None:
        return None
    title = WHITESPACE_RE.sub(" ", soup.title.get_text()).strip()
    return title or None


def convert_tag(root: Tag, options: Optional[ConversionOptions] = None) -> ConversionResult:
    """Convert an already-parsed element and its descendants.

    With ``content_selector`` set, only the first matching descendant is converted;
    no match raises :class:`ConversionError`.
    """
    started = time.perf_counter()
    ctx = ConversionContext(_checked_options(options))
    if ctx.options.content_selector:
        root = _select_content(root, ctx.options.content_selector)

    children = convert_children(root, ctx, BLOCK)
    tree = normalize(RootNode(children=children))
    assets = ctx.assets
    metrics = compute_metrics(tree, assets, started)

    LOG.info(
        "Converted fragment: %d block(s), %d image(s), %d formula(s), %d embed(s)",
        len(tree.children),
        metrics.images,
        metrics.formulas,
        metrics.embeds,
    )
    return ConversionResult(tree=tree, assets=assets, metrics=metrics)


def convert_html(markup: Union[str, bytes], options: Optional[ConversionOptions] = None) -> ConversionResult:
    """Parse a markup fragment and convert it into a canonical tree plus manifest."""
    if not isinstance(markup, (str, bytes)):
        raise ConversionError(f"Markup must be str or bytes, got {type(markup).__name__}")
    options = _checked_options(options)
    soup = BeautifulSoup(markup, "html.parser")
    root = soup.body if soup.body is not None else soup
    result = convert_tag(soup if options.content_selector else root, options)
    result.title = document_title(soup)
    return result
