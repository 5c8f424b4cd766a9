"""Cleanup pass run once over the raw converted tree.

The pass is pure: it builds a new tree and never touches the asset
registry. After it runs, containers that hold block content (root,
blockquote, list item) hold only blocks, and nodes that hold inline content
hold only inlines:

* inline runs found where blocks are expected are wrapped in synthesized
  paragraphs, keeping their order relative to the surrounding blocks;
* blocks found directly inside a paragraph are hoisted out of it, splitting
  the paragraph around them;
* blocks found deeper in inline content are demoted to an inline
  equivalent (display math becomes inline math, an image block an inline
  image, and so on);
* vacuous nodes (whitespace-only paragraphs, empty formatting, empty quotes, lists
  without items) are removed.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Sequence

from .nodes import (
    AnyNode,
    BlockNode,
    Blockquote,
    Break,
    CodeBlock,
    Delete,
    EmbedBlock,
    Emphasis,
    Heading,
    HtmlBlock,
    HtmlInline,
    ImageBlock,
    ImageInline,
    InlineCode,
    InlineNode,
    Link,
    ListBlock,
    ListItem,
    MathBlock,
    MathInline,
    Paragraph,
    RootNode,
    Strong,
    Table,
    TableCell,
    TableRow,
    Text,
    ThematicBreak,
    walk,
)

FORMATTING_TYPES = (Emphasis, Strong, Delete)
# Demoted flow blocks start on a new line.
FLOW_BLOCK_TYPES = (Paragraph, Heading, Blockquote, ListBlock, ListItem, Table)


def _is_blank(children: Sequence[AnyNode]) -> bool:
    """True when the only content, formatting included, is whitespace text."""
    for child in children:
        for node in walk(child):
            if isinstance(node, Text):
                if node.value.strip():
                    return False
            elif not isinstance(node, FORMATTING_TYPES):
                return False
    return True


def is_vacuous_paragraph(paragraph: Paragraph) -> bool:
    return _is_blank(paragraph.children)


def normalize(root: RootNode) -> RootNode:
    return RootNode(children=normalize_blocks(root.children))


def normalize_blocks(nodes: Sequence[AnyNode]) -> List[BlockNode]:
    result: List[BlockNode] = []
    pending: List[InlineNode] = []
    stray_items: List[ListItem] = []

    def flush_inline() -> None:
        if pending:
            _append_paragraph(result, list(pending))
            pending.clear()

    def flush_items() -> None:
        if stray_items:
            result.append(ListBlock(ordered=False, children=list(stray_items)))
            stray_items.clear()

    for node in nodes:
        if isinstance(node, Text) and not node.value.strip() and not pending:
            continue
        if isinstance(node, InlineNode):
            flush_items()
            pending.append(node)
            continue
        flush_inline()
        if isinstance(node, ListItem):
            stray_items.append(_normalize_list_item(node))
            continue
        flush_items()
        if isinstance(node, Paragraph):
            result.extend(normalize_blocks(node.children))
        else:
            result.extend(_normalize_block(node))
    flush_inline()
    flush_items()
    return result


def _append_paragraph(result: List[BlockNode], children: List[InlineNode]) -> None:
    paragraph = Paragraph(children=normalize_inlines(children))
    if paragraph.children and not is_vacuous_paragraph(paragraph):
        result.append(paragraph)


def _normalize_list_item(item: ListItem) -> ListItem:
    return replace(item, children=normalize_blocks(item.children))


def _normalize_block(node: BlockNode) -> List[BlockNode]:
    if isinstance(node, Heading):
        heading = replace(node, children=normalize_inlines(node.children))
        return [] if _is_blank(heading.children) else [heading]
    if isinstance(node, Blockquote):
        children = normalize_blocks(node.children)
        return [replace(node, children=children)] if children else []
    if isinstance(node, ListBlock):
        items = [_normalize_list_item(item) for item in node.children]
        return [replace(node, children=items)] if items else []
    if isinstance(node, Table):
        return [_normalize_table(node)]
    if isinstance(node, ImageBlock) and node.caption is not None:
        return [replace(node, caption=normalize_inlines(node.caption) or None)]
    if isinstance(node, (TableRow, TableCell)):
        # Table parts outside a table keep their text as a paragraph.
        return normalize_blocks(_to_inline(node))
    return [node]


def _normalize_table(table: Table) -> Table:
    rows = [
        replace(row, children=[replace(cell, children=normalize_inlines(cell.children)) for cell in row.children])
        for row in table.children
    ]
    caption = normalize_inlines(table.caption) if table.caption is not None else None
    return replace(table, children=rows, caption=caption or None)


def normalize_inlines(nodes: Sequence[AnyNode]) -> List[InlineNode]:
    result: List[InlineNode] = []
    for node in nodes:
        if isinstance(node, BlockNode):
            demoted = normalize_inlines(_to_inline(node))
            if demoted and result and isinstance(node, FLOW_BLOCK_TYPES) and not isinstance(result[-1], Break):
                result.append(Break())
            result.extend(demoted)
            continue
        if isinstance(node, Text):
            if node.value:
                result.append(node)
        elif isinstance(node, FORMATTING_TYPES):
            children = normalize_inlines(node.children)
            if not children:
                continue
            if _is_blank(children):
                # Blank formatting still separates its neighbours.
                result.append(Text(" "))
            else:
                result.append(replace(node, children=children))
        elif isinstance(node, Link):
            result.append(replace(node, children=normalize_inlines(node.children)))
        else:
            result.append(node)
    return result


def _join_lines(parts: List[List[AnyNode]], separator: InlineNode) -> List[AnyNode]:
    joined: List[AnyNode] = []
    for part in parts:
        if not part:
            continue
        if joined:
            joined.append(replace(separator))
        joined.extend(part)
    return joined


def _to_inline(node: BlockNode) -> List[AnyNode]:
    """Inline stand-in for a block that ended up inside inline content."""
    if isinstance(node, MathBlock):
        return [MathInline(tex=node.tex, engine=node.engine, asset_id=node.asset_id)]
    if isinstance(node, ImageBlock):
        return [ImageInline(asset_id=node.asset_id, alt=node.alt, title=node.title, original_url=node.original_url)]
    if isinstance(node, HtmlBlock):
        return [HtmlInline(value=node.value)]
    if isinstance(node, CodeBlock):
        return [InlineCode(value=node.value)]
    if isinstance(node, EmbedBlock):
        if not node.url:
            return [HtmlInline(value=node.html)] if node.html else []
        return [Link(url=node.url, children=[Text(node.provider or node.url)])]
    if isinstance(node, ThematicBreak):
        return [Break()]
    if isinstance(node, (Paragraph, Heading, TableCell)):
        return list(node.children)
    if isinstance(node, TableRow):
        return _join_lines([_to_inline(cell) for cell in node.children], Text(" | "))
    if isinstance(node, Table):
        return _join_lines([_to_inline(row) for row in node.children], Break())
    parts: List[List[AnyNode]] = []
    run: List[AnyNode] = []
    for child in getattr(node, "children", None) or []:
        if isinstance(child, BlockNode):
            if run:
                parts.append(run)
                run = []
            parts.append(_to_inline(child))
        else:
            run.append(child)
    if run:
        parts.append(run)
    return _join_lines(parts, Break())
