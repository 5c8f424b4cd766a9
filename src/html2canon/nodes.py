"""Canonical document tree produced by the converter."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Union


@dataclass
class Node:
    type: ClassVar[str] = "node"


# ---------------------------------------------------------------------------
# Inline nodes
# ---------------------------------------------------------------------------


@dataclass
class InlineNode(Node):
    pass


@dataclass
class Text(InlineNode):
    type: ClassVar[str] = "text"
    value: str = ""


@dataclass
class Emphasis(InlineNode):
    type: ClassVar[str] = "emphasis"
    children: List[InlineNode] = field(default_factory=list)


@dataclass
class Strong(InlineNode):
    type: ClassVar[str] = "strong"
    children: List[InlineNode] = field(default_factory=list)


@dataclass
class Delete(InlineNode):
    type: ClassVar[str] = "delete"
    children: List[InlineNode] = field(default_factory=list)


@dataclass
class InlineCode(InlineNode):
    type: ClassVar[str] = "inlineCode"
    value: str = ""


@dataclass
class Link(InlineNode):
    type: ClassVar[str] = "link"
    url: str = ""
    title: Optional[str] = None
    children: List[InlineNode] = field(default_factory=list)


@dataclass
class ImageInline(InlineNode):
    type: ClassVar[str] = "imageInline"
    asset_id: str = ""
    alt: Optional[str] = None
    title: Optional[str] = None
    original_url: str = ""


@dataclass
class MathInline(InlineNode):
    type: ClassVar[str] = "mathInline"
    tex: str = ""
    engine: Optional[str] = None
    asset_id: Optional[str] = None


@dataclass
class Break(InlineNode):
    type: ClassVar[str] = "break"


@dataclass
class HtmlInline(InlineNode):
    type: ClassVar[str] = "htmlInline"
    value: str = ""


# ---------------------------------------------------------------------------
# Block nodes
# ---------------------------------------------------------------------------


@dataclass
class BlockNode(Node):
    pass


@dataclass
class Paragraph(BlockNode):
    type: ClassVar[str] = "paragraph"
    children: List[InlineNode] = field(default_factory=list)


@dataclass
class Heading(BlockNode):
    type: ClassVar[str] = "heading"
    depth: int = 1
    children: List[InlineNode] = field(default_factory=list)


@dataclass
class Blockquote(BlockNode):
    type: ClassVar[str] = "blockquote"
    children: List[BlockNode] = field(default_factory=list)


@dataclass
class ListItem(BlockNode):
    """List entry; ``checked`` is None for plain items, a bool for task items."""

    type: ClassVar[str] = "listItem"
    checked: Optional[bool] = None
    children: List[BlockNode] = field(default_factory=list)


@dataclass
class ListBlock(BlockNode):
    type: ClassVar[str] = "list"
    ordered: bool = False
    start: Optional[int] = None
    children: List[ListItem] = field(default_factory=list)


@dataclass
class CodeBlock(BlockNode):
    type: ClassVar[str] = "codeBlock"
    value: str = ""
    lang: Optional[str] = None


@dataclass
class TableCell(BlockNode):
    type: ClassVar[str] = "tableCell"
    header: bool = False
    align: Optional[str] = None
    rowspan: Optional[int] = None
    colspan: Optional[int] = None
    children: List[InlineNode] = field(default_factory=list)


@dataclass
class TableRow(BlockNode):
    type: ClassVar[str] = "tableRow"
    children: List[TableCell] = field(default_factory=list)


@dataclass
class Table(BlockNode):
    type: ClassVar[str] = "table"
    children: List[TableRow] = field(default_factory=list)
    align: Optional[List[Optional[str]]] = None
    has_rowspan: bool = False
    has_colspan: bool = False
    caption: Optional[List[InlineNode]] = None


@dataclass
class ThematicBreak(BlockNode):
    type: ClassVar[str] = "thematicBreak"


@dataclass
class ImageBlock(BlockNode):
    type: ClassVar[str] = "imageBlock"
    asset_id: str = ""
    alt: Optional[str] = None
    title: Optional[str] = None
    caption: Optional[List[InlineNode]] = None
    original_url: str = ""


@dataclass
class HtmlBlock(BlockNode):
    type: ClassVar[str] = "htmlBlock"
    value: str = ""


@dataclass
class EmbedBlock(BlockNode):
    type: ClassVar[str] = "embedBlock"
    embed_type: str = "iframe"
    url: str = ""
    html: str = ""
    provider: Optional[str] = None
    asset_id: Optional[str] = None


@dataclass
class MathBlock(BlockNode):
    type: ClassVar[str] = "mathBlock"
    tex: str = ""
    engine: Optional[str] = None
    asset_id: Optional[str] = None


@dataclass
class RootNode(Node):
    type: ClassVar[str] = "root"
    children: List[BlockNode] = field(default_factory=list)


AnyNode = Union[BlockNode, InlineNode]
Converted = Union[AnyNode, List[AnyNode], None]

# Nodes whose children are block content; every other node with children
# holds inline content (or, for list/table/tableRow, fixed child types).
BLOCK_CONTAINER_TYPES = frozenset({"root", "blockquote", "listItem"})


def is_inline(node: Node) -> bool:
    return isinstance(node, InlineNode)


def is_block(node: Node) -> bool:
    return isinstance(node, BlockNode)


def walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and all of its descendants depth-first, including captions."""
    yield node
    for child in getattr(node, "caption", None) or []:
        yield from walk(child)
    for child in getattr(node, "children", None) or []:
        yield from walk(child)


def to_dict(node: Node) -> Dict[str, Any]:
    """JSON-ready form of a node, keyed the way the node vocabulary names things."""
    data: Dict[str, Any] = {"type": node.type}
    for f in fields(node):
        value = getattr(node, f.name)
        if f.name in {"children", "caption"} and value is not None:
            data[f.name] = [to_dict(child) for child in value]
        elif value is not None:
            data[f.name] = value
    return data
