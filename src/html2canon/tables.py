"""Table conversion: header inference, alignment and merged-cell flags."""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, List, Optional

from bs4.element import Tag

from .nodes import InlineNode, Table, TableCell, TableRow

LOG = logging.getLogger("html2canon")

TEXT_ALIGN_RE = re.compile(r"text-align\s*:\s*(left|center|right)", re.IGNORECASE)
ALIGN_VALUES = frozenset({"left", "center", "right"})

InlineConverter = Callable[[Tag], List[InlineNode]]


def _alignment(tag: Tag) -> Optional[str]:
    match = TEXT_ALIGN_RE.search(tag.get("style") or "")
    if match:
        return match.group(1).lower()
    align = (tag.get("align") or "").strip().lower()
    return align if align in ALIGN_VALUES else None


def _span(cell: Tag, attr: str) -> Optional[int]:
    raw = cell.get(attr)
    if raw is None:
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        LOG.debug("Ignoring malformed %s=%r", attr, raw)
        return None
    return value if value > 1 else None


def _child_tags(tag: Tag, *names: str) -> Iterable[Tag]:
    return tag.find_all(list(names), recursive=False)


def column_alignment(table: Tag) -> List[Optional[str]]:
    align: List[Optional[str]] = []
    for colgroup in _child_tags(table, "colgroup"):
        for col in _child_tags(colgroup, "col"):
            value = _alignment(col)
            span = _span(col, "span") or 1
            align.extend([value] * span)
    return align


def convert_row(tr: Tag, convert_inline: InlineConverter, header: bool) -> TableRow:
    cells: List[TableCell] = []
    for cell in _child_tags(tr, "th", "td"):
        cells.append(
            TableCell(
                header=header or cell.name == "th",
                align=_alignment(cell),
                rowspan=_span(cell, "rowspan"),
                colspan=_span(cell, "colspan"),
                children=convert_inline(cell),
            )
        )
    return TableRow(children=cells)


def convert_table(table: Tag, convert_inline: InlineConverter) -> Table:
    """Build a Table from a ``<table>`` element.

    Rows from ``thead`` are tagged as header rows. Without a ``thead``, a
    first row holding header-typed cells is promoted to the header row as a
    whole. Rows are converted independently, so short rows stay short.
    """
    rows: List[TableRow] = []
    has_thead = False

    for child in table.find_all(True, recursive=False):
        if child.name == "thead":
            has_thead = True
            rows.extend(convert_row(tr, convert_inline, True) for tr in _child_tags(child, "tr"))
        elif child.name in ("tbody", "tfoot"):
            rows.extend(convert_row(tr, convert_inline, False) for tr in _child_tags(child, "tr"))
        elif child.name == "tr":
            rows.append(convert_row(child, convert_inline, False))

    if not has_thead and rows and any(cell.header for cell in rows[0].children):
        for cell in rows[0].children:
            cell.header = True

    cells = [cell for row in rows for cell in row.children]
    caption_tag = table.find("caption", recursive=False)
    align = column_alignment(table)

    return Table(
        children=rows,
        align=align or None,
        has_rowspan=any(cell.rowspan for cell in cells),
        has_colspan=any(cell.colspan for cell in cells),
        caption=convert_inline(caption_tag) if caption_tag is not None else None,
    )
