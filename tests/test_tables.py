from html2canon.core import convert_html
from html2canon.nodes import Table, Text


def _table(markup: str) -> Table:
    tree = convert_html(markup).tree
    assert len(tree.children) == 1
    table = tree.children[0]
    assert isinstance(table, Table)
    return table


def _headers(table: Table):
    return [[cell.header for cell in row.children] for row in table.children]


def test_first_row_of_header_cells_is_inferred_as_header():
    table = _table("<table><tr><th>A</th><th>B</th></tr><tr><td>1</td><td>2</td></tr></table>")

    assert _headers(table) == [[True, True], [False, False]]


def test_mixed_first_row_is_promoted_as_a_whole():
    table = _table("<table><tr><th>A</th><td>B</td></tr><tr><td>1</td><td>2</td></tr></table>")

    assert _headers(table) == [[True, True], [False, False]]


def test_first_row_without_header_cells_stays_body():
    table = _table("<table><tbody><tr><td>A</td></tr><tr><td>1</td></tr></tbody></table>")

    assert _headers(table) == [[False], [False]]


def test_thead_rows_are_header_rows():
    table = _table(
        "<table><thead><tr><td>A</td></tr></thead>"
        "<tbody><tr><th>side</th></tr></tbody>"
        "<tfoot><tr><td>total</td></tr></tfoot></table>"
    )

    assert _headers(table) == [[True], [True], [False]]


def test_short_rows_are_not_padded():
    table = _table("<table><tr><td>a</td><td>b</td></tr><tr><td>c</td></tr></table>")

    assert [len(row.children) for row in table.children] == [2, 1]


def test_merge_flags():
    plain = _table("<table><tr><td>a</td></tr></table>")
    spanned = _table('<table><tr><td colspan="2">a</td></tr><tr><td>b</td><td>c</td></tr></table>')
    single = _table('<table><tr><td rowspan="1" colspan="1">a</td></tr></table>')

    assert (plain.has_rowspan, plain.has_colspan) == (False, False)
    assert (spanned.has_rowspan, spanned.has_colspan) == (False, True)
    assert spanned.children[0].children[0].colspan == 2
    assert (single.has_rowspan, single.has_colspan) == (False, False)


def test_malformed_span_is_ignored():
    table = _table('<table><tr><td rowspan="two">a</td></tr></table>')

    assert table.children[0].children[0].rowspan is None
    assert table.has_rowspan is False


def test_cell_and_column_alignment():
    table = _table(
        '<table><colgroup><col align="left"><col span="2" style="text-align: right"></colgroup>'
        '<tr><th style="text-align:center">A</th><th align="RIGHT">B</th><td>C</td></tr></table>'
    )

    assert table.align == ["left", "right", "right"]
    assert [cell.align for cell in table.children[0].children] == ["center", "right", None]


def test_caption_is_converted_to_inlines():
    table = _table("<table><caption>Totals <b>2024</b></caption><tr><td>1</td></tr></table>")

    assert table.caption[0] == Text("Totals ")
    assert table.caption[1].type == "strong"


def test_nested_table_cells_stay_inline():
    table = _table("<table><tr><td><p>one</p><p>two</p></td></tr></table>")

    cell = table.children[0].children[0]
    assert all(node.type != "paragraph" for node in cell.children)
    assert [node.type for node in cell.children] == ["text", "break", "text"]
    assert [node.value for node in cell.children if isinstance(node, Text)] == ["one", "two"]
