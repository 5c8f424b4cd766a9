from html2canon.core import convert_html
from html2canon.nodes import (
    BLOCK_CONTAINER_TYPES,
    Blockquote,
    Break,
    CodeBlock,
    Emphasis,
    Heading,
    ImageBlock,
    ImageInline,
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
    is_block,
    is_inline,
    walk,
)
from html2canon.normalize import normalize

INLINE_CONTAINER_TYPES = {"paragraph", "heading", "tableCell", "emphasis", "strong", "delete", "link"}

MESSY = (
    "<blockquote>loose text<p>para</p><div><ul><li>x<pre>code</pre></li></ul></div></blockquote>"
    '<a href="/x"><p>in link</p><h2>heading in link</h2></a>'
    "<h3>Title <div><p>block in heading</p></div></h3>"
    '<p>before<figure><img src="a.png"><figcaption>cap</figcaption></figure>after</p>'
    "<li>stray one</li><li>stray two</li>"
    "<span>tail <b></b></span>"
    "<table><tr><td><ul><li>a</li><li>b</li></ul></td></tr></table>"
)


def _assert_pure(root: RootNode) -> None:
    for node in walk(root):
        children = getattr(node, "children", None) or []
        if node.type in BLOCK_CONTAINER_TYPES:
            assert all(is_block(child) for child in children), node
        if node.type in INLINE_CONTAINER_TYPES:
            assert all(is_inline(child) for child in children), node
        for child in getattr(node, "caption", None) or []:
            assert is_inline(child), node


def test_converted_messy_markup_is_pure():
    result = convert_html(MESSY)

    _assert_pure(result.tree)


def test_inline_runs_are_wrapped_in_order():
    root = RootNode(children=[Text("a"), ThematicBreak(), Strong(children=[Text("b")]), Text(" c")])

    assert normalize(root).children == [
        Paragraph(children=[Text("a")]),
        ThematicBreak(),
        Paragraph(children=[Strong(children=[Text("b")]), Text(" c")]),
    ]


def test_whitespace_paragraphs_are_removed():
    root = RootNode(
        children=[
            Paragraph(children=[Text("   ")]),
            Text(" "),
            Paragraph(children=[Text("\n\t")]),
            Paragraph(children=[Text("kept")]),
        ]
    )

    assert normalize(root).children == [Paragraph(children=[Text("kept")])]


def test_blocks_inside_paragraph_are_hoisted():
    root = RootNode(children=[Paragraph(children=[Text("x"), CodeBlock(value="y"), Text("z")])])

    assert normalize(root).children == [
        Paragraph(children=[Text("x")]),
        CodeBlock(value="y"),
        Paragraph(children=[Text("z")]),
    ]


def test_blocks_inside_inline_content_are_demoted():
    heading = Heading(
        depth=2,
        children=[
            Text("t "),
            MathBlock(tex="a", engine="katex", asset_id="formula-0"),
            Link(url="https://a", children=[ImageBlock(asset_id="img-0", alt="i", original_url="https://a/i.png")]),
        ],
    )

    normalized = normalize(RootNode(children=[heading])).children[0]
    assert normalized.children == [
        Text("t "),
        MathInline(tex="a", engine="katex", asset_id="formula-0"),
        Link(url="https://a", children=[ImageInline(asset_id="img-0", alt="i", original_url="https://a/i.png")]),
    ]


def test_demoted_table_keeps_row_text():
    table = Table(
        children=[
            TableRow(children=[TableCell(children=[Text("a")]), TableCell(children=[Text("b")])]),
            TableRow(children=[TableCell(children=[Text("c")])]),
        ]
    )
    root = RootNode(children=[Paragraph(children=[Emphasis(children=[table])])])

    emphasis = normalize(root).children[0].children[0]
    assert emphasis.children == [Text("a"), Text(" | "), Text("b"), Break(), Text("c")]


def test_stray_list_items_are_grouped():
    root = RootNode(
        children=[
            ListItem(children=[Text("one")]),
            Text(" "),
            ListItem(children=[Text("two")]),
            Paragraph(children=[Text("after")]),
        ]
    )

    children = normalize(root).children
    assert children[0] == ListBlock(
        ordered=False,
        children=[
            ListItem(children=[Paragraph(children=[Text("one")])]),
            ListItem(children=[Paragraph(children=[Text("two")])]),
        ],
    )
    assert children[1] == Paragraph(children=[Text("after")])


def test_vacuous_nodes_are_removed():
    root = RootNode(
        children=[
            ListBlock(children=[]),
            Heading(depth=1, children=[Text(" ")]),
            Paragraph(children=[Strong(children=[Emphasis(children=[])]), Text("x")]),
            Blockquote(children=[Paragraph(children=[])]),
        ]
    )

    assert normalize(root).children == [Paragraph(children=[Text("x")])]


def test_normalize_is_pure():
    paragraph = Paragraph(children=[Text("x"), CodeBlock(value="y")])
    root = RootNode(children=[paragraph])

    normalize(root)

    assert root.children == [paragraph]
    assert paragraph.children == [Text("x"), CodeBlock(value="y")]


def test_paragraphs_of_formatted_whitespace_are_removed():
    result = convert_html("<p><b> </b></p><p><em>\n</em> <span> </span></p><h2><i> </i></h2><p>kept</p>")

    assert result.tree.children == [Paragraph(children=[Text("kept")])]
    for node in walk(result.tree):
        if isinstance(node, Paragraph):
            text = "".join(child.value for child in walk(node) if isinstance(child, Text))
            assert text.strip()


def test_blank_formatting_still_separates_words():
    root = RootNode(children=[Paragraph(children=[Text("a"), Strong(children=[Text(" ")]), Text("b")])])

    assert normalize(root).children == [Paragraph(children=[Text("a"), Text(" "), Text("b")])]
