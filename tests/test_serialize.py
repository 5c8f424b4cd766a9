import pytest

from html2canon.core import ConversionOptions, convert_html
from html2canon.nodes import HtmlBlock, MathBlock, MathInline, RootNode
from html2canon.assets import AssetManifest
from html2canon.serialize import SerializeOptions, sanitize_fragment, serialize, to_html, to_markdown

MATH_MARKUP = (
    '<p>E <span data-sync-math data-tex="x^2" data-display="false"></span></p>'
    '<section data-sync-math data-tex="y" data-display="true"></section>'
)


def _md(markup: str, **kwargs) -> str:
    result = convert_html(markup)
    return to_markdown(result.tree, result.assets, **kwargs)


def _html(markup: str, **kwargs) -> str:
    result = convert_html(markup)
    return to_html(result.tree, result.assets, **kwargs)


def test_bold_paragraph_markdown():
    assert _md("<p>A <b>bold</b> word</p>") == "A **bold** word"


def test_emphasis_markers_keep_surrounding_whitespace_outside():
    assert _md("<p>x<em> soft </em>y<del>gone</del></p>") == "x *soft* y~~gone~~"


def test_inline_siblings_keep_separating_space():
    assert _md("<p><b>a</b> <i>b</i></p>") == "**a** *b*"


def test_block_structure_markdown():
    markup = (
        "<h2>Title</h2>"
        "<ul><li>a</li><li>b</li></ul>"
        '<ol start="3"><li>x</li><li>y</li></ol>'
        "<blockquote><p>q</p><p>r</p></blockquote>"
        "<hr>"
    )

    assert _md(markup) == "## Title\n\n- a\n- b\n\n3. x\n4. y\n\n> q\n>\n> r\n\n---"


def test_task_and_nested_lists_markdown():
    tasks = '<ul><li><input type="checkbox" checked> done</li><li><input type="checkbox"> todo</li></ul>'
    nested = "<ul><li>a<ul><li>b</li></ul></li></ul>"

    assert _md(tasks) == "- [x] done\n- [ ] todo"
    assert _md(nested) == "- a\n\n  - b"


def test_code_fences_outgrow_body_backticks():
    assert _md('<pre><code class="language-py">x = ```\n</code></pre>') == "````py\nx = ```\n````"
    assert _md("<pre>plain</pre>") == "```\nplain\n```"
    assert _md("<p>use <code>a`b</code></p>") == "use ``a`b``"


def test_markdown_specials_are_escaped():
    assert _md("<p>1. not *a* list_item [x]</p>") == "1\\. not \\*a\\* list\\_item \\[x\\]"
    assert _md("<p># not a heading</p>") == "\\# not a heading"
    assert _md("<p>- not a bullet &lt;b&gt;</p>") == "\\- not a bullet \\<b>"


def test_hard_break_markdown():
    assert _md("<p>a<br>b</p>") == "a\\\nb"
    assert _md("<h1>a<br>b</h1>") == "# a b"


def test_links_markdown():
    assert _md('<p><a href="https://a.com" title="T">site</a></p>') == '[site](https://a.com "T")'
    assert _md('<p><a href="https://a.com/p_1"></a></p>') == "[https://a.com/p\\_1](https://a.com/p_1)"
    assert _md('<p><a href="https://a.com/a b">x</a></p>') == "[x](<https://a.com/a b>)"

    mapped = _md('<p><a href="https://a.com">site</a></p>', url_mapping={"https://a.com": "https://b.com"})
    assert mapped == "[site](https://b.com)"


def test_gfm_table_with_alignment():
    markup = "<table><tr><th>A</th><th align=\"right\">B</th></tr><tr><td>1</td><td>2|3</td></tr></table>"

    assert _md(markup) == "| A | B |\n| --- | ---: |\n| 1 | 2\\|3 |"


def test_gfm_table_pads_header_only():
    markup = "<table><tr><th>A</th></tr><tr><td>1</td><td>2</td></tr><tr><td>3</td></tr></table>"

    assert _md(markup) == "| A |  |\n| --- | --- |\n| 1 | 2 |\n| 3 |"


def test_table_cell_breaks_and_caption():
    markup = "<table><caption>Cap</caption><tr><th>a<br>b</th></tr></table>"

    assert _md(markup) == "| a<br>b |\n| --- |\n\nCap"
    assert _md(markup, raw_html=False) == "| a b |\n| --- |\n\nCap"


def test_merged_tables_flatten_unless_disabled():
    markup = '<table><tr><td rowspan="2">x</td><td>y</td></tr><tr><td>z</td></tr></table>'

    assert _md(markup) == "x | y\n\nz"
    assert _md(markup, flatten_merged_tables=False) == "| x | y |\n| --- | --- |\n| z |"


def test_images_markdown_and_url_priority():
    markup = '<p><img src="https://x/a.png" alt="A" title="t"></p>'
    result = convert_html(markup)

    assert to_markdown(result.tree, result.assets) == '![A](https://x/a.png "t")'

    result.assets.images[0].proxy_url = "https://proxy/a.png"
    assert to_markdown(result.tree, result.assets) == '![A](https://proxy/a.png "t")'

    mapping = {"https://x/a.png": "https://cdn/a.png"}
    assert to_markdown(result.tree, result.assets, url_mapping=mapping) == '![A](https://cdn/a.png "t")'


def test_figure_markdown():
    markup = '<figure><img src="https://x/a.png" alt="A"><figcaption>Cap</figcaption></figure>'

    assert _md(markup) == "![A](https://x/a.png)\n\n*Cap*"


def test_math_strategies_markdown():
    result = convert_html(MATH_MARKUP)

    assert to_markdown(result.tree, result.assets) == "E $x^2$\n\n$$\ny\n$$"
    assert to_markdown(result.tree, result.assets, math_rendering="none") == (
        "E \\[formula: x^2\\]\n\n\\[formula: y\\]"
    )

    result.assets.formulas[0].rendered_url = "https://r/0.png"
    assert to_markdown(result.tree, result.assets, math_rendering="image") == (
        "E ![formula](https://r/0.png)\n\n$$\ny\n$$"
    )


def test_embed_and_opaque_markup_markdown():
    assert _md('<iframe src="https://www.youtube.com/embed/abc"></iframe>') == (
        "[youtube](https://www.youtube.com/embed/abc)"
    )

    tree = RootNode(children=[HtmlBlock(value="<h2>Title</h2>")])
    assert to_markdown(tree, AssetManifest()) == "<h2>Title</h2>"
    assert to_markdown(tree, AssetManifest(), raw_html=False) == "## Title"


def test_unknown_format_raises():
    result = convert_html("<p>x</p>")

    with pytest.raises(ValueError):
        serialize(result.tree, result.assets, SerializeOptions(format="rtf"))


def test_html_escapes_text_and_attributes():
    assert _html("<p>a &lt;b&gt; &amp; \"c\"</p>") == "<p>a &lt;b&gt; &amp; \"c\"</p>"
    assert _html('<p><a href="https://a.com/?a=1&amp;b=&quot;2&quot;">x</a></p>') == (
        '<p><a href="https://a.com/?a=1&amp;b=&quot;2&quot;">x</a></p>'
    )


def test_html_strips_scripts_and_handlers():
    tree = RootNode(
        children=[HtmlBlock(value='<div onclick="steal()">ok<script>alert(1)</script><style>p{}</style></div>')]
    )

    output = to_html(tree, AssetManifest())
    assert output == "<div>ok</div>"
    assert "<script" not in _html("<p>x</p><script>alert(1)</script>", raw_html=True)


def test_sanitize_fragment_balances_tags():
    assert sanitize_fragment("<b>open <i>nested") == "<b>open <i>nested</i></b>"


def test_html_drops_script_urls():
    assert _html('<p><a href="javascript:alert(1)">x</a></p>') == "<p>x</p>"


def test_html_lists_and_code():
    markup = (
        '<ol start="3"><li>a</li></ol>'
        "<ol><li>b</li></ol>"
        '<ul><li><input type="checkbox" checked> done</li></ul>'
        '<pre><code class="language-py">a &lt; b</code></pre>'
    )

    assert _html(markup) == (
        '<ol start="3"><li>a</li></ol>'
        "<ol><li>b</li></ol>"
        '<ul><li><input type="checkbox" disabled="" checked=""> done</li></ul>'
        '<pre><code class="language-py">a &lt; b</code></pre>'
    )


def test_html_table_sections_and_spans():
    markup = (
        "<table><tr><th>A</th><th>B</th></tr>"
        '<tr><td rowspan="2" style="text-align:center">1</td><td>2</td></tr></table>'
    )

    assert _html(markup) == (
        "<table><thead><tr><th>A</th><th>B</th></tr></thead>"
        '<tbody><tr><td rowspan="2" style="text-align: center">1</td><td>2</td></tr></tbody></table>'
    )


def test_html_images():
    figure = '<figure><img src="https://x/a.png" alt="A"><figcaption>Cap</figcaption></figure>'

    assert _html(figure) == '<figure><img src="https://x/a.png" alt="A"><figcaption>Cap</figcaption></figure>'
    assert _html('<img src="https://x/b.png">') == '<p><img src="https://x/b.png" alt=""></p>'


def test_html_math_marker_round_trips():
    result = convert_html(MATH_MARKUP)
    output = to_html(result.tree, result.assets)

    assert output == (
        '<p>E <span class="math-inline" data-sync-math="" data-tex="x^2" data-display="false">$x^2$</span></p>'
        '<section class="math-block" data-sync-math="" data-tex="y" data-display="true">$$y$$</section>'
    )

    again = convert_html(output, ConversionOptions())
    inline = again.tree.children[0].children[1]
    block = again.tree.children[1]
    assert isinstance(inline, MathInline) and inline.tex == "x^2"
    assert isinstance(block, MathBlock) and block.tex == "y"


def test_html_embeds():
    markup = '<iframe src="https://www.youtube.com/embed/abc"></iframe>'

    assert _html(markup) == '<iframe src="https://www.youtube.com/embed/abc"></iframe>'
    assert _html(markup, raw_html=False) == '<p><a href="https://www.youtube.com/embed/abc">youtube</a></p>'


def test_html_inline_styles():
    assert _html("<p>x</p>", inline_styles=True) == (
        '<p style="margin: 10px 0; line-height: 1.75; font-size: 16px">x</p>'
    )
    assert _html("<p>x</p>", inline_styles=True, styles={"p": "color: red"}) == '<p style="color: red">x</p>'

    with pytest.raises(ValueError):
        _html("<p>x</p>", inline_styles=True, theme="missing")


def test_html_embeds_and_opaque_markup_drop_script_urls():
    markup = (
        '<iframe src="javascript:alert(1)"></iframe>'
        '<div class="link-card"><a href="javascript:alert(2)">x</a></div>'
    )

    output = _html(markup)
    assert "javascript" not in output
    assert "x" in output

    tree = RootNode(
        children=[
            HtmlBlock(value='<video src="vbscript:run" poster="javascript:alert(3)"></video>'),
            HtmlBlock(value='<a href="JaVaScRiPt:alert(4)" onmouseover="steal()">y</a><x-widget>z</x-widget>'),
        ]
    )
    output = to_html(tree, AssetManifest())
    assert "script" not in output.lower()
    assert "onmouseover" not in output
    assert "<a>y</a>" in output
    assert "x-widget" not in output and output.endswith("z")


def test_sanitizer_keeps_safe_media_markup():
    markup = (
        '<video controls src="https://v.example/a.mp4">'
        '<source src="https://v.example/a.webm" type="video/webm"></video>'
    )

    output = sanitize_fragment(markup)
    assert output.startswith("<video controls")
    assert 'src="https://v.example/a.mp4"' in output
    assert '<source src="https://v.example/a.webm" type="video/webm">' in output
