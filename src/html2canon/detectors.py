"""Formula and embedded-object recognition, run before tag dispatch."""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Optional, Tuple, Union

from bs4.element import Tag

from .assets import AssetRegistry
from .nodes import EmbedBlock, MathBlock, MathInline, Text

LOG = logging.getLogger("html2canon")

TEX_ANNOTATION = "application/x-tex"
MATH_SCRIPT_TYPE = "math/tex"
CARD_CLASSES = frozenset({"link-card", "embed-card"})
MATHJAX2_RENDER_CLASSES = frozenset({"MathJax", "MathJax_Display", "MathJax_SVG", "MathJax_SVG_Display", "MathJax_CHTML"})

EMBED_PROVIDERS: List[Tuple[str, "re.Pattern[str]"]] = [
    ("youtube", re.compile(r"youtube\.com|youtu\.be|youtube-nocookie\.com", re.IGNORECASE)),
    ("bilibili", re.compile(r"bilibili\.com|b23\.tv", re.IGNORECASE)),
    ("vimeo", re.compile(r"vimeo\.com", re.IGNORECASE)),
    ("twitter", re.compile(r"twitter\.com|(?:^|[/.])x\.com", re.IGNORECASE)),
    ("codepen", re.compile(r"codepen\.io", re.IGNORECASE)),
    ("codesandbox", re.compile(r"codesandbox\.io", re.IGNORECASE)),
    ("jsfiddle", re.compile(r"jsfiddle\.net", re.IGNORECASE)),
]

MathNode = Union[MathBlock, MathInline]


def class_list(tag: Tag) -> List[str]:
    value = tag.get("class")
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def extract_latex(tag: Optional[Tag]) -> Optional[str]:
    """TeX source carried by a TeX annotation or a data attribute."""
    if tag is None:
        return None
    annotation = tag.find("annotation", attrs={"encoding": TEX_ANNOTATION})
    if annotation is not None:
        tex = _clean(annotation.get_text())
        if tex:
            return tex
    return _clean(tag.get("data-latex")) or _clean(tag.get("data-tex"))


def _fallback_text(tag: Optional[Tag]) -> Optional[str]:
    if tag is None:
        return None
    return _clean(tag.get_text())


def _math_node(registry: AssetRegistry, tex: Optional[str], display: bool, engine: str) -> Union[MathNode, Text]:
    if not tex:
        LOG.debug("Dropping %s formula without source text", engine)
        return Text("")
    asset_id = registry.register_formula(tex, display, engine)
    if display:
        return MathBlock(tex=tex, engine=engine, asset_id=asset_id)
    return MathInline(tex=tex, engine=engine, asset_id=asset_id)


def _detect_katex(tag: Tag, registry: AssetRegistry) -> Union[MathNode, Text, None]:
    classes = class_list(tag)
    if "katex-display" in classes:
        return _math_node(registry, extract_latex(tag), True, "katex")
    if "katex" not in classes:
        return None
    parent = tag.parent
    display = isinstance(parent, Tag) and "katex-display" in class_list(parent)
    return _math_node(registry, extract_latex(tag), display, "katex")


def _detect_mathjax2(tag: Tag, registry: AssetRegistry) -> Union[MathNode, Text, None]:
    if tag.name != "script":
        return None
    script_type = (tag.get("type") or "").lower()
    if MATH_SCRIPT_TYPE not in script_type:
        return None
    return _math_node(registry, _clean(tag.get_text()), "mode=display" in script_type, "mathjax2")


def _detect_mathjax3(tag: Tag, registry: AssetRegistry) -> Union[MathNode, Text, None]:
    if tag.name != "mjx-container":
        return None
    math = tag.find("math")
    tex = extract_latex(tag) or extract_latex(math) or _fallback_text(math)
    display = "MJXc-display" in class_list(tag) or tag.has_attr("display")
    return _math_node(registry, tex, display, "mathjax3")


def _detect_mathml(tag: Tag, registry: AssetRegistry) -> Union[MathNode, Text, None]:
    if tag.name != "math" or tag.find_parent("mjx-container") is not None:
        return None
    tex = extract_latex(tag) or _fallback_text(tag)
    return _math_node(registry, tex, (tag.get("display") or "").lower() == "block", "mathml")


def _detect_marker(tag: Tag, registry: AssetRegistry) -> Union[MathNode, Text, None]:
    if not tag.has_attr("data-sync-math"):
        return None
    tex = _clean(tag.get("data-tex")) or _fallback_text(tag)
    return _math_node(registry, tex, (tag.get("data-display") or "").lower() == "true", "custom")


MATH_DETECTORS: List[Callable[[Tag, AssetRegistry], Union[MathNode, Text, None]]] = [
    _detect_katex,
    _detect_mathjax2,
    _detect_mathjax3,
    _detect_mathml,
    _detect_marker,
]


def detect_math(tag: Tag, registry: AssetRegistry) -> Union[MathNode, Text, None]:
    """Return a math node, an empty Text for a recognised but empty formula, or None."""
    for detector in MATH_DETECTORS:
        result = detector(tag, registry)
        if result is not None:
            return result
    return None


def is_math_rendering(tag: Tag) -> bool:
    """True for MathJax v2 preview/rendered output that duplicates a source script."""
    classes = class_list(tag)
    if "MathJax_Preview" in classes:
        return True
    if not MATHJAX2_RENDER_CLASSES.intersection(classes):
        return False
    script = tag.find_next_sibling("script")
    return script is not None and MATH_SCRIPT_TYPE in (script.get("type") or "").lower()


def detect_provider(url: str) -> Optional[str]:
    if not url:
        return None
    for provider, pattern in EMBED_PROVIDERS:
        if pattern.search(url):
            return provider
    return None


def _media_source(tag: Tag) -> str:
    src = tag.get("src")
    if src:
        return src
    source = tag.find("source", src=True)
    return source.get("src", "") if source is not None else ""


def detect_embed(tag: Tag, registry: AssetRegistry) -> Optional[EmbedBlock]:
    name = tag.name
    if name == "iframe":
        embed_type = "iframe"
        url = tag.get("src") or tag.get("data-src") or ""
    elif name in ("video", "audio"):
        embed_type = name
        url = _media_source(tag)
    elif CARD_CLASSES.intersection(class_list(tag)):
        embed_type = "card"
        link = tag.find("a", href=True)
        url = link.get("href", "") if link is not None else ""
    else:
        return None

    url = registry.resolve_url(url)
    provider = detect_provider(url)
    raw_markup = str(tag)
    asset_id = registry.register_embed(embed_type, url, raw_markup, provider)
    return EmbedBlock(embed_type=embed_type, url=url, html=raw_markup, provider=provider, asset_id=asset_id)
