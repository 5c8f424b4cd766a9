"""Inline presentation rules for rich-text targets that drop stylesheets."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag
from soupsieve import SelectorSyntaxError

LOG = logging.getLogger("html2canon")

CSS_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
CSS_RULE_RE = re.compile(r"([^{}]+)\{([^{}]*)\}")

DEFAULT_THEME = """
h1 { font-size: 1.4em; font-weight: bold; margin: 1.2em 0 0.6em; }
h2 { font-size: 1.3em; font-weight: bold; margin: 1.1em 0 0.6em; }
h3 { font-size: 1.15em; font-weight: bold; margin: 1em 0 0.5em; }
h4, h5, h6 { font-size: 1em; font-weight: bold; margin: 1em 0 0.5em; }
p { margin: 10px 0; line-height: 1.75; font-size: 16px; }
blockquote { border-left: 4px solid #ddd; padding-left: 15px; margin: 15px 0; color: #666; }
blockquote p { margin: 0; }
pre { background: #f5f5f5; padding: 15px; border-radius: 5px; overflow-x: auto; margin: 15px 0; }
code { background: #f5f5f5; padding: 2px 6px; border-radius: 3px; font-family: monospace; }
pre code { background: none; padding: 0; white-space: pre; }
ul, ol { padding-left: 2em; margin: 10px 0; }
li { margin: 4px 0; }
img { max-width: 100%; height: auto; display: block; margin: 15px auto; }
figcaption { text-align: center; color: #888; font-size: 0.9em; }
table { border-collapse: collapse; width: 100%; margin: 15px 0; }
th { border: 1px solid #ddd; padding: 8px; background: #f5f5f5; font-weight: bold; }
td { border: 1px solid #ddd; padding: 8px; }
hr { border: none; border-top: 1px solid #ddd; margin: 20px 0; }
a { color: #3f51b5; text-decoration: none; }
.math-block { display: block; text-align: center; margin: 1em 0; }
"""

SIMPLE_THEME = """
p { margin: 1em 0; line-height: 1.6; }
blockquote { border-left: 3px solid #ccc; padding-left: 1em; color: #555; }
pre { background: #f6f8fa; padding: 12px; overflow-x: auto; }
img { max-width: 100%; }
table { border-collapse: collapse; }
th, td { border: 1px solid #ccc; padding: 6px; }
"""

THEMES: Dict[str, str] = {
    "default": DEFAULT_THEME,
    "simple": SIMPLE_THEME,
}

StyleRules = List[Tuple[str, Dict[str, str]]]


def parse_declarations(text: str) -> Dict[str, str]:
    declarations: Dict[str, str] = {}
    for chunk in (text or "").split(";"):
        prop, sep, value = chunk.partition(":")
        prop = prop.strip().lower()
        value = value.strip()
        if sep and prop and value:
            declarations[prop] = value
    return declarations


def format_declarations(declarations: Mapping[str, str]) -> str:
    return "; ".join(f"{prop}: {value}" for prop, value in declarations.items())


def parse_css_rules(css: str) -> StyleRules:
    """Split a stylesheet into ``(selector, declarations)`` pairs in source order."""
    rules: StyleRules = []
    for match in CSS_RULE_RE.finditer(CSS_COMMENT_RE.sub("", css or "")):
        declarations = parse_declarations(match.group(2))
        if not declarations:
            continue
        for selector in match.group(1).split(","):
            selector = selector.strip()
            if selector:
                rules.append((selector, dict(declarations)))
    return rules


def rules_from_mapping(styles: Mapping[str, str]) -> StyleRules:
    rules: StyleRules = []
    for selectors, text in styles.items():
        declarations = parse_declarations(text)
        for selector in selectors.split(","):
            if selector.strip() and declarations:
                rules.append((selector.strip(), dict(declarations)))
    return rules


def resolve_rules(theme: Optional[str] = "default", styles: Optional[Mapping[str, str]] = None) -> StyleRules:
    """Rules for a named theme, or for a caller-supplied ``{selector: declarations}`` map."""
    if styles:
        return rules_from_mapping(styles)
    css = THEMES.get(theme or "default")
    if css is None:
        raise ValueError(f"Unknown theme: {theme}")
    return parse_css_rules(css)


def apply_inline_styles(markup: str, rules: StyleRules) -> str:
    """Copy matching declarations onto each element's ``style`` attribute.

    Later rules override earlier ones; declarations already present on the
    element win over every rule.
    """
    soup = BeautifulSoup(markup, "html.parser")
    computed: Dict[int, Dict[str, str]] = {}
    elements: Dict[int, Tag] = {}

    for selector, declarations in rules:
        if "::" in selector:
            continue
        try:
            matches = soup.select(selector)
        except SelectorSyntaxError as exc:
            LOG.debug("Skipping unsupported selector %r: %s", selector, exc)
            continue
        for element in matches:
            key = id(element)
            elements[key] = element
            computed.setdefault(key, {}).update(declarations)

    for key, declarations in computed.items():
        element = elements[key]
        merged = dict(declarations)
        merged.update(parse_declarations(element.get("style", "")))
        element["style"] = format_declarations(merged)

    return str(soup)
