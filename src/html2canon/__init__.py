"""Convert untrusted markup fragments into a canonical document tree."""

from .assets import AssetManifest, AssetRegistry, EmbedEntry, FormulaEntry, ImageEntry
from .core import (
    ConversionContext,
    ConversionError,
    ConversionMetrics,
    ConversionOptions,
    ConversionResult,
    convert_html,
    convert_tag,
)
from .normalize import normalize
from .serialize import SerializeOptions, serialize, to_html, to_markdown
from .version import __version__

__all__ = [
    "AssetManifest",
    "AssetRegistry",
    "ConversionContext",
    "ConversionError",
    "ConversionMetrics",
    "ConversionOptions",
    "ConversionResult",
    "EmbedEntry",
    "FormulaEntry",
    "ImageEntry",
    "SerializeOptions",
    "__version__",
    "convert_html",
    "convert_tag",
    "normalize",
    "serialize",
    "to_html",
    "to_markdown",
]
