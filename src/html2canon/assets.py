"""Per-conversion registry of images, formulas and embedded objects."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .urls import resolve_url

LOG = logging.getLogger("html2canon")

STATUS_PENDING = "pending"
STATUS_DOWNLOADING = "downloading"
STATUS_READY = "ready"
STATUS_FAILED = "failed"


@dataclass
class ImageEntry:
    id: str
    original_url: str
    alt: Optional[str] = None
    title: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    status: str = STATUS_PENDING
    # Written back by the download/upload collaborator.
    proxy_url: Optional[str] = None
    local_path: Optional[str] = None


@dataclass
class FormulaEntry:
    id: str
    tex: str
    display: bool
    engine: Optional[str] = None
    rendered_url: Optional[str] = None


@dataclass
class EmbedEntry:
    id: str
    embed_type: str
    url: str
    raw_markup: str
    provider: Optional[str] = None


@dataclass
class AssetManifest:
    images: List[ImageEntry] = field(default_factory=list)
    formulas: List[FormulaEntry] = field(default_factory=list)
    embeds: List[EmbedEntry] = field(default_factory=list)

    def image(self, asset_id: str) -> Optional[ImageEntry]:
        for entry in self.images:
            if entry.id == asset_id:
                return entry
        return None

    def formula(self, asset_id: Optional[str]) -> Optional[FormulaEntry]:
        for entry in self.formulas:
            if entry.id == asset_id:
                return entry
        return None

    def embed(self, asset_id: Optional[str]) -> Optional[EmbedEntry]:
        for entry in self.embeds:
            if entry.id == asset_id:
                return entry
        return None

    def ids(self) -> List[str]:
        return [e.id for e in self.images] + [e.id for e in self.formulas] + [e.id for e in self.embeds]

    def image_url(self, asset_id: str, url_mapping: Optional[Dict[str, str]] = None, fallback: str = "") -> str:
        """Output URL for an image: caller mapping, then proxy URL, then the original."""
        entry = self.image(asset_id)
        if entry is None:
            return (url_mapping or {}).get(fallback, fallback)
        if url_mapping and url_mapping.get(entry.original_url):
            return url_mapping[entry.original_url]
        return entry.proxy_url or entry.original_url

    def url_mapping(self, url_mapping: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        return {entry.original_url: self.image_url(entry.id, url_mapping) for entry in self.images}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "images": [asdict(entry) for entry in self.images],
            "formulas": [asdict(entry) for entry in self.formulas],
            "embeds": [asdict(entry) for entry in self.embeds],
        }


class AssetRegistry:
    """Collects assets while one document converts.

    Ids come from counters owned by the instance. Images are keyed by their
    resolved URL, so registering the same image twice yields the same id
    whatever the traversal order. Formulas and embeds are recorded once per
    occurrence.
    """

    def __init__(self, base_url: Optional[str] = None) -> None:
        self.base_url = base_url
        self.manifest = AssetManifest()
        self._image_counter = 0
        self._formula_counter = 0
        self._embed_counter = 0
        self._image_ids: Dict[str, str] = {}

    def resolve_url(self, url: Optional[str]) -> str:
        return resolve_url(url, self.base_url)

    def register_image(
        self,
        url: str,
        *,
        alt: Optional[str] = None,
        title: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> str:
        resolved = self.resolve_url(url)
        existing = self._image_ids.get(resolved)
        if existing is not None:
            return existing

        asset_id = f"img-{self._image_counter}"
        self._image_counter += 1
        self.manifest.images.append(
            ImageEntry(id=asset_id, original_url=resolved, alt=alt, title=title, width=width, height=height)
        )
        self._image_ids[resolved] = asset_id
        LOG.debug("Registered image %s: %s", asset_id, resolved)
        return asset_id

    def register_formula(self, tex: str, display: bool, engine: Optional[str] = None) -> str:
        asset_id = f"formula-{self._formula_counter}"
        self._formula_counter += 1
        self.manifest.formulas.append(FormulaEntry(id=asset_id, tex=tex, display=display, engine=engine))
        return asset_id

    def register_embed(self, embed_type: str, url: str, raw_markup: str, provider: Optional[str] = None) -> str:
        asset_id = f"embed-{self._embed_counter}"
        self._embed_counter += 1
        self.manifest.embeds.append(
            EmbedEntry(id=asset_id, embed_type=embed_type, url=url, raw_markup=raw_markup, provider=provider)
        )
        return asset_id
