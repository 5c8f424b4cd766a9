"""Reference resolution against the page URL."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urljoin, urlsplit

LOG = logging.getLogger("html2canon")

OPAQUE_PREFIXES = ("data:", "blob:")


def is_opaque_reference(ref: str) -> bool:
    return ref[:5].lower() in OPAQUE_PREFIXES


def resolve_url(ref: Optional[str], base_url: Optional[str] = None) -> str:
    """Return ``ref`` made absolute against ``base_url``.

    Inline-data and object references are returned untouched, and so is any
    reference the URL grammar rejects. Without a base URL relative references
    stay relative.
    """
    if not ref:
        return ""
    ref = ref.strip()
    if not ref or is_opaque_reference(ref):
        return ref
    if not base_url:
        return ref
    try:
        return urljoin(base_url, ref)
    except ValueError as exc:
        LOG.debug("Unable to resolve URL %r against %r: %s", ref, base_url, exc)
        return ref


def validate_base_url(base_url: str) -> str:
    """Raise ValueError when ``base_url`` cannot be split into URL components."""
    parts = urlsplit(base_url.strip())
    if not parts.scheme or not parts.netloc:
        LOG.warning("Base URL is not absolute, relative references may stay relative: %s", base_url)
    return base_url.strip()
