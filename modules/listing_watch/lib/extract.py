"""
Listing identifier extraction.

Ids are recovered from raw markup with the `/items/<digits>` path pattern;
URLs are always rebuilt from the id and the search page's origin, never taken
verbatim from the page.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlsplit

from .models import Extraction

# ASCII digits only.
_ITEM_PATH_RE = re.compile(r"/items/(\d+)", re.ASCII)
_DIGITS_RE = re.compile(r"\d+", re.ASCII)


def to_item_id(value: Any) -> str | None:
    """
    Return the listing id for a bare numeric string or a listing URL.
    Anything else yields None (never raises).
    """
    if value is None:
        return None
    s = str(value)

    m = _ITEM_PATH_RE.search(s)
    if m:
        return m.group(1)
    if _DIGITS_RE.fullmatch(s):
        return s
    return None


def is_item_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_DIGITS_RE.fullmatch(value))


def normalize_base(url: str) -> str:
    """'https://host/path?q' -> 'https://host'."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def item_url(base: str, item_id: str) -> str:
    return f"{base.rstrip('/')}/items/{item_id}"


def extract_ids_and_urls(markup: Any, base: str) -> Extraction:
    """
    Collect every unique listing id referenced in `markup`.

    Malformed or non-string input never raises; it simply produces an
    empty Extraction when nothing matches.
    """
    if not markup:
        return Extraction()
    if not isinstance(markup, str):
        try:
            markup = str(markup)
        except Exception:
            return Extraction()

    ids: dict[str, None] = {}
    for m in _ITEM_PATH_RE.finditer(markup):
        ids.setdefault(m.group(1), None)

    return Extraction(
        ids=frozenset(ids),
        urls=tuple(item_url(base, i) for i in ids),
    )
