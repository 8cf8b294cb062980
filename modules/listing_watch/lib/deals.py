"""
Deal detection: an optional, advisory second pass over newly observed listings.

A DealDetector is a pure scoring strategy (markup in, verdict out). DealStage
does the per-listing detail fetch and applies the fail-safe rules: a listing
whose page could not be fetched or whose price cannot be confirmed is never
reported.

Strategies register by mode name so new materials or marketplaces can be
added without touching the cycle runner.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from bs4 import BeautifulSoup

from . import logging_bridge
from .http_client import Fetcher, FetchError
from .models import DealVerdict

LOG = logging.getLogger(__name__)

DEBUG_LIMIT = 5
PRICE_FALLBACK_RANGE = (0.0, 10_000.0)
_CURRENCY_WINDOW = 200


# =============================================================================
# STRATEGY INTERFACE + REGISTRY
# =============================================================================
class DealDetector(ABC):
    """
    Score a listing detail page.

    Concrete subclasses MUST set `mode` to a stable name (e.g. "gold").
    """

    mode: str = ""

    @abstractmethod
    def evaluate(self, url: str, markup: str) -> DealVerdict:
        raise NotImplementedError


_REGISTRY: dict[str, type[DealDetector]] = {}


def register(cls: type[DealDetector]) -> type[DealDetector]:
    """
    Class decorator registering a detector under cls.mode (case-insensitive).
    """
    mode = getattr(cls, "mode", "") or ""
    if not isinstance(mode, str) or not mode.strip():
        raise ValueError(f"Cannot register detector {cls!r}: missing/empty 'mode'.")
    key = mode.strip().lower()
    if key in _REGISTRY and _REGISTRY[key] is not cls:
        raise ValueError(f"Detector mode {key!r} already registered to {_REGISTRY[key]!r}.")
    _REGISTRY[key] = cls
    return cls


def get(mode: str) -> type[DealDetector]:
    """Look up a detector class by mode. Raises KeyError if not found."""
    key = (mode or "").strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"No deal detector registered for mode {mode!r}.")
    return _REGISTRY[key]


def all_modes() -> dict[str, type[DealDetector]]:
    return dict(_REGISTRY)


# =============================================================================
# SHARED HEURISTICS
# =============================================================================
def count_signals(text: str, patterns: Iterable[re.Pattern[str]]) -> int:
    """Number of distinct patterns present in `text`."""
    return sum(1 for p in patterns if p.search(text))


# Ordered: the first pattern that matches anywhere wins. The capture takes the
# whole numeric token (digits joined by "." or ","); _parse_amount decides
# what it means.
_AMOUNT = r"(\d+(?:[.,]\d+)*)"
_PRICE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.ASCII)
    for p in (
        rf'"price"\s*:\s*"?{_AMOUNT}',
        rf'"amount"\s*:\s*"?{_AMOUNT}',
        rf'itemprop="price"[^>]*?content="{_AMOUNT}"',
        rf'property="product:price:amount"[^>]*?content="{_AMOUNT}"',
    )
)

# 12 / 12.5 / 12,50
_PLAIN_AMOUNT_RE = re.compile(r"(?P<int>\d+)(?:[.,](?P<frac>\d{1,2}))?", re.ASCII)
# 1,250 / 1.250,00 / 1,250.00 / 12.345.678
_GROUPED_AMOUNT_RE = re.compile(
    r"(?P<int>\d{1,3}(?:(?P<sep>[.,])\d{3})+)(?:(?P<dec>[.,])(?P<frac>\d{1,2}))?",
    re.ASCII,
)

_CURRENCY_CODE_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r'"(?:currency|currency_code|pricecurrency)"\s*:\s*"([a-z]{3})"'),
    re.compile(r'(?:itemprop="pricecurrency"|property="product:price:currency")[^>]*?content="([a-z]{3})"'),
)
_SYMBOL_RE = re.compile(r"([€$£฿])\s?\d|\d\s?([€$£฿])")
_SYMBOL_MAP = {"€": "eur", "$": "usd", "£": "gbp", "฿": "thb"}


def _currency_signals(window: str) -> set[str]:
    found: set[str] = set()
    for rx in _CURRENCY_CODE_RES:
        found.update(m.group(1) for m in rx.finditer(window))
    for m in _SYMBOL_RE.finditer(window):
        found.add(_SYMBOL_MAP[m.group(1) or m.group(2)])
    return found


def _parse_amount(raw: str) -> float | None:
    """
    Read a numeric token written with either decimal convention.
    Anything not unambiguously a price (e.g. "1.2.3", "1,250,00") is None.
    """
    m = _PLAIN_AMOUNT_RE.fullmatch(raw)
    if m:
        return float(f"{m['int']}.{m['frac'] or 0}")
    m = _GROUPED_AMOUNT_RE.fullmatch(raw)
    if m and m["dec"] != m["sep"]:
        return float(f"{m['int'].replace(m['sep'], '')}.{m['frac'] or 0}")
    return None


def extract_price(text: str, currency: str = "EUR") -> float | None:
    """
    Best-effort price from structured data in already case-folded `text`.

    The value is accepted when markup near the match names `currency`, or,
    with no currency signal at all, when it falls in PRICE_FALLBACK_RANGE.
    A nearby signal for another currency rejects it.
    """
    for rx in _PRICE_PATTERNS:
        m = rx.search(text)
        if not m:
            continue
        value = _parse_amount(m.group(1))
        if value is None:
            return None

        window = text[max(0, m.start() - _CURRENCY_WINDOW) : m.end() + _CURRENCY_WINDOW]
        signals = _currency_signals(window)
        if currency.lower() in signals:
            return value
        if signals:
            return None
        lo, hi = PRICE_FALLBACK_RANGE
        return value if lo <= value <= hi else None
    return None


def page_title(markup: str) -> str:
    """og:title, falling back to <title>; empty when neither exists."""
    try:
        soup = BeautifulSoup(markup, "html.parser")
    except Exception:
        return ""
    og = soup.find("meta", attrs={"property": "og:title"})
    if og and og.get("content"):
        return " ".join(str(og["content"]).split())
    if soup.title and soup.title.string:
        return " ".join(soup.title.string.split())
    return ""


# =============================================================================
# GOLD
# =============================================================================
_GOLD_POSITIVE = tuple(
    re.compile(p)
    for p in (
        r"\b(?:8|9|10|14|18|22|24)\s?(?:k|kt|ct|karaat|karat|carat)\b",
        r"\b(?:333|375|585|750|916|999)\s?(?:gold|goud|or|oro|/1000)\b",
        r"\bgold\s?(?:333|375|585|750|916|999)\b",
        r"\bsolid gold\b",
        r"\bmassief goud\b",
        r"\becht goud\b",
        r"\bgeelgoud\b|\bwitgoud\b|\broségoud\b",
        r"\bmassivgold\b|\becht gold\b",
        r"\bor massif\b|\bor jaune\b",
        r"\boro massiccio\b|\boro giallo\b",
        r"\bhallmark(?:ed)?\b|\bkeurmerk\b|\bpunze\b|\bpoinçon\b",
    )
)

_GOLD_NEGATIVE = tuple(
    re.compile(p)
    for p in (
        r"\bgold[\s-]?plated\b|\bgoldplated\b",
        r"\bverguld\b|\bvergoldet\b|\bplaqu[ée]\b|\bplaccato\b",
        r"\bgold[\s-]?filled\b|\brolled gold\b|\bdoubl[ée]\b",
        r"\bgold[\s-]?tone\b|\bgoldkleurig\b|\bgoudkleurig\b",
        r"\bvermeil\b",
        r"\bcostume jewel(?:le)?ry\b|\bfashion jewel(?:le)?ry\b",
        r"\bbijoux fantaisie\b|\bmodeschmuck\b|\bbijouterie\b",
        r"\bstainless steel\b|\bedelstaal\b|\bedelstahl\b",
        r"\bbrass\b|\bmessing\b|\balloy\b|\blegering\b",
    )
)


@register
class GoldDealDetector(DealDetector):
    """
    Solid-gold jewellery under a price ceiling.

    Accept when at least one purity signal is present, no plating/base-metal
    signal is present, and a confirmed price is <= max_price.
    """

    mode = "gold"

    def __init__(self, max_price: float = 25.0, currency: str = "EUR") -> None:
        self.max_price = float(max_price)
        self.currency = currency

    def evaluate(self, url: str, markup: str) -> DealVerdict:
        text = (markup or "").casefold()
        pos = count_signals(text, _GOLD_POSITIVE)
        neg = count_signals(text, _GOLD_NEGATIVE)
        price = extract_price(text, self.currency)

        if pos < 1:
            reason = "no_positive_signal"
        elif neg:
            reason = "negative_signal"
        elif price is None:
            reason = "no_price"
        elif price > self.max_price:
            reason = "over_max_price"
        else:
            reason = ""

        return DealVerdict(
            url=url,
            accepted=not reason,
            positive=pos,
            negative=neg,
            price=price,
            title=page_title(markup) if not reason else "",
            reason=reason or "accepted",
        )


# =============================================================================
# STAGE
# =============================================================================
@dataclass
class DealStage:
    """
    Fetch each candidate once and keep the ones the detector accepts.
    Detail fetches are advisory: failures drop the candidate, never retry.
    """

    detector: DealDetector
    fetch: Fetcher
    debug: bool = False
    debug_limit: int = DEBUG_LIMIT

    def _verdict(self, url: str) -> DealVerdict:
        try:
            res = self.fetch(url)
        except FetchError as e:
            LOG.info("Detail fetch failed for %s: %s", url, e)
            return DealVerdict(url=url, accepted=False, reason="fetch_error")
        if res.status == 0 or res.status >= 400:
            return DealVerdict(url=url, accepted=False, reason=f"http_{res.status}")
        return self.detector.evaluate(url, res.body)

    def filter(self, urls: Sequence[str]) -> list[DealVerdict]:
        accepted: list[DealVerdict] = []
        shown = 0
        for url in urls:
            v = self._verdict(url)
            if self.debug and shown < self.debug_limit:
                shown += 1
                LOG.info(
                    "[deal-debug] %s pos=%d neg=%d price=%s -> %s",
                    url,
                    v.positive,
                    v.negative,
                    "n/a" if v.price is None else f"{v.price:.2f}",
                    v.reason,
                )
                logging_bridge.activity({
                    "component": "listing_watch.deals",
                    "op": "debug",
                    "mode": self.detector.mode,
                    "url": url,
                    "positive": v.positive,
                    "negative": v.negative,
                    "price": v.price,
                    "reason": v.reason,
                })
            if v.accepted:
                accepted.append(v)
        return accepted


def build_detector(mode: str, *, max_price: float, currency: str = "EUR") -> DealDetector:
    """Instantiate the detector registered for `mode`."""
    cls = get(mode)
    return cls(max_price=max_price, currency=currency)  # type: ignore[call-arg]
