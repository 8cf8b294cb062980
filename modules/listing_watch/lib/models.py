from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Outcome(str, Enum):
    """Classification of a single retrieval attempt."""

    SUCCESS = "success"
    TRANSIENT = "transient_failure"
    HARD_BLOCKED = "hard_blocked"


@dataclass(frozen=True)
class FetchResult:
    """
    Raw answer from a retrieval transport.
    status is 0 when no HTTP response was received at all.
    """

    status: int
    content_type: str = ""
    body: str = ""
    via: str = "http"


@dataclass(frozen=True)
class Extraction:
    """Unique listing ids found in a page plus their canonical URLs."""

    ids: frozenset[str] = frozenset()
    urls: tuple[str, ...] = ()


@dataclass
class RetrievalResult:
    """
    Final outcome of the retrieval policy for one URL.
    - attempts: how many fetches were made (1..max_attempts)
    - excerpt: short whitespace-collapsed body preview (set on failures)
    """

    url: str
    outcome: Outcome
    attempts: int
    status: int = 0
    body: str = ""
    extraction: Extraction = field(default_factory=Extraction)
    excerpt: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


@dataclass(frozen=True)
class DealVerdict:
    """Result of scoring one detail page."""

    url: str
    accepted: bool
    positive: int = 0
    negative: int = 0
    price: float | None = None
    title: str = ""
    reason: str = ""


@dataclass
class CycleReport:
    """
    What one cycle over one search URL produced.
    - new_urls: what was reported (post-detector, empty under bootstrap)
    - observed: count of identifiers seen for the first time this cycle
    """

    search_url: str
    outcome: Outcome
    ts: str
    new_urls: list[str] = field(default_factory=list)
    deals: list[DealVerdict] = field(default_factory=list)
    found: int = 0
    observed: int = 0
    bootstrap: bool = False
    excerpt: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS
