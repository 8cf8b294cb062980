# modules/listing_watch/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, Settings
from .deals import DealDetector, DealStage, GoldDealDetector
from .engine import CycleRunner
from .extract import extract_ids_and_urls, to_item_id
from .models import CycleReport, DealVerdict, Extraction, FetchResult, Outcome, RetrievalResult
from .poller import Poller
from .retrieval import RetrievalPolicy, classify
from .seen_store import SeenStore

__all__ = [
    "ConfigError",
    "CycleReport",
    "CycleRunner",
    "DealDetector",
    "DealStage",
    "DealVerdict",
    "Extraction",
    "FetchResult",
    "GoldDealDetector",
    "Outcome",
    "Poller",
    "RetrievalPolicy",
    "RetrievalResult",
    "SeenStore",
    "Settings",
    "classify",
    "extract_ids_and_urls",
    "to_item_id",
]
