"""
Structured records from the watcher (cycle summaries, retrieval failures,
deal diagnostics) routed to the service's JSONL logs.

Records go through service.logging_utils when the service package is
importable; a bare checkout of the module logs them through stdlib logging
under "listing_watch.activity" / "listing_watch.error" instead.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

try:
    from service import logging_utils as _service_logs
except ImportError:
    _service_logs = None

LOG = logging.getLogger(__name__)

# Top-level keys that can carry request credentials when a transport
# attaches headers or proxy settings to a record.
_SENSITIVE_KEYS = frozenset({"cookie", "cookies", "set-cookie", "authorization", "proxy", "proxies", "token", "password"})
_REDACTED = "***REDACTED***"


def _scrub(record: dict[str, Any]) -> dict[str, Any]:
    return {k: (_REDACTED if str(k).lower() in _SENSITIVE_KEYS else v) for k, v in record.items()}


def _emit(kind: str, record: dict[str, Any], level: int) -> None:
    payload = _scrub(record)
    payload.setdefault("module", "listing_watch")

    writer: Callable[[dict[str, Any]], None] | None = getattr(_service_logs, f"write_{kind}_log", None)
    if writer is not None:
        try:
            writer(payload)
            return
        except Exception:
            LOG.debug("write_%s_log failed; using stdlib logging", kind, exc_info=True)
    logging.getLogger(f"listing_watch.{kind}").log(level, payload)


def activity(record: dict[str, Any]) -> None:
    """One cycle/debug/start record for the activity log."""
    _emit("activity", record, logging.INFO)


def error(record: dict[str, Any]) -> None:
    """One failed retrieval or crashed cycle for the error log."""
    _emit("error", record, logging.ERROR)
