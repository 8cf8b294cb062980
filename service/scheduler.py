# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from modules.listing_watch.lib.config import Settings
from modules.listing_watch.lib.poller import Poller
from modules.listing_watch.lib.seen_store import SeenStore
from modules.listing_watch.main import build_fetcher, build_poller

from . import config_schema
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)


# ---- Internal structures ----------------------------------------------------


@dataclass(frozen=True, slots=True)
class JobSpec:
    id: str
    interval: dict[str, int]
    kwargs: dict[str, Any]
    summary: str | None = None


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """
    A small façade around APScheduler so the CLI can manage lifecycle cleanly.
    """

    def __init__(self, scheduler: BackgroundScheduler, closers: Iterable[Callable[[], None]] = ()) -> None:
        self._scheduler = scheduler
        self._closers = list(closers)
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        """
        Shut down APScheduler, letting an in-flight pass finish, then release transports.
        """
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            self._scheduler.shutdown(wait=True)
        for close in self._closers:
            try:
                close()
            except Exception:
                LOG.debug("transport close failed", exc_info=True)
        self._closers.clear()
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """
        Block until the scheduler is fully stopped (or timeout).
        Returns True if stopped before timeout, else False.
        """
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())


# ---- Module API -------------------------------------------------------------


def start(config_path: str | None = None) -> SchedulerController:
    """
    Load configuration, build an APScheduler instance with one job per watch
    config entry, and start it.

    A single worker thread plus max_instances=1 keeps passes strictly
    sequential, so jobs that share a seen-store path never interleave.
    """
    cfg = config_schema.load_config(config_path)
    config_schema.validate(cfg)

    scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={"coalesce": True, "max_instances": 1},
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )

    stores: dict[str, SeenStore] = {}
    closers: list[Callable[[], None]] = []
    for idx, raw in enumerate(cfg["jobs"]):
        spec = make_job_spec(raw, idx)
        settings = Settings.from_env_and_kwargs(spec.kwargs)
        store = shared_store(stores, settings.seen_path)
        fetch = build_fetcher(settings)
        close = getattr(fetch, "close", None)
        if callable(close):
            closers.append(close)
        _add_job(scheduler, spec, build_poller(settings, store=store, fetch=fetch))

    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler, closers)


# ---- Helpers ----------------------------------------------------------------


def shared_store(stores: dict[str, SeenStore], path: str) -> SeenStore:
    """One SeenStore per resolved path, loaded once for the whole process."""
    key = os.path.abspath(path)
    if key not in stores:
        stores[key] = SeenStore.load(path)
    return stores[key]


def make_job_spec(raw: dict[str, Any], idx: int = 0) -> JobSpec:
    jid = str(raw.get("id") or raw.get("name") or f"job_{idx}")
    return JobSpec(
        id=jid,
        interval=config_schema.interval_kwargs(raw.get("trigger"), jid),
        kwargs=dict(raw.get("kwargs") or {}),
        summary=raw.get("summary") or raw.get("description"),
    )


def build_trigger(spec: JobSpec) -> IntervalTrigger:
    return IntervalTrigger(timezone="UTC", **spec.interval)


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec, poller: Poller) -> None:
    """
    Register one polling job. The first pass runs immediately and carries the
    job's bootstrap flag; the poller itself drops it for later passes.
    """

    def _job_wrapper():
        started = _time.monotonic()
        LOG.info("Job[%s] pass %d starting", spec.id, poller.passes + 1)
        try:
            reports = poller.run_pass()
        except Exception:
            LOG.exception("Job[%s] raised an exception.", spec.id)
            _write_activity(spec, status="error", duration_s=_time.monotonic() - started)
            return
        duration = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs", spec.id, duration)
        _write_activity(
            spec,
            status="ok",
            duration_s=duration,
            reported=sum(len(r.new_urls) for r in reports),
            failed=sum(1 for r in reports if not r.ok),
        )

    scheduler.add_job(
        func=_job_wrapper,
        trigger=build_trigger(spec),
        id=spec.id,
        next_run_time=datetime.now(timezone.utc),
        replace_existing=True,
    )
    LOG.debug("Registered job[%s] (summary=%r, interval=%s)", spec.id, spec.summary, spec.interval)


def _write_activity(spec: JobSpec, status: str, duration_s: float, **fields: Any) -> None:
    """Best-effort activity logging; non-fatal on errors."""
    try:
        write_activity_log({
            "source": "scheduler",
            "event": "job_run",
            "fields": {
                "job_id": spec.id,
                "status": status,
                "duration_ms": int(duration_s * 1000),
                "summary": spec.summary,
                **fields,
            },
        })
    except Exception:
        LOG.debug("write_activity_log failed for job[%s]", spec.id, exc_info=True)
