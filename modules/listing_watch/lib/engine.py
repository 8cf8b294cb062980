"""
Cycle runner: one full pass over one search URL.

    retrieve -> extract -> dedupe -> (detect) -> persist -> report

Failures (hard block, exhausted retries) are reported and leave the seen
store untouched. On success the store is saved unconditionally, even when
nothing new was found.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from . import logging_bridge, render
from .deals import DealStage
from .extract import to_item_id
from .models import CycleReport
from .retrieval import RetrievalPolicy
from .seen_store import SeenStore
from .utils import now_iso

LOG = logging.getLogger(__name__)

Reporter = Callable[[CycleReport], None]


def print_report(report: CycleReport) -> None:
    """Default reporter: write the cycle summary to stdout."""
    print(render.format_report(report), flush=True)


class CycleRunner:
    def __init__(
        self,
        policy: RetrievalPolicy,
        store: SeenStore,
        *,
        deal_stage: DealStage | None = None,
        reporter: Reporter = print_report,
    ) -> None:
        self.policy = policy
        self.store = store
        self.deal_stage = deal_stage
        self.reporter = reporter

    def run(self, search_url: str, *, bootstrap: bool = False) -> CycleReport:
        """
        Run one cycle for `search_url`.

        Args:
            search_url: marketplace search-results page.
            bootstrap: record everything as seen but report nothing.

        Returns:
            The CycleReport handed to the reporter.
        """
        t0 = time.perf_counter_ns()
        LOG.info("Fetching %s (seen=%d)", search_url, len(self.store))

        result = self.policy.retrieve(search_url)
        if not result.ok:
            report = CycleReport(
                search_url=search_url,
                outcome=result.outcome,
                ts=now_iso(),
                excerpt=result.excerpt,
            )
            logging_bridge.error({
                "component": "listing_watch.engine",
                "op": "retrieve",
                "url": search_url,
                "outcome": result.outcome.value,
                "status": result.status,
                "attempts": result.attempts,
                "excerpt": result.excerpt,
            })
            self.reporter(report)
            return report

        # DEDUPE: every extracted id is recorded, reported or not
        new_urls: list[str] = []
        for url in result.extraction.urls:
            item_id = to_item_id(url)
            if item_id is not None and self.store.add(item_id):
                new_urls.append(url)
        observed = len(new_urls)

        self.store.save()

        deals = []
        if bootstrap:
            new_urls = []
        elif self.deal_stage is not None and new_urls:
            deals = self.deal_stage.filter(new_urls)
            new_urls = [d.url for d in deals]

        report = CycleReport(
            search_url=search_url,
            outcome=result.outcome,
            ts=now_iso(),
            new_urls=new_urls,
            deals=deals,
            found=len(result.extraction.ids),
            observed=observed,
            bootstrap=bootstrap,
        )

        logging_bridge.activity({
            "component": "listing_watch.engine",
            "op": "cycle",
            "url": search_url,
            "attempts": result.attempts,
            "found": report.found,
            "observed": observed,
            "reported": len(new_urls),
            "bootstrap": bootstrap,
            "deal_mode": self.deal_stage.detector.mode if self.deal_stage else None,
            "seen_total": len(self.store),
            "total_us": int((time.perf_counter_ns() - t0) // 1000),
        })
        self.reporter(report)
        return report
