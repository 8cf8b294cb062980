from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from . import logging_bridge
from .engine import CycleRunner
from .models import CycleReport

LOG = logging.getLogger(__name__)


class Poller:
    """
    Drive the cycle runner over every search URL, pass after pass.

    - One pass = CycleRunner.run() for each URL, in order.
    - Bootstrap suppression applies to the first pass only.
    - Without an interval, run() performs exactly one pass.
    - With an interval, run() sleeps between passes and never returns unless
      `max_passes` bounds it.
    """

    def __init__(
        self,
        runner: CycleRunner,
        search_urls: Sequence[str],
        *,
        interval_s: float | None = None,
        bootstrap: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not search_urls:
            raise ValueError("Poller needs at least one search URL")
        if interval_s is not None and interval_s <= 0:
            raise ValueError("interval_s must be positive when given")
        self.runner = runner
        self.search_urls = list(search_urls)
        self.interval_s = interval_s
        self.sleep = sleep
        self._bootstrap_pending = bool(bootstrap)
        self.passes = 0

    def run_pass(self) -> list[CycleReport]:
        """One pass over every URL; a failure on one URL never stops the rest."""
        bootstrap = self._bootstrap_pending
        self._bootstrap_pending = False

        reports: list[CycleReport] = []
        for url in self.search_urls:
            try:
                reports.append(self.runner.run(url, bootstrap=bootstrap))
            except Exception as e:
                LOG.exception("Cycle for %s raised; continuing with the next URL", url)
                logging_bridge.error({
                    "component": "listing_watch.poller",
                    "op": "cycle",
                    "url": url,
                    "error": repr(e),
                })
        self.passes += 1
        return reports

    def run(self, max_passes: int | None = None) -> int:
        """
        Run passes until done. Returns the number of passes performed.
        """
        if self.interval_s is None:
            self.run_pass()
            return self.passes

        LOG.info("Watch mode ON: polling every %ss (Ctrl+C to stop)", self.interval_s)
        while True:
            self.run_pass()
            if max_passes is not None and self.passes >= max_passes:
                return self.passes
            self.sleep(self.interval_s)
