"""
Retrieval policy: bounded retry with backoff and hard-block detection.

The retry loop is an explicit state machine:

    Attempting(n) --Success----------------> Done(Success)
    Attempting(n) --HardBlocked------------> Done(HardBlocked)
    Attempting(n) --Transient, n < max-----> Backoff -> Attempting(n+1)
    Attempting(n) --Transient, n == max----> Done(TransientFailure)

Fetching, classification, sleeping and jitter are injected so the policy can
be driven without any network access.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from enum import Enum

from .extract import extract_ids_and_urls, normalize_base
from .http_client import HARD_BLOCK_STATUSES, Fetcher, FetchError
from .models import Extraction, FetchResult, Outcome, RetrievalResult
from .utils import snippet

LOG = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY_S = 0.75
JITTER_S = 0.4
EXCERPT_CHARS = 250

Classifier = Callable[[int, Extraction], Outcome]


def classify(status: int, extraction: Extraction) -> Outcome:
    """
    Classify one attempt from its status and what could be extracted.
    Pure: the attempt number plays no part.
    """
    if status in HARD_BLOCK_STATUSES:
        return Outcome.HARD_BLOCKED
    if status == 0 or status >= 500 or not extraction.ids:
        return Outcome.TRANSIENT
    return Outcome.SUCCESS


class Step(str, Enum):
    BACKOFF = "backoff"
    DONE = "done"


def next_step(outcome: Outcome, attempt: int, max_attempts: int) -> Step:
    """Transition out of Attempting(attempt) given that attempt's outcome."""
    if outcome is Outcome.TRANSIENT and attempt < max_attempts:
        return Step.BACKOFF
    return Step.DONE


def backoff_delay(attempt: int, base: float = BASE_DELAY_S, jitter: float = JITTER_S, rand=random.random) -> float:
    """Delay after failed attempt `attempt` (1-based): base * attempt plus up to `jitter`."""
    return base * attempt + jitter * rand()


class RetrievalPolicy:
    """
    Fetch a search page with up to `max_attempts` attempts.

    Stateless across calls: every retrieve() starts at Attempting(1).
    """

    def __init__(
        self,
        fetch: Fetcher,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY_S,
        jitter: float = JITTER_S,
        classifier: Classifier = classify,
        sleep: Callable[[float], None] = time.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.fetch = fetch
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.jitter = jitter
        self.classifier = classifier
        self.sleep = sleep
        self.rand = rand

    def _attempt(self, url: str) -> FetchResult:
        try:
            return self.fetch(url)
        except FetchError as e:
            LOG.warning("No response from %s: %s", url, e)
            return FetchResult(status=0, body=str(e), via="none")

    def retrieve(self, url: str) -> RetrievalResult:
        base = normalize_base(url)
        attempt = 1
        while True:
            res = self._attempt(url)
            extraction = extract_ids_and_urls(res.body, base)
            outcome = self.classifier(res.status, extraction)
            LOG.debug(
                "Attempt %d/%d for %s: HTTP %s (%s), %d ids -> %s",
                attempt,
                self.max_attempts,
                url,
                res.status,
                (res.content_type.split(";")[0] or "(unknown)"),
                len(extraction.ids),
                outcome.value,
            )

            if outcome is Outcome.SUCCESS:
                return RetrievalResult(
                    url=url,
                    outcome=outcome,
                    attempts=attempt,
                    status=res.status,
                    body=res.body,
                    extraction=extraction,
                )

            excerpt = snippet(res.body, EXCERPT_CHARS)
            if outcome is Outcome.HARD_BLOCKED:
                LOG.warning("Hard blocked (HTTP %s) on %s; not retrying", res.status, url)
                return RetrievalResult(url=url, outcome=outcome, attempts=attempt, status=res.status, excerpt=excerpt)

            if next_step(outcome, attempt, self.max_attempts) is Step.DONE:
                LOG.warning("Giving up on %s after %d attempts (HTTP %s)", url, attempt, res.status)
                return RetrievalResult(url=url, outcome=outcome, attempts=attempt, status=res.status, excerpt=excerpt)

            # Backoff -> Attempting(n + 1)
            delay = backoff_delay(attempt, self.base_delay, self.jitter, self.rand)
            LOG.info(
                "Transient failure on %s (HTTP %s, %d ids); retrying in %.2fs (attempt %d/%d)",
                url,
                res.status,
                len(extraction.ids),
                delay,
                attempt,
                self.max_attempts,
            )
            self.sleep(delay)
            attempt += 1
