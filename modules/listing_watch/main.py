from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.deals import DealStage, build_detector
from .lib.engine import CycleRunner, Reporter, print_report
from .lib.http_client import DEFAULT_USER_AGENT, Fetcher, FallbackFetcher, HttpClient
from .lib.logging_bridge import activity as log_activity
from .lib.poller import Poller
from .lib.retrieval import RetrievalPolicy
from .lib.seen_store import SeenStore


def build_fetcher(settings: Settings) -> Fetcher:
    """HTTP transport, wrapped with the headless-browser fallback when enabled."""
    http = HttpClient(timeout=settings.timeout, user_agent=settings.user_agent or DEFAULT_USER_AGENT)
    if not settings.browser_fallback:
        return http

    # Imported lazily: Playwright is an optional extra.
    from .lib.browser_fetch import BrowserFetcher

    return FallbackFetcher(http, BrowserFetcher(timeout_ms=int(settings.timeout * 1000)))


def build_poller(
    settings: Settings,
    *,
    store: SeenStore | None = None,
    fetch: Fetcher | None = None,
    reporter: Reporter = print_report,
    sleep=None,
) -> Poller:
    """
    Wire settings into a ready-to-run Poller.

    store/fetch/reporter/sleep may be injected (tests, the service scheduler
    sharing one store per path).
    """
    store = store if store is not None else SeenStore.load(settings.seen_path)
    fetch = fetch or build_fetcher(settings)

    policy = RetrievalPolicy(fetch, max_attempts=settings.max_attempts)
    stage = None
    if settings.mode:
        detector = build_detector(settings.mode, max_price=settings.max_price, currency=settings.currency)
        stage = DealStage(detector=detector, fetch=fetch, debug=settings.verbose)

    runner = CycleRunner(policy, store, deal_stage=stage, reporter=reporter)
    extra = {"sleep": sleep} if sleep is not None else {}
    return Poller(
        runner,
        settings.search_urls,
        interval_s=settings.watch_seconds,
        bootstrap=settings.bootstrap,
        **extra,
    )


def run(**kwargs: Any) -> int:
    """
    Entry point for the 'listing_watch' module.

    Accepts kwargs (from the CLI or a service job), see Settings.from_env_and_kwargs:
      search_urls: list[str]
      watch_seconds: float | None
      bootstrap: bool
      mode: "gold" | None
      max_price: float
      seen_path: str
      browser_fallback: bool
      verbose: bool

    Returns:
      Number of passes performed (runs forever when watch_seconds is set).
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "listing_watch.main",
        "op": "start",
        "urls": settings.search_urls,
        "seen_path": settings.seen_path,
        "flags": {
            "watch_seconds": settings.watch_seconds,
            "bootstrap": settings.bootstrap,
            "mode": settings.mode,
            "max_price": settings.max_price,
            "browser_fallback": settings.browser_fallback,
        },
    })

    fetch = build_fetcher(settings)
    try:
        poller = build_poller(settings, fetch=fetch)
        return poller.run()
    finally:
        close = getattr(fetch, "close", None)
        if callable(close):
            close()
