# tests/conftest.py
import os
import types
import warnings
from collections import defaultdict, deque

import pytest
from freezegun import freeze_time

from modules.listing_watch.lib.http_client import FetchError
from modules.listing_watch.lib.models import FetchResult

warnings.filterwarnings("error", category=DeprecationWarning, module="modules")

BASE = "https://www.vinted.nl"
SEARCH_URL = f"{BASE}/catalog?search_text=gouden+ring&order=newest_first"


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch, tmp_path):
    # Structured logs go to a throwaway dir so real logs stay clean (per test)
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.delenv("SEEN_PATH", raising=False)
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


@pytest.fixture
def seen_path(tmp_path):
    return str(tmp_path / "state" / "seen.json")


@pytest.fixture
def write_min_config(tmp_path, monkeypatch):
    cfg = {
        "jobs": [
            {
                "id": "rings",
                "summary": "pytest config",
                "trigger": {"interval": {"minutes": 5}},
                "kwargs": {
                    "search_urls": [SEARCH_URL],
                    "mode": "gold",
                    "seen_path": str(tmp_path / "state" / "rings.json"),
                },
            }
        ]
    }
    import json

    p = tmp_path / "config.json"
    p.write_text(json.dumps(cfg), encoding="utf-8")
    monkeypatch.setenv("CONFIG_PATH", str(p))
    return p


# ---------------------------------------------------------------------
# Markup builders
# ---------------------------------------------------------------------
def search_page(*ids, base=BASE):
    cards = "\n".join(
        f'<div class="feed-grid__item"><a href="{base}/items/{i}-gouden-ring?referrer=catalog">ring {i}</a></div>'
        for i in ids
    )
    return f"<html><body><div class='feed-grid'>{cards}</div></body></html>"


def detail_page(text, *, price=None, currency=None, title="Gouden ring"):
    data = ""
    if price is not None:
        cur = f',"currency_code":"{currency}"' if currency else ""
        data = f'<script type="application/json">{{"item":{{"price":{{"amount":"{price}"{cur}}}}}}}</script>'
    return (
        f'<html><head><title>{title} | Vinted</title><meta property="og:title" content="{title}"></head>'
        f"<body><div class='details'>{text}</div>{data}</body></html>"
    )


@pytest.fixture
def pages():
    return types.SimpleNamespace(search=search_page, detail=detail_page, base=BASE, search_url=SEARCH_URL)


# ---------------------------------------------------------------------
# Transport + clock stubs
# ---------------------------------------------------------------------
class FakeFetcher:
    """
    Scripted transport: per-URL queue of FetchResult (or exceptions).
    The last queued response repeats once the queue is drained.
    """

    def __init__(self):
        self.responses = defaultdict(deque)
        self.calls = []

    def queue(self, url, *responses):
        self.responses[url].extend(responses)
        return self

    def ok(self, url, body, status=200):
        return self.queue(url, FetchResult(status=status, content_type="text/html; charset=utf-8", body=body))

    def __call__(self, url):
        self.calls.append(url)
        q = self.responses.get(url)
        if not q:
            raise FetchError(f"no scripted response for {url}")
        res = q.popleft() if len(q) > 1 else q[0]
        if isinstance(res, Exception):
            raise res
        return res


@pytest.fixture
def fake_fetch():
    return FakeFetcher()


@pytest.fixture
def sleeps():
    """Recording replacement for time.sleep."""
    calls = []

    def _sleep(s):
        calls.append(s)

    _sleep.calls = calls
    return _sleep


@pytest.fixture
def reports():
    """Reporter that collects CycleReports instead of printing."""
    collected = []

    def _report(r):
        collected.append(r)

    _report.collected = collected
    return _report
