# tests/test_engine.py
import json
import os

import pytest

from modules.listing_watch.lib.deals import DealStage, GoldDealDetector
from modules.listing_watch.lib.engine import CycleRunner
from modules.listing_watch.lib.models import FetchResult, Outcome
from modules.listing_watch.lib.retrieval import RetrievalPolicy
from modules.listing_watch.lib.seen_store import SeenStore
from service.logging_utils import get_activity_log_path, read_records


@pytest.fixture
def make_runner(fake_fetch, sleeps, reports, seen_path):
    def _make(store=None, deal_stage=None):
        policy = RetrievalPolicy(fake_fetch, sleep=sleeps, rand=lambda: 0.0)
        return CycleRunner(
            policy,
            store if store is not None else SeenStore.load(seen_path),
            deal_stage=deal_stage,
            reporter=reports,
        )

    return _make


def _error_log_records(tmp_path):
    logs = tmp_path / "logs"
    return [r for p in sorted(logs.glob("error-test-*.jsonl")) for r in read_records(str(p))]


def test_new_listings_reported_in_page_order(make_runner, fake_fetch, pages, reports, seen_path):
    fake_fetch.ok(pages.search_url, pages.search("30", "10", "20"))
    report = make_runner().run(pages.search_url)

    assert report.outcome is Outcome.SUCCESS
    assert report.new_urls == [f"{pages.base}/items/{i}" for i in ("30", "10", "20")]
    assert report.found == 3
    assert report.observed == 3
    assert reports.collected == [report]
    assert SeenStore.load(seen_path).ids() == {"10", "20", "30"}


def test_rerun_on_unchanged_page_reports_nothing(make_runner, fake_fetch, pages):
    fake_fetch.ok(pages.search_url, pages.search("1", "2"))
    make_runner().run(pages.search_url)

    # fresh runner, state reloaded from disk
    again = make_runner().run(pages.search_url)
    assert again.ok
    assert again.new_urls == []
    assert again.observed == 0


def test_only_unseen_ids_are_reported(make_runner, fake_fetch, pages, seen_path):
    SeenStore(seen_path, ["1", "2"]).save()
    fake_fetch.ok(pages.search_url, pages.search("1", "2", "3"))

    report = make_runner().run(pages.search_url)
    assert report.new_urls == [f"{pages.base}/items/3"]


def test_failure_leaves_store_untouched(make_runner, fake_fetch, pages, seen_path, tmp_path):
    SeenStore(seen_path, ["7"]).save()
    with open(seen_path, "rb") as f:
        before = f.read()

    fake_fetch.queue(pages.search_url, FetchResult(status=403, body="<h1>Forbidden</h1>"))
    report = make_runner().run(pages.search_url)

    assert report.outcome is Outcome.HARD_BLOCKED
    assert report.new_urls == []
    assert report.excerpt == "<h1>Forbidden</h1>"
    with open(seen_path, "rb") as f:
        assert f.read() == before

    errs = _error_log_records(tmp_path)
    assert errs and errs[-1]["outcome"] == "hard_blocked"
    assert errs[-1]["attempts"] == 1


def test_exhausted_retries_do_not_create_state(make_runner, fake_fetch, pages, seen_path, sleeps):
    fake_fetch.queue(pages.search_url, FetchResult(status=200, body="<html>empty</html>"))
    report = make_runner().run(pages.search_url)

    assert report.outcome is Outcome.TRANSIENT
    assert len(sleeps.calls) == 2
    assert not os.path.exists(seen_path)


def test_store_is_saved_even_when_nothing_is_new(make_runner, fake_fetch, pages, seen_path):
    store = SeenStore(seen_path, ["1"])
    assert not os.path.exists(seen_path)

    fake_fetch.ok(pages.search_url, pages.search("1"))
    report = make_runner(store=store).run(pages.search_url)

    assert report.new_urls == []
    with open(seen_path, encoding="utf-8") as f:
        assert json.load(f)["seen"] == ["1"]


def test_bootstrap_records_everything_and_reports_nothing(make_runner, fake_fetch, pages, seen_path):
    fake_fetch.ok(pages.search_url, pages.search("1", "2", "3"))
    report = make_runner().run(pages.search_url, bootstrap=True)

    assert report.new_urls == []
    assert report.observed == 3
    assert report.bootstrap
    assert SeenStore.load(seen_path).ids() == {"1", "2", "3"}


def test_bootstrap_skips_deal_detection(make_runner, fake_fetch, pages):
    fake_fetch.ok(pages.search_url, pages.search("1"))
    stage = DealStage(detector=GoldDealDetector(), fetch=fake_fetch)

    make_runner(deal_stage=stage).run(pages.search_url, bootstrap=True)
    assert fake_fetch.calls == [pages.search_url]


def test_deal_stage_filters_report_but_not_store(make_runner, fake_fetch, pages, seen_path):
    fake_fetch.ok(pages.search_url, pages.search("1", "2"))
    fake_fetch.ok(f"{pages.base}/items/1", pages.detail("14k goud", price="9.95", currency="EUR", title="Ring"))
    fake_fetch.ok(f"{pages.base}/items/2", pages.detail("gold plated 14k", price="2", currency="EUR"))
    stage = DealStage(detector=GoldDealDetector(max_price=25), fetch=fake_fetch)

    report = make_runner(deal_stage=stage).run(pages.search_url)

    assert report.new_urls == [f"{pages.base}/items/1"]
    assert [(d.price, d.title) for d in report.deals] == [(9.95, "Ring")]
    assert report.observed == 2
    # rejected listings are still seen and never re-evaluated
    assert SeenStore.load(seen_path).ids() == {"1", "2"}


def test_deal_stage_not_called_without_new_listings(make_runner, fake_fetch, pages, seen_path):
    SeenStore(seen_path, ["1"]).save()
    fake_fetch.ok(pages.search_url, pages.search("1"))
    stage = DealStage(detector=GoldDealDetector(), fetch=fake_fetch)

    make_runner(deal_stage=stage).run(pages.search_url)
    assert fake_fetch.calls == [pages.search_url]


def test_cycle_writes_activity_record(make_runner, fake_fetch, pages):
    fake_fetch.ok(pages.search_url, pages.search("1", "2"))
    make_runner().run(pages.search_url)

    recs = [r for r in read_records(get_activity_log_path()) if r.get("op") == "cycle"]
    assert len(recs) == 1
    rec = recs[0]
    assert rec["url"] == pages.search_url
    assert (rec["found"], rec["observed"], rec["reported"], rec["seen_total"]) == (2, 2, 2, 2)
    assert rec["deal_mode"] is None
    assert isinstance(rec["total_us"], int)
