import pytest

from modules.listing_watch import main as lw_main
from modules.listing_watch.lib.config import ConfigError, Settings
from modules.listing_watch.lib.http_client import FallbackFetcher, HttpClient
from modules.listing_watch.lib.seen_store import SeenStore


def test_build_fetcher_plain_http():
    s = Settings.from_env_and_kwargs({"search_urls": ["https://www.vinted.nl/catalog"], "timeout": 4})
    f = lw_main.build_fetcher(s)
    assert isinstance(f, HttpClient)
    assert f.timeout == 4.0
    f.close()


def test_build_fetcher_with_browser_fallback():
    pytest.importorskip("playwright")
    s = Settings.from_env_and_kwargs({"search_urls": ["https://www.vinted.nl/catalog"], "browser_fallback": True})
    f = lw_main.build_fetcher(s)
    assert isinstance(f, FallbackFetcher)
    assert f.fallback.timeout_ms == 15_000


def test_run_end_to_end_with_bootstrap_then_new(monkeypatch, fake_fetch, pages, seen_path, capsys):
    monkeypatch.setattr(lw_main, "build_fetcher", lambda settings: fake_fetch)

    fake_fetch.ok(pages.search_url, pages.search("1", "2"))
    assert lw_main.run(search_urls=[pages.search_url], seen_path=seen_path, bootstrap=True) == 1
    out, _ = capsys.readouterr()
    assert "Bootstrap: 2 listing(s)" in out
    assert "/items/" not in out

    fake_fetch.responses.clear()
    fake_fetch.ok(pages.search_url, pages.search("1", "2", "3"))
    lw_main.run(search_urls=[pages.search_url], seen_path=seen_path)
    out, _ = capsys.readouterr()
    assert "NEW: 1" in out
    assert f"{pages.base}/items/3" in out
    assert SeenStore.load(seen_path).ids() == {"1", "2", "3"}


def test_run_gold_mode_reports_only_deals(monkeypatch, fake_fetch, pages, seen_path, reports):
    fake_fetch.ok(pages.search_url, pages.search("1", "2"))
    fake_fetch.ok(f"{pages.base}/items/1", pages.detail("18k goud", price="20", currency="EUR"))
    fake_fetch.ok(f"{pages.base}/items/2", pages.detail("18k goud", price="200", currency="EUR"))
    s = Settings.from_env_and_kwargs({"search_urls": [pages.search_url], "seen_path": seen_path, "mode": "gold"})

    lw_main.build_poller(s, fetch=fake_fetch, reporter=reports).run()

    (report,) = reports.collected
    assert report.new_urls == [f"{pages.base}/items/1"]


def test_run_closes_transport(monkeypatch, fake_fetch, pages, seen_path):
    closed = []
    fake_fetch.close = lambda: closed.append(True)
    monkeypatch.setattr(lw_main, "build_fetcher", lambda settings: fake_fetch)
    fake_fetch.ok(pages.search_url, pages.search("1"))

    lw_main.run(search_urls=[pages.search_url], seen_path=seen_path)
    assert closed == [True]


def test_run_rejects_bad_settings():
    with pytest.raises(ConfigError):
        lw_main.run(search_urls=["notaurl"])


@pytest.mark.live
def test_live_single_pass(tmp_path, reports):
    s = Settings.from_env_and_kwargs({
        "search_urls": ["https://www.vinted.nl/catalog?search_text=14k+gold&order=newest_first"],
        "seen_path": str(tmp_path / "seen.json"),
    })
    lw_main.build_poller(s, reporter=reports).run()
    assert len(reports.collected) == 1
