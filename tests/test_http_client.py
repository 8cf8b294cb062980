# tests/test_http_client.py
import pytest
import requests

from modules.listing_watch.lib.http_client import FallbackFetcher, FetchError, HttpClient
from modules.listing_watch.lib.models import FetchResult

URL = "https://www.vinted.nl/catalog?search_text=ring"


class _Resp:
    def __init__(self, status, text, ctype="text/html; charset=utf-8"):
        self.status_code = status
        self.text = text
        self.headers = {"content-type": ctype}
        self.encoding = "utf-8"
        self.apparent_encoding = "utf-8"


def test_fetch_returns_every_status_without_raising(monkeypatch):
    client = HttpClient(timeout=3)
    seen = {}

    def _get(url, timeout, allow_redirects):
        seen.update(url=url, timeout=timeout, allow_redirects=allow_redirects)
        return _Resp(503, "<h1>busy</h1>")

    monkeypatch.setattr(client.session, "get", _get)
    res = client(URL)

    assert res == FetchResult(status=503, content_type="text/html; charset=utf-8", body="<h1>busy</h1>", via="http")
    assert seen == {"url": URL, "timeout": 3.0, "allow_redirects": True}


def test_transport_failure_raises_fetch_error(monkeypatch):
    client = HttpClient()

    def _get(*a, **kw):
        raise requests.ConnectionError("dns")

    monkeypatch.setattr(client.session, "get", _get)
    with pytest.raises(FetchError):
        client.fetch(URL)


def test_session_sends_browser_like_headers():
    client = HttpClient(user_agent="UA/1.0")
    assert client.session.headers["User-Agent"] == "UA/1.0"
    assert client.session.headers["Cache-Control"] == "no-cache"
    client.close()


class _Transport:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0
        self.closed = False

    def __call__(self, url):
        self.calls += 1
        r = self.results.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    def close(self):
        self.closed = True


def test_fallback_not_used_when_primary_answers():
    primary = _Transport(FetchResult(status=500, body="x"))
    fallback = _Transport()
    res = FallbackFetcher(primary, fallback)(URL)
    assert res.status == 500
    assert fallback.calls == 0


@pytest.mark.parametrize("status", [401, 403, 429])
def test_fallback_used_on_hard_block(status):
    primary = _Transport(FetchResult(status=status))
    fallback = _Transport(FetchResult(status=200, body="ok", via="playwright"))
    res = FallbackFetcher(primary, fallback)(URL)
    assert (res.status, res.via) == (200, "playwright")


def test_fallback_failure_keeps_primary_result():
    blocked = FetchResult(status=403, body="denied")
    primary = _Transport(blocked)
    fallback = _Transport(FetchError("no browser"))
    assert FallbackFetcher(primary, fallback)(URL) is blocked


def test_close_closes_both_transports():
    primary, fallback = _Transport(), _Transport()
    FallbackFetcher(primary, fallback).close()
    assert primary.closed and fallback.closed


@pytest.mark.live
def test_browser_fetcher_live():
    pytest.importorskip("playwright")
    from modules.listing_watch.lib.browser_fetch import BrowserFetcher

    fetcher = BrowserFetcher(timeout_ms=20_000)
    try:
        res = fetcher("https://example.com/")
    finally:
        fetcher.close()
    assert res.status == 200
    assert res.via == "playwright"
    assert "Example Domain" in res.body
