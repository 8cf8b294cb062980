# listing_watch/http_client.py
from __future__ import annotations

import logging
from collections.abc import Callable

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .models import FetchResult

LOG = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120 Safari/537.36"
)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

HARD_BLOCK_STATUSES = frozenset({401, 403, 429})

Fetcher = Callable[[str], FetchResult]


class FetchError(RuntimeError):
    """A transport failed to produce any response (DNS, connect, TLS, timeout...)."""


class HttpClient:
    """
    Shared HTTP transport with browser-like defaults.

    fetch() never raises on HTTP status; every status is returned to the
    caller for classification. Only transport failures raise FetchError.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent, **DEFAULT_HEADERS})

        # Connection-level retries only; status retries belong to the retrieval policy.
        retry = Retry(
            total=2,
            connect=2,
            read=0,
            status=0,
            backoff_factor=0.5,
            allowed_methods=frozenset(["GET", "HEAD"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=4)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def fetch(self, url: str) -> FetchResult:
        """GET `url` following redirects; return status, content type and decoded body."""
        try:
            resp = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            raise FetchError(f"GET {url!r} failed: {e!r}") from e

        if not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return FetchResult(
            status=resp.status_code,
            content_type=resp.headers.get("content-type", ""),
            body=resp.text,
            via="http",
        )

    __call__ = fetch

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)


class FallbackFetcher:
    """
    Compose a primary transport with an alternative one (e.g. a headless browser).

    The fallback is consulted only when the primary answers with a hard-block
    status; callers cannot tell which transport produced the result except via
    FetchResult.via.
    """

    def __init__(self, primary: Fetcher, fallback: Fetcher) -> None:
        self.primary = primary
        self.fallback = fallback

    def __call__(self, url: str) -> FetchResult:
        res = self.primary(url)
        if res.status not in HARD_BLOCK_STATUSES:
            return res
        LOG.info("Primary transport blocked (HTTP %s) for %s; trying fallback", res.status, url)
        try:
            return self.fallback(url)
        except FetchError as e:
            LOG.warning("Fallback transport failed for %s: %s", url, e)
            return res

    def close(self) -> None:
        for t in (self.primary, self.fallback):
            close = getattr(t, "close", None)
            if callable(close):
                close()
