"""
Headless-browser transport (Playwright/Chromium).

Same contract as HttpClient.fetch; used as the fallback when plain HTTP is
hard-blocked. One browser is launched lazily and shared for the process.

Playwright's sync API is bound to the thread that started it, so every
browser call (launch, fetch, close) runs on one private worker thread no
matter which thread calls fetch() or close().
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from .http_client import DEFAULT_USER_AGENT, FetchError
from .models import FetchResult

LOG = logging.getLogger(__name__)

_BLOCKED_RESOURCES = frozenset({"image", "media", "font"})


def _block_heavy(route) -> None:
    if route.request.resource_type in _BLOCKED_RESOURCES:
        route.abort()
    else:
        route.continue_()


def _close_quietly(obj, what: str) -> None:
    try:
        obj.close()
    except PlaywrightError:
        LOG.debug("%s close swallow", what, exc_info=True)


class BrowserFetcher:
    def __init__(
        self,
        timeout_ms: int = 20_000,
        user_agent: str = DEFAULT_USER_AGENT,
        locale: str = "nl-NL",
    ) -> None:
        self.timeout_ms = int(timeout_ms)
        self.user_agent = user_agent
        self.locale = locale
        self._pw = None
        self._browser = None
        self._closed = False
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="browser-fetch")

    # ---- public API (any thread) ----
    def fetch(self, url: str) -> FetchResult:
        if self._closed:
            raise FetchError("browser transport is closed")
        return self._worker.submit(self._fetch, url).result()

    __call__ = fetch

    def close(self) -> None:
        """Tear down the shared browser, if one was started, and stop the worker."""
        if self._closed:
            return
        self._closed = True
        try:
            self._worker.submit(self._shutdown).result()
        finally:
            self._worker.shutdown(wait=True)

    # ---- worker thread only ----
    def _get_browser(self):
        if self._browser is None:
            self._pw = sync_playwright().start()
            self._browser = self._pw.chromium.launch(headless=True)
            LOG.info(">>> Headless browser launched")
        return self._browser

    def _fetch(self, url: str) -> FetchResult:
        try:
            context = self._get_browser().new_context(user_agent=self.user_agent, locale=self.locale)
        except PlaywrightError as e:
            raise FetchError(f"browser launch failed: {e}") from e

        page = None
        try:
            page = context.new_page()
            page.route("**/*", _block_heavy)
            resp = page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
            html = page.content()
            status = resp.status if resp is not None else 200
            ctype = (resp.headers.get("content-type", "") if resp is not None else "") or "text/html"
            return FetchResult(status=status, content_type=ctype, body=html, via="playwright")
        except PlaywrightError as e:
            raise FetchError(f"browser GET {url!r} failed: {e}") from e
        finally:
            if page is not None:
                _close_quietly(page, "page")
            _close_quietly(context, "context")

    def _shutdown(self) -> None:
        if self._browser is not None:
            _close_quietly(self._browser, "browser")
            self._browser = None
        if self._pw is not None:
            self._pw.stop()
            self._pw = None
