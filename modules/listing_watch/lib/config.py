from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from .utils import getenv_str, truthy


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Models
# -----------------------------
@dataclass
class Settings:
    """
    Canonical configuration for a 'listing_watch' run.

    search_urls is required; everything else has a default. seen_path falls
    back to $SEEN_PATH, then to ./seen.json.
    """

    search_urls: list[str] = field(default_factory=list)
    watch_seconds: float | None = None
    bootstrap: bool = False

    # Deal detection (None = report every new listing)
    mode: str | None = None
    max_price: float = 25.0
    currency: str = "EUR"

    # Runtime behavior
    seen_path: str = "seen.json"
    timeout: float = 15.0
    max_attempts: int = 3
    browser_fallback: bool = False
    user_agent: str | None = None
    verbose: bool = False

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation.

        Expected kwargs (all optional unless stated otherwise):

            search_urls: list[str] | str   # required
            watch_seconds: float | null    # poll interval; null = single pass
            bootstrap: bool = false        # first pass seeds the store silently

            mode: str | null = null        # deal detector, e.g. "gold"
            max_price: float = 25
            currency: str = "EUR"

            seen_path: str                 # default $SEEN_PATH or "seen.json"
            timeout: float = 15
            max_attempts: int = 3
            browser_fallback: bool = false
            user_agent: str | null
            verbose: bool = false
        """
        kw = dict(kwargs or {})

        raw_urls = kw.get("search_urls") or kw.get("search_url") or []
        if isinstance(raw_urls, str):
            raw_urls = [raw_urls]
        search_urls = [str(u).strip() for u in raw_urls if str(u).strip()]

        watch = kw.get("watch_seconds")
        try:
            watch_seconds = float(watch) if watch not in (None, "") else None
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid 'watch_seconds': {watch!r}") from e

        mode = str(kw.get("mode") or "").strip().lower() or None

        try:
            max_price = float(_or_default(kw.get("max_price"), 25.0))
            timeout = float(_or_default(kw.get("timeout"), 15.0))
            max_attempts = int(_or_default(kw.get("max_attempts"), 3))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        seen_path = str(kw.get("seen_path") or getenv_str("SEEN_PATH") or "seen.json")

        settings = cls(
            search_urls=search_urls,
            watch_seconds=watch_seconds,
            bootstrap=truthy(kw.get("bootstrap")),
            mode=mode,
            max_price=max_price,
            currency=str(kw.get("currency") or "EUR").strip().upper(),
            seen_path=os.path.expanduser(seen_path),
            timeout=timeout,
            max_attempts=max_attempts,
            browser_fallback=truthy(kw.get("browser_fallback")),
            user_agent=(str(kw["user_agent"]).strip() or None) if kw.get("user_agent") else None,
            verbose=truthy(kw.get("verbose")),
        )
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _or_default(value: Any, default: Any) -> Any:
    return default if value in (None, "") else value


def _validate_settings(s: Settings) -> None:
    if not s.search_urls:
        raise ConfigError("At least one search URL is required ('search_urls').")
    for u in s.search_urls:
        parts = urlsplit(u)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ConfigError(f"Invalid URL: {u!r}")

    if s.watch_seconds is not None and not s.watch_seconds > 0:
        raise ConfigError("'watch_seconds' must be > 0 (example: 60).")
    if s.max_price < 0:
        raise ConfigError("'max_price' must be >= 0.")
    if s.timeout <= 0:
        raise ConfigError("'timeout' must be > 0.")
    if s.max_attempts < 1:
        raise ConfigError("'max_attempts' must be >= 1.")
    if len(s.currency) != 3 or not s.currency.isalpha():
        raise ConfigError(f"'currency' must be a 3-letter code (got {s.currency!r}).")

    if s.mode is not None:
        from .deals import all_modes

        if s.mode not in all_modes():
            raise ConfigError(f"Unknown mode {s.mode!r}; choose from {sorted(all_modes())}.")
