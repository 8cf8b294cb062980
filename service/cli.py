# service/cli.py
"""
User-facing command-line entrypoints.

Subcommands
-----------
watch URL [URL ...] [--watch SECONDS] [--bootstrap] [--mode gold] [--max-price N] ...
    - Runs the listing watcher in the foreground (one pass, or forever with --watch)

serve
    - Starts the APScheduler service loop via service.scheduler.start()
    - Registers signal handlers for graceful shutdown

list-jobs
    - Loads config via config_schema.load_config() and prints configured jobs

validate-config
    - Loads/validates config and returns nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from datetime import datetime
from types import SimpleNamespace
from typing import Any

from modules.listing_watch.lib.config import ConfigError as SettingsError
from modules.listing_watch.lib.deals import all_modes
from service import config_schema as _config_schema
from service import logging_utils as L

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging(verbose: bool = False) -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    level = "DEBUG" if verbose else os.getenv("LOG_LEVEL", "INFO").upper()
    if not root.handlers:
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    elif verbose:
        root.setLevel(logging.DEBUG)


# -------------------------- Utility / glue code ------------------------------
def _now_iso():
    return datetime.now().astimezone().isoformat()


def _print_table(rows: Iterable[tuple[str, str]], headers: tuple[str, str] = ("ID", "DETAILS")) -> None:
    """Very simple two-column table printer."""
    rows = list(rows)
    w0 = max(len(headers[0]), *(len(r[0]) for r in rows)) if rows else len(headers[0])
    w1 = max(len(headers[1]), *(len(r[1]) for r in rows)) if rows else len(headers[1])
    sep = f"+-{'-' * w0}-+-{'-' * w1}-+"
    print(sep)
    print(f"| {headers[0].ljust(w0)} | {headers[1].ljust(w1)} |")
    print(sep)
    for c0, c1 in rows:
        print(f"| {c0.ljust(w0)} | {c1.ljust(w1)} |")
    print(sep)


def _describe_job(job: dict[str, Any]) -> str:
    if job.get("summary") or job.get("description"):
        return str(job.get("summary") or job.get("description"))
    urls = (job.get("kwargs") or {}).get("search_urls") or []
    every = json.dumps((job.get("trigger") or {}).get("interval"), sort_keys=True)
    return f"{len(urls)} url(s) every {every}"


# ------------------------------ Subcommands ----------------------------------
def cmd_watch(args: argparse.Namespace) -> int:
    from modules.listing_watch.main import run as run_watch

    kwargs: dict[str, Any] = {
        "search_urls": args.urls,
        "watch_seconds": args.watch,
        "bootstrap": args.bootstrap,
        "mode": args.mode,
        "max_price": args.max_price,
        "currency": args.currency,
        "browser_fallback": args.browser_fallback,
        "verbose": args.verbose,
    }
    if args.seen_path:
        kwargs["seen_path"] = args.seen_path

    start_time = time.monotonic()
    try:
        passes = run_watch(**kwargs)
    except SettingsError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        LOG.exception("Watch failed: %s", e)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.watch",
            "urls": args.urls,
            "error": repr(e),
            "duration_ms": int((time.monotonic() - start_time) * 1000),
        })
        print(f"FAILURE: {e}", file=sys.stderr)
        return 1

    L.write_activity_log({
        "ts": _now_iso(),
        "event": "cli_watch",
        "urls": args.urls,
        "passes": passes,
        "duration_ms": int((time.monotonic() - start_time) * 1000),
    })
    print("\nDone.")
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
        _config_schema.validate(cfg)
        print("OK: configuration is valid.")
        return 0
    except KeyboardInterrupt:
        return 130
    except _config_schema.ConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 2


def cmd_list_jobs(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
    except _config_schema.ConfigError as e:
        print(f"ERROR: failed to list jobs: {e}", file=sys.stderr)
        return 2
    rows = [(str(j["id"]), _describe_job(j)) for j in cfg.get("jobs", [])]
    if not rows:
        print("No jobs found in config.")
        return 0
    _print_table(rows, headers=("JOB", "DETAILS"))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the scheduler until a termination signal is received.
    """
    from service import scheduler as _scheduler

    L.write_activity_log({"ts": _now_iso(), "event": "serve_start"})

    stop_event = threading.Event()
    running = SimpleNamespace(sched=None)

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)

    try:
        running.sched = _scheduler.start(config_path=args.config)
        LOG.info("Scheduler started: %r", running.sched)

        # Main wait loop (respond quickly to signals)
        while not stop_event.is_set():
            time.sleep(0.3)

        running.sched.stop()
        L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})
        return 0

    except (_config_schema.ConfigError, SettingsError) as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        if running.sched is not None:
            running.sched.stop()
        return 130


# ------------------------------- Argparse ------------------------------------
def _positive_float(raw: str) -> float:
    try:
        v = float(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected a number, got {raw!r}") from e
    if not v > 0:
        raise argparse.ArgumentTypeError("must be > 0 (example: --watch 60)")
    return v


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="listing-watch",
        description="Marketplace listing watcher",
    )
    p.add_argument(
        "--config",
        help="Path to service config file (fallbacks to CONFIG_PATH env).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # watch
    sp = sub.add_parser("watch", help="Watch one or more search URLs in the foreground.")
    sp.add_argument("urls", nargs="+", metavar="URL", help="Search-results page URL(s).")
    sp.add_argument("--watch", type=_positive_float, metavar="SECONDS", help="Poll every N seconds.")
    sp.add_argument("--bootstrap", action="store_true", help="Seed the seen store silently on the first pass.")
    sp.add_argument("--mode", choices=sorted(all_modes()), help="Filter new listings through a deal detector.")
    sp.add_argument("--max-price", type=float, default=25.0, help="Price ceiling for the deal detector.")
    sp.add_argument("--currency", default="EUR", help="Expected currency for price extraction.")
    sp.add_argument("--seen-path", help="Seen store JSON path (default: $SEEN_PATH or ./seen.json).")
    sp.add_argument(
        "--browser-fallback",
        action="store_true",
        help="Retry hard-blocked fetches with a headless browser (needs the 'browser' extra).",
    )
    sp.add_argument("-v", "--verbose", action="store_true", help="Debug logging and deal diagnostics.")
    sp.set_defaults(func=cmd_watch)

    # serve
    sp = sub.add_parser("serve", help="Run every configured watch job on its interval.")
    sp.set_defaults(func=cmd_serve)

    # list-jobs
    sp = sub.add_parser("list-jobs", help="Print all jobs from config.")
    sp.set_defaults(func=cmd_list_jobs)

    # validate-config
    sp = sub.add_parser("validate-config", help="Verify configuration correctness.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    _ensure_logging(verbose=getattr(args, "verbose", False))
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
