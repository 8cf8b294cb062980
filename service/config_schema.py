# service/config_schema.py
"""
Service configuration: a list of watch jobs, each polling its own search URLs.

    {
      "jobs": [
        {
          "id": "rings",
          "summary": "gold rings under 25",
          "trigger": {"interval": {"minutes": 5, "jitter": 20}},
          "kwargs": {"search_urls": ["https://..."], "mode": "gold", "bootstrap": true}
        }
      ]
    }

JSON always; YAML when PyYAML is installed.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

try:
    import yaml  # type: ignore
except Exception:  # pragma: no cover
    yaml = None  # YAML optional


class ConfigError(ValueError):
    """Raised when the config is invalid."""


@dataclass
class _LoadResult:
    cfg: dict[str, Any]
    source: str


INTERVAL_FIELDS = ("weeks", "days", "hours", "minutes", "seconds")
_INTERVAL_EXTRAS = ("jitter",)


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Load the service configuration.

    Resolution order:
      1) Explicit `path` argument (if provided)
      2) os.environ['CONFIG_PATH'] (if set)
      3) Empty config with an empty jobs list

    Returns:
        dict with at least {"jobs": [...]}; every job carries a derived "id".
    """
    resolved_path = path or os.environ.get("CONFIG_PATH")
    if not resolved_path:
        logger.info("CONFIG_PATH not provided; using empty default config.")
        cfg: dict[str, Any] = {"jobs": []}
        _apply_top_level_defaults(cfg)
        return cfg

    cfg = _read_any(resolved_path).cfg
    if not isinstance(cfg, dict):
        raise ConfigError(f"Top-level config in {resolved_path} must be an object.")
    _apply_top_level_defaults(cfg)
    return cfg


def validate(cfg: dict[str, Any]) -> None:
    """
    Validate the configuration. Raise ConfigError on any problem.
    Job kwargs are checked with the watcher's own Settings validation.
    """
    from modules.listing_watch.lib.config import ConfigError as SettingsError
    from modules.listing_watch.lib.config import Settings

    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")

    jobs = cfg.get("jobs")
    if jobs is None:
        raise ConfigError("Missing required top-level 'jobs' list.")
    if not isinstance(jobs, list):
        raise ConfigError("'jobs' must be a list.")

    seen_ids: set[str] = set()
    for idx, job in enumerate(jobs):
        if not isinstance(job, dict):
            raise ConfigError(f"Job at index {idx} must be an object/dict.")

        job_id = _derive_job_id(job, idx)
        if job_id in seen_ids:
            raise ConfigError(f"Duplicate job id '{job_id}'.")
        seen_ids.add(job_id)

        kwargs = job.get("kwargs", {})
        if not isinstance(kwargs, dict):
            raise ConfigError(f"Job '{job_id}': 'kwargs' must be a dict if provided.")
        if kwargs.get("watch_seconds") is not None:
            raise ConfigError(f"Job '{job_id}': use 'trigger.interval' instead of kwargs.watch_seconds.")
        try:
            Settings.from_env_and_kwargs(kwargs)
        except SettingsError as e:
            raise ConfigError(f"Job '{job_id}': {e}") from e

        interval_kwargs(job.get("trigger"), job_id)

        for opt_str in ("summary", "description"):
            if opt_str in job and not isinstance(job[opt_str], str):
                raise ConfigError(f"Job '{job_id}': '{opt_str}' must be a string if provided.")


def interval_kwargs(trigger: Any, job_id: str) -> dict[str, int]:
    """
    Validate {"interval": {...}} and return IntervalTrigger kwargs.
    Only interval triggers are meaningful for polling jobs.
    """
    if not isinstance(trigger, dict) or set(trigger) != {"interval"}:
        raise ConfigError(f"Job '{job_id}': 'trigger' must be {{\"interval\": {{...}}}}.")
    spec = trigger["interval"]
    if not isinstance(spec, dict):
        raise ConfigError(f"Job '{job_id}': interval must be an object with time fields.")

    unknown = set(spec) - set(INTERVAL_FIELDS) - set(_INTERVAL_EXTRAS)
    if unknown:
        raise ConfigError(f"Job '{job_id}': interval has unknown field(s): {sorted(unknown)}")

    out: dict[str, int] = {}
    for name in (*INTERVAL_FIELDS, *_INTERVAL_EXTRAS):
        if name in spec:
            v = _to_int(spec[name], field=f"interval.{name}", job_id=job_id)
            if v:
                out[name] = v
    if not any(out.get(f) for f in INTERVAL_FIELDS):
        raise ConfigError(f"Job '{job_id}': interval must be greater than 0.")
    return out


def _apply_top_level_defaults(cfg: dict[str, Any]) -> None:
    if "jobs" not in cfg or not isinstance(cfg["jobs"], list):
        cfg["jobs"] = []

    normalized_jobs: list[dict[str, Any]] = []
    for idx, job in enumerate(cfg["jobs"]):
        if not isinstance(job, dict):
            raise ConfigError(f"Job at index {idx} must be an object/dict.")
        job_copy = dict(job)
        job_copy["id"] = _derive_job_id(job_copy, idx)
        job_copy["kwargs"] = dict(job_copy.get("kwargs") or {})
        normalized_jobs.append(job_copy)

    cfg["jobs"] = normalized_jobs


def _derive_job_id(job: dict[str, Any], idx: int) -> str:
    for key in ("id", "name"):
        v = job.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return f"job_{idx}"


def _to_int(value: Any, *, field: str, job_id: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Job '{job_id}': '{field}' must be an integer.")
    try:
        iv = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Job '{job_id}': '{field}' must be an integer.") from err
    if iv < 0:
        raise ConfigError(f"Job '{job_id}': '{field}' must be >= 0 (got {iv}).")
    return iv


def _read_any(path: str) -> _LoadResult:
    lower = path.lower()
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if lower.endswith(".yml") or lower.endswith(".yaml"):
        if yaml is None:
            raise ConfigError("YAML config requested but PyYAML is not installed.")
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError("Top-level YAML must be a mapping/object.")
        return _LoadResult(cfg=data, source=path)

    try:
        return _LoadResult(cfg=json.loads(text), source=path)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
