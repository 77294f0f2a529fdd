# service/config_schema.py
"""
Service config: a JSON or YAML document listing scheduled module jobs.

    timezone: Asia/Tokyo
    jobs:
      - id: pf-watch
        module: modules.pf_watch
        trigger: {cron: "*/15 * * * *"}
        kwargs: {limit: 5, filter_file_env: PF_FILTER_FILE}
        webhook_url_env: DISCORD_WEBHOOK_URL
        timeout_sec: 300

load_config() normalizes (ids, env-resolved webhook URLs, bool/int coercion);
validate() checks structure and raises ConfigError.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import yaml

logger = logging.getLogger(__name__)

INTERVAL_FIELDS = ("weeks", "days", "hours", "minutes", "seconds")
INTERVAL_OPTIONS = ("jitter", "start_date", "end_date")
CRON_FIELDS = ("second", "minute", "hour", "day", "day_of_week", "month")
CRON_OPTIONS = ("timezone", "start_date", "end_date", "jitter")

_JOB_BOOLS = ("send", "coalesce")
# field -> smallest accepted value
_JOB_INTS = {"timeout_sec": 0, "max_instances": 1, "misfire_grace_time": 0}
_JOB_STRINGS = ("summary", "description", "webhook_url")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """The service config cannot be read or is invalid."""


# ---- Loading ---------------------------------------------------------------------


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Read `path` (else $CONFIG_PATH) and normalize it. With neither set the
    service runs with no jobs.

    Always returns {"timezone": str, "jobs": [dict, ...], ...}.
    """
    source = path or os.environ.get("CONFIG_PATH")
    if source:
        raw = _read_document(source)
    else:
        logger.info("CONFIG_PATH not set; running with no jobs.")
        raw = {}

    jobs = raw.get("jobs")
    cfg = dict(raw)
    tz = raw.get("timezone")
    cfg["timezone"] = tz.strip() if isinstance(tz, str) and tz.strip() else os.environ.get("TZ", "UTC")
    cfg["jobs"] = [_normalize_job(job, idx) for idx, job in enumerate(jobs if isinstance(jobs, list) else [])]
    return cfg


def _normalize_job(job: Any, idx: int) -> dict[str, Any]:
    if not isinstance(job, dict):
        raise ConfigError(f"Job at index {idx} must be an object.")
    out = dict(job)
    out["id"] = job_id(out, idx)
    where = f"Job {out['id']!r}"

    env_name = out.pop("webhook_url_env", None)
    if isinstance(env_name, str) and env_name.strip():
        out["webhook_url"] = os.getenv(env_name.strip(), "").strip() or None

    for name in _JOB_BOOLS:
        if name in out:
            out[name] = _as_bool(out[name], f"{where}: '{name}'")
    for name, minimum in _JOB_INTS.items():
        if name in out:
            out[name] = _as_int(out[name], f"{where}: '{name}'", minimum)
    return out


def job_id(job: dict[str, Any], idx: int) -> str:
    """First non-blank of id, name, module; else a positional id."""
    for key in ("id", "name", "module"):
        v = job.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return f"job_{idx}"


def _read_document(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        if path.lower().endswith((".yml", ".yaml")):
            data = yaml.safe_load(text)
            if data is None:
                data = {}
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be an object, got {type(data).__name__}.")
    return data


# ---- Validation ------------------------------------------------------------------


def validate(cfg: dict[str, Any]) -> None:
    """Raise ConfigError on the first structural problem."""
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be an object.")
    jobs = cfg.get("jobs")
    if not isinstance(jobs, list):
        raise ConfigError("Config needs a 'jobs' list.")
    if cfg.get("timezone") is not None and not isinstance(cfg["timezone"], str):
        raise ConfigError("'timezone' must be a string.")

    seen: set[str] = set()
    for idx, job in enumerate(jobs):
        jid = _check_job(job, idx)
        if jid in seen:
            raise ConfigError(f"Duplicate job id {jid!r}.")
        seen.add(jid)


def _check_job(job: Any, idx: int) -> str:
    if not isinstance(job, dict):
        raise ConfigError(f"Job at index {idx} must be an object.")
    module = job.get("module")
    if not isinstance(module, str) or not module.strip():
        raise ConfigError(f"Job at index {idx}: 'module' must be a non-empty string.")

    jid = job_id(job, idx)
    where = f"Job {jid!r}"
    check_trigger(job.get("trigger"), where)

    if "kwargs" in job and not isinstance(job["kwargs"], dict):
        raise ConfigError(f"{where}: 'kwargs' must be an object.")
    for name in _JOB_BOOLS:
        if name in job:
            _as_bool(job[name], f"{where}: '{name}'")
    for name, minimum in _JOB_INTS.items():
        if name in job:
            _as_int(job[name], f"{where}: '{name}'", minimum)
    for name in _JOB_STRINGS:
        if job.get(name) is not None and not isinstance(job[name], str):
            raise ConfigError(f"{where}: '{name}' must be a string.")
    return jid


def check_trigger(trigger: Any, where: str = "trigger") -> None:
    """Structural check for {"cron": ...} / {"interval": {...}}; the scheduler builds it."""
    if not isinstance(trigger, dict):
        raise ConfigError(f"{where}: 'trigger' object is required.")
    kinds = [k for k in ("cron", "interval") if k in trigger]
    if len(kinds) != 1:
        raise ConfigError(f"{where}: trigger needs exactly one of 'cron' or 'interval'.")

    if kinds[0] == "cron":
        cron = trigger["cron"]
        if isinstance(cron, str):
            if len(cron.split()) != 5:
                raise ConfigError(f"{where}: cron string must have 5 fields (m h dom mon dow).")
            return
        if not isinstance(cron, dict) or not cron:
            raise ConfigError(f"{where}: cron must be a crontab string or a non-empty object.")
        _reject_unknown(cron, (*CRON_FIELDS, *CRON_OPTIONS), f"{where}: cron")
        return

    interval = trigger["interval"]
    if not isinstance(interval, dict) or not interval:
        raise ConfigError(f"{where}: interval must be a non-empty object.")
    _reject_unknown(interval, (*INTERVAL_FIELDS, *INTERVAL_OPTIONS), f"{where}: interval")
    amounts = [_as_int(interval[k], f"{where}: interval.{k}", 0) for k in INTERVAL_FIELDS if k in interval]
    if sum(amounts) <= 0:
        raise ConfigError(f"{where}: interval must be longer than zero.")


def _reject_unknown(obj: dict[str, Any], allowed: tuple[str, ...], where: str) -> None:
    unknown = set(obj) - set(allowed)
    if unknown:
        raise ConfigError(f"{where}: unknown field(s) {sorted(unknown)}.")


# ---- Coercion ----------------------------------------------------------------------


def _as_bool(value: Any, where: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ConfigError(f"{where} must be a boolean, got {value!r}.")


def _as_int(value: Any, where: str, minimum: int) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{where} must be an integer, got {value!r}.")
    try:
        n = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where} must be an integer, got {value!r}.") from e
    if n < minimum:
        raise ConfigError(f"{where} must be >= {minimum} (got {n}).")
    return n
