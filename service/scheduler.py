# service/scheduler.py
"""
APScheduler host for configured module jobs.

Each job runs `runner.run_module_once()` on the executor pool; the runner owns
kwargs normalization, timeouts and webhook delivery. Only cron and interval
triggers exist: the watch is a recurring poll, never a one-shot.
"""

from __future__ import annotations

import logging
import threading
import time as _time
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, runner
from .config_schema import CRON_FIELDS, CRON_OPTIONS, INTERVAL_FIELDS, INTERVAL_OPTIONS
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)

DEFAULT_WORKERS = 4


@dataclass(frozen=True, slots=True)
class JobSpec:
    id: str
    trigger: Any  # apscheduler BaseTrigger
    module: str
    kwargs: dict[str, Any]
    send: bool | None
    webhook_url: str | None
    timeout_sec: int | None
    max_instances: int = 1
    coalesce: bool = True
    misfire_grace_time: int | None = None
    summary: str | None = None

    @classmethod
    def from_config(cls, raw: dict[str, Any], tz) -> JobSpec:
        """Normalized config job (see config_schema.load_config) -> JobSpec with a built trigger."""
        module = raw.get("module")
        if not isinstance(module, str) or not module.strip():
            raise ValueError("job needs a 'module'")
        if not raw.get("trigger"):
            raise ValueError(f"job {module!r} needs a 'trigger'")

        return cls(
            id=str(raw.get("id") or raw.get("name") or module),
            trigger=build_trigger(raw["trigger"], tz),
            module=module,
            kwargs=dict(raw.get("kwargs") or {}),
            send=raw.get("send"),
            webhook_url=raw.get("webhook_url"),
            timeout_sec=_opt_int(raw.get("timeout_sec")),
            max_instances=_opt_int(raw.get("max_instances")) or 1,
            coalesce=bool(raw.get("coalesce", True)),
            misfire_grace_time=_opt_int(raw.get("misfire_grace_time")),
            summary=raw.get("summary") or raw.get("description"),
        )


class RunningScheduler:
    """Handle returned by start(); the CLI uses it to stop and wait."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped = threading.Event()

    def job_ids(self) -> Iterator[str]:
        return (job.id for job in self._scheduler.get_jobs())

    def stop(self) -> None:
        # running jobs finish on their own threads
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._stopped.set()
        LOG.info("Scheduler stopped.")

    def join(self, timeout: float | None = None) -> bool:
        return self._stopped.wait(timeout=timeout)


# ---- Startup ----------------------------------------------------------------


def start(config_path: str | None = None) -> RunningScheduler:
    """
    Load the config, register every buildable job and start a background
    scheduler. Jobs whose trigger cannot be built are logged and skipped.
    """
    cfg = config_schema.load_config(config_path)
    tz = resolve_timezone(cfg)

    sched = BackgroundScheduler(
        timezone=tz,
        job_defaults={"coalesce": True, "max_instances": 1},
        executors={"default": ThreadPoolExecutor(_opt_int(cfg.get("executor_workers")) or DEFAULT_WORKERS)},
        jobstores={"default": MemoryJobStore()},
    )

    for raw in cfg["jobs"]:
        try:
            spec = JobSpec.from_config(raw, tz)
        except (KeyError, TypeError, ValueError) as e:
            LOG.error("Skipping job %r: %s", raw.get("id"), e)
            continue
        sched.add_job(
            run_job,
            trigger=spec.trigger,
            args=[spec],
            id=spec.id,
            name=spec.summary or spec.id,
            max_instances=spec.max_instances,
            coalesce=spec.coalesce,
            misfire_grace_time=spec.misfire_grace_time,
            replace_existing=True,
        )
        upcoming = next_fire_times(spec.trigger, tz, count=3)
        LOG.info(
            "Job[%s] module=%s next=%s",
            spec.id,
            spec.module,
            ", ".join(t.isoformat(timespec="minutes") for t in upcoming) or "(never)",
        )

    sched.start()
    LOG.info("Scheduler started with %d job(s) in %s.", len(sched.get_jobs()), tz)
    return RunningScheduler(sched)


def resolve_timezone(cfg: dict[str, Any]):
    """pytz zone for the config (APScheduler 3 expects pytz); UTC when unknown."""
    name = cfg.get("timezone") or "UTC"
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Unknown timezone %r; using UTC", name)
        return pytz.UTC


# ---- Triggers ---------------------------------------------------------------


def build_trigger(trig_def: dict[str, Any], tz) -> Any:
    """
    {"interval": {weeks|days|hours|minutes|seconds, jitter?, start_date?, end_date?}}
    {"cron": "*/15 * * * *"}
    {"cron": {second?, minute?, hour?, day?, day_of_week?, month?, timezone?, ...}}

    A cron object's own 'timezone' wins over `tz`. Raises ValueError otherwise.
    """
    if not isinstance(trig_def, dict):
        raise ValueError("trigger must be an object")
    kinds = [k for k in ("interval", "cron") if trig_def.get(k) is not None]
    if len(kinds) != 1:
        raise ValueError("trigger needs exactly one of 'interval' or 'cron'")
    if kinds[0] == "interval":
        return _interval_trigger(trig_def["interval"], tz)
    return _cron_trigger(trig_def["cron"], tz)


def _interval_trigger(spec: Any, tz) -> IntervalTrigger:
    if not isinstance(spec, dict):
        raise ValueError("interval must be an object")
    extra = set(spec) - {*INTERVAL_FIELDS, *INTERVAL_OPTIONS}
    if extra:
        raise ValueError(f"interval: unknown field(s) {sorted(extra)}")

    amounts = {name: int(spec[name]) for name in INTERVAL_FIELDS if name in spec}
    if any(v < 0 for v in amounts.values()):
        raise ValueError("interval fields must be >= 0")
    amounts = {k: v for k, v in amounts.items() if v}
    if not amounts:
        raise ValueError("interval must be longer than zero")

    amounts.update({k: spec[k] for k in INTERVAL_OPTIONS if spec.get(k) is not None})
    return IntervalTrigger(timezone=tz, **amounts)


def _cron_trigger(spec: Any, tz) -> CronTrigger:
    if isinstance(spec, str):
        if len(spec.split()) != 5:
            raise ValueError(f"cron string needs 5 fields (m h dom mon dow): {spec!r}")
        return CronTrigger.from_crontab(spec, timezone=tz)
    if not isinstance(spec, dict):
        raise ValueError("cron must be a crontab string or an object")

    extra = set(spec) - {*CRON_FIELDS, *CRON_OPTIONS}
    if extra:
        raise ValueError(f"cron: unknown field(s) {sorted(extra)}")

    fields = {k: spec.get(k) for k in (*CRON_FIELDS, *CRON_OPTIONS) if k != "timezone"}
    # top of the minute / hour unless given; an omitted hour means every hour
    fields["second"] = spec.get("second", 0)
    fields["minute"] = spec.get("minute", 0)
    own_tz = spec.get("timezone")
    return CronTrigger(timezone=pytz.timezone(own_tz) if own_tz else tz, **fields)


def next_fire_times(trigger, tz, count: int = 6, start: datetime | None = None) -> list[datetime]:
    """Upcoming fire times strictly after `start` (default: now)."""
    now = start or datetime.now(tz=tz)
    prev = now
    out: list[datetime] = []
    while len(out) < count:
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        out.append(nxt)
        prev = nxt
        now = nxt + timedelta(microseconds=1)
    return out


# ---- Job body -----------------------------------------------------------------


def run_job(spec: JobSpec) -> None:
    """Executor entry point. Never raises: a failed run must not kill the pool thread."""
    started = _time.monotonic()
    LOG.info("Job[%s] starting", spec.id)
    status = "ok"
    run_id = None
    try:
        _, run_id = runner.run_module_once(
            spec.module,
            kwargs=dict(spec.kwargs),
            send=spec.send,
            webhook_url=spec.webhook_url,
            timeout_sec=spec.timeout_sec,
            trigger_type="scheduled",
            job_context={"job_id": spec.id, "now_iso": datetime.now(timezone.utc).isoformat()},
        )
    except Exception:
        status = "error"
        LOG.exception("Job[%s] failed", spec.id)

    duration_ms = int((_time.monotonic() - started) * 1000)
    LOG.info("Job[%s] %s in %d ms", spec.id, status, duration_ms)
    try:
        write_activity_log({
            "ts": datetime.now(timezone.utc).isoformat(),
            "source": "scheduler",
            "event": "job_run",
            "job_id": spec.id,
            "module": spec.module,
            "run_id": run_id,
            "status": status,
            "duration_ms": duration_ms,
            "summary": spec.summary,
        })
    except (OSError, TypeError, ValueError):
        LOG.debug("job_run record not written for %s", spec.id, exc_info=True)


def _opt_int(v: Any) -> int | None:
    try:
        return int(v) if v is not None else None
    except (TypeError, ValueError):
        return None
