# service/cli.py
"""
Command-line entrypoints for the pf_watch service container.

    python -m service.cli serve
    python -m service.cli run modules.pf_watch --kwargs limit=3 enrich=false --no-send --print-text
    python -m service.cli list-jobs
    python -m service.cli validate-config

`run` goes through the same runner as scheduled jobs, so activity records and
webhook gating are identical; `--no-send` forces a dry run for this process.
Exit codes: 0 ok, 1 failure, 130 interrupted.
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
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from service import config_schema, runner, scheduler
from service import logging_utils as L

LOG = logging.getLogger("service.cli")

DRY_RUN_ENV = {"PF_WATCH_DRY_RUN": "1", "SEND_WEBHOOK": "0"}


def _setup_logging() -> None:
    if logging.getLogger().handlers:
        return
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _ts() -> str:
    return datetime.now().astimezone().isoformat()


# ---- argument helpers ---------------------------------------------------------


def parse_kwargs(items: Sequence[str]) -> dict[str, Any]:
    """
    `key=value` pairs -> dict. Values are JSON-decoded when possible
    (numbers, booleans, arrays, objects); anything else stays a string.
    """
    out: dict[str, Any] = {}
    for item in items:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"--kwargs expects key=value, got {item!r}")
        value = value.strip()
        try:
            out[key] = json.loads(value)
        except json.JSONDecodeError:
            out[key] = value
    return out


@contextmanager
def _patched_env(values: dict[str, str]) -> Iterator[None]:
    saved = {k: os.environ.get(k) for k in values}
    os.environ.update(values)
    try:
        yield
    finally:
        for k, old in saved.items():
            if old is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = old


def _describe_trigger(trigger: Any) -> str:
    if not isinstance(trigger, dict):
        return "?"
    if "cron" in trigger:
        cron = trigger["cron"]
        return f"cron {cron}" if isinstance(cron, str) else "cron " + json.dumps(cron, sort_keys=True)
    if "interval" in trigger:
        parts = [f"{v}{k[0]}" for k, v in (trigger["interval"] or {}).items() if k in config_schema.INTERVAL_FIELDS]
        return "every " + " ".join(parts)
    return json.dumps(trigger, default=str)


def _next_fire(job: dict[str, Any], tz) -> str:
    try:
        trig = scheduler.build_trigger(job.get("trigger"), tz)
    except (KeyError, TypeError, ValueError) as e:
        return f"invalid ({e})"
    times = scheduler.next_fire_times(trig, tz, count=1)
    return times[0].isoformat(timespec="minutes") if times else "-"


# ---- subcommands ----------------------------------------------------------------


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        config_schema.validate(config_schema.load_config(args.config))
    except config_schema.ConfigError as e:
        LOG.error("Configuration validation failed: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    print("OK: configuration is valid.")
    return 0


def cmd_list_jobs(args: argparse.Namespace) -> int:
    try:
        cfg = config_schema.load_config(args.config)
    except config_schema.ConfigError as e:
        print(f"ERROR: failed to list jobs: {e}", file=sys.stderr)
        return 1

    jobs = cfg.get("jobs") or []
    if not jobs:
        print("No jobs found in config.")
        return 0

    tz = scheduler.resolve_timezone(cfg)
    rows = [
        (
            str(job.get("id")),
            str(job.get("module", "")),
            _describe_trigger(job.get("trigger")),
            _next_fire(job, tz),
            str(job.get("summary") or job.get("description") or ""),
        )
        for job in jobs
    ]
    headers = ("JOB", "MODULE", "TRIGGER", "NEXT", "SUMMARY")
    widths = [max(len(h), *(len(r[i]) for r in rows)) for i, h in enumerate(headers)]
    for row in (headers, *rows):
        print("  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip())
    print(f"\n{len(rows)} job(s), timezone {tz}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    started = time.monotonic()
    kwargs = parse_kwargs(args.kwargs or [])

    def _elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    try:
        with _patched_env(DRY_RUN_ENV if args.no_send else {}):
            text, run_id = runner.run_module_once(
                module=args.module,
                kwargs=kwargs,
                send=False if args.no_send else None,
                trigger_type="adhoc",
            )
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _ts(),
            "where": "cli.run",
            "module": args.module,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": _elapsed_ms(),
        })
        return 1

    L.write_activity_log({
        "ts": _ts(),
        "event": "cli_run",
        "run_id": run_id,
        "module": args.module,
        "send": not args.no_send,
        "kwargs": kwargs,
        "duration_ms": _elapsed_ms(),
    })

    if not text:
        print("DONE: Module run completed.")
        return 0
    if args.print_text:
        print("\n----- TEXT OUTPUT -----\n")
        print(text)
    print("SUCCESS: text returned.")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the scheduler and block until SIGINT/SIGTERM."""
    stop = threading.Event()

    def _on_signal(signum, _frame):
        LOG.info("Signal %s received; shutting down", signum)
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    L.write_activity_log({"ts": _ts(), "event": "serve_start"})
    try:
        controller = scheduler.start(config_path=args.config)
    except config_schema.ConfigError as e:
        print(f"ERROR: cannot start scheduler: {e}", file=sys.stderr)
        return 1

    LOG.info("Serving jobs: %s", ", ".join(controller.job_ids()) or "(none)")
    try:
        while not stop.wait(0.5):
            pass
    finally:
        controller.stop()
        controller.join(timeout=10.0)
        L.write_activity_log({"ts": _ts(), "event": "serve_stop"})
    return 0


# ---- parser / main ----------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="python -m service.cli", description="pf_watch service tools")
    p.add_argument("--config", help="Config file (defaults to CONFIG_PATH, else no jobs).")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("serve", help="Run the scheduler loop.").set_defaults(func=cmd_serve)

    run = sub.add_parser("run", help="Run one module now through the runner.")
    run.add_argument("module", help="Module path, e.g. modules.pf_watch")
    run.add_argument("--kwargs", metavar="k=v", nargs="*", help="Module kwargs (JSON values allowed).")
    run.add_argument("--no-send", action="store_true", help="Dry run: never post to the webhook.")
    run.add_argument("--print-text", action="store_true", help="Print the module's text output.")
    run.set_defaults(func=cmd_run)

    sub.add_parser("list-jobs", help="Show configured jobs and their next fire time.").set_defaults(
        func=cmd_list_jobs
    )
    sub.add_parser("validate-config", help="Validate the config file.").set_defaults(func=cmd_validate_config)
    return p


def main(argv: Sequence[str] | None = None) -> int:
    _setup_logging()
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
