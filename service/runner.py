# service/runner.py
"""
Run one module once: import it, call run(**kwargs) on a worker thread, post
its messages to the Discord webhook, and write one activity record.

Used by both the scheduler (trigger_type="scheduled") and the CLI ("adhoc").
"""

from __future__ import annotations

import importlib
import json
import logging
import os
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from service.logging_utils import write_activity_log
from service.webhook import WebhookSendError, post_messages, resolve_webhook_url

log = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_BOOL_WORDS = {"true": True, "t": True, "yes": True, "y": True, "false": False, "f": False, "no": False, "n": False}


def now_iso() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")


# ---- kwargs ---------------------------------------------------------------------


def _coerce_scalar(s: str) -> Any:
    """'3' -> 3, '0.5' -> 0.5, 'yes' -> True, '[..]'/'{..}' -> JSON; else unchanged."""
    s = s.strip()
    if s[:1] + s[-1:] in ("[]", "{}"):
        try:
            return json.loads(s)
        except json.JSONDecodeError:
            return s
    low = s.lower()
    if low in _BOOL_WORDS:
        return _BOOL_WORDS[low]
    try:
        return int(s)
    except ValueError:
        pass
    try:
        return float(s)
    except ValueError:
        return s


def _normalize_kwargs_types(kwargs: dict[str, object] | None) -> dict[str, object]:
    """
    Job kwargs arrive as strings from YAML/CLI. Keys ending in "_env" name an
    environment variable and are replaced by its value ("" when unset); other
    strings are coerced with _coerce_scalar. Non-strings pass through.
    """
    out: dict[str, object] = {}
    for key, value in (kwargs or {}).items():
        if not isinstance(value, str):
            out[key] = value
        elif isinstance(key, str) and key.endswith("_env"):
            out[key] = os.getenv(value.strip(), "")
        else:
            out[key] = _coerce_scalar(value)
    return out


def _resolve_callable(module_path: str) -> Callable[..., Any]:
    """`<module_path>.main.run`, falling back to `<module_path>.run`."""
    try:
        mod = importlib.import_module(f"{module_path}.main")
    except ModuleNotFoundError as e:
        if e.name != f"{module_path}.main":
            raise
        mod = importlib.import_module(module_path)
    run = getattr(mod, "run", None)
    if not callable(run):
        raise AttributeError(f"Module {module_path!r} does not define a callable `run(**kwargs)`.")
    return run


# ---- results --------------------------------------------------------------------


@dataclass
class RunResult:
    ok: bool
    message: str
    text: str | None = None
    messages: list[str] = field(default_factory=list)
    meta: dict[str, Any] | None = None
    subject: str | None = None

    @classmethod
    def failed(cls, message: str, **meta: Any) -> RunResult:
        return cls(ok=False, message=message, meta=meta)


def _coerce_result(value: Any) -> RunResult:
    """
    Module return value -> RunResult. Accepted:

        str                      text, posted as one message
        None                     nothing to post
        (str, dict)              text + meta; meta["messages"] replaces what is posted
        {"text": ..., "meta": ..}
        dict                     meta only
    """
    if value is None:
        return RunResult(ok=True, message="OK")
    if isinstance(value, str):
        return RunResult(ok=True, message="OK", text=value, messages=[value] if value.strip() else [])

    text: str | None = None
    meta: dict[str, Any]
    if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str) and isinstance(value[1], dict):
        text, meta = value
    elif isinstance(value, dict) and "text" in value:
        text = value["text"] if isinstance(value["text"], str) else None
        meta = value["meta"] if isinstance(value.get("meta"), dict) else {}
    elif isinstance(value, dict):
        meta = value
    else:
        raise TypeError(f"Unsupported module return type {type(value).__name__}; expected str, None, (str, dict) or dict")

    listed = meta.get("messages")
    if isinstance(listed, list):
        messages = [m for m in listed if isinstance(m, str) and m.strip()]
    else:
        messages = [text] if text and text.strip() else []
    return RunResult(
        ok=True,
        message=meta.get("message", "OK"),
        text=text,
        messages=messages,
        meta=meta or None,
        subject=meta.get("subject"),
    )


# ---- delivery -------------------------------------------------------------------


def _effective_send(send: bool | None) -> bool:
    """PF_WATCH_DRY_RUN always wins; then the per-call flag; then SEND_WEBHOOK (default on)."""
    if os.getenv("PF_WATCH_DRY_RUN", "").strip().lower() in _TRUE:
        return False
    if send is not None:
        return bool(send)
    return os.getenv("SEND_WEBHOOK", "1").strip().lower() in _TRUE


def _deliver(messages: list[str], webhook_url: str | None) -> tuple[int, str | None]:
    """(messages posted, error or None). Delivery problems never fail the run."""
    url = resolve_webhook_url(webhook_url)
    if not url:
        log.error("Webhook send skipped: no webhook URL configured")
        return 0, "no webhook URL configured"
    try:
        return post_messages(url, messages), None
    except WebhookSendError as e:
        log.error("Webhook send failed: %s", e)
        return 0, str(e)


# ---- public API -------------------------------------------------------------------


def run_module_once(
    module: str,
    kwargs: dict[str, object] | None = None,
    send: bool | None = True,
    webhook_url: str | None = None,
    trigger_type: str = "scheduled",
    job_context: dict[str, object] | None = None,
    timeout_sec: int | None = None,
) -> tuple[str | None, str]:
    """
    Returns (text_or_none, run_id). Exceptions from the module (and timeouts)
    are logged to the activity file first and then re-raised.
    """
    run_id = uuid.uuid4().hex
    context: dict[str, Any] = dict(job_context or {})
    context.update(run_id=run_id, module=module, trigger_type=trigger_type, started_at=now_iso())

    kw = _normalize_kwargs_types(kwargs)
    run_callable = _resolve_callable(module)

    failure: BaseException | None = None
    started = time.monotonic()
    try:
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="runner") as pool:
            value = pool.submit(run_callable, **kw).result(timeout=timeout_sec or None)
        result = _coerce_result(value)
    except FutureTimeout:
        failure = TimeoutError(f"Module run timed out after {timeout_sec}s")
        result = RunResult.failed(str(failure), timeout_sec=timeout_sec)
    except Exception as e:
        failure = e
        result = RunResult.failed(str(e), exception_type=type(e).__name__)
    duration_ms = int((time.monotonic() - started) * 1000)

    posted, delivery_error = 0, None
    if result.ok and result.messages and _effective_send(send):
        posted, delivery_error = _deliver(result.messages, webhook_url)

    record = {
        "ts": now_iso(),
        "run_id": run_id,
        "module": module,
        "trigger_type": trigger_type,
        "ok": result.ok,
        "message": result.message,
        "subject": result.subject,
        "duration_ms": duration_ms,
        "posted": posted,
        "delivery_error": delivery_error,
        "context": context,
        "kwargs": kw,
        "meta": result.meta or {},
    }
    try:
        write_activity_log(record)
    except (OSError, TypeError, ValueError) as e:
        log.warning("activity record for run %s not written: %s", run_id, e)

    if failure is not None:
        raise failure
    return result.text, run_id
