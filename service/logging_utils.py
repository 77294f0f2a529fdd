# service/logging_utils.py
"""
Structured JSONL logs shared by the service and its modules.

One file per day and kind: $LOG_DIR/<prefix>-YYYY-MM-DD.jsonl, where the
prefix is $ACTIVITY_LOG_PREFIX ("activity") or $ERROR_LOG_PREFIX ("error").
Environment is read on every write so tests can redirect the directory.
"""

from __future__ import annotations

import contextlib
import datetime as _dt
import json
import os
import socket
from collections.abc import Collection
from typing import Any

REDACTED = "***REDACTED***"

# case-insensitive substrings of secret-looking keys
REDACT_KEYS = frozenset({"password", "token", "apikey", "api_key", "secret", "authorization", "cookie", "webhook"})

_META = {"host": socket.gethostname(), "pid": os.getpid()}


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append `record` (redacted, stamped with host/pid) to today's activity file.

    Raises OSError / TypeError on failure; module code goes through
    logging_bridge, which falls back to stdlib logging.
    """
    _append_record(get_activity_log_path(), record)


def write_error_log(record: dict[str, Any]) -> None:
    _append_record(_dated_path(os.getenv("ERROR_LOG_PREFIX", "error")), record)


def get_activity_log_path() -> str:
    return _dated_path(os.getenv("ACTIVITY_LOG_PREFIX", "activity"))


def redact(value: Any, keys: Collection[str] = REDACT_KEYS) -> Any:
    """
    Deep copy of `value` with secret-looking keys masked and bearer
    credentials inside strings replaced. The input is not modified.
    """
    if isinstance(value, dict):
        return {k: REDACTED if _is_secret_key(k, keys) else redact(v, keys) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(v, keys) for v in value]
    if isinstance(value, str) and "bearer " in value.lower():
        return f"{value.partition(' ')[0]} {REDACTED}"
    return value


def _is_secret_key(key: Any, keys: Collection[str]) -> bool:
    return isinstance(key, str) and any(k in key.lower() for k in keys)


def _dated_path(prefix: str) -> str:
    log_dir = os.getenv("LOG_DIR", "/app/local/logs")
    return os.path.join(log_dir, f"{prefix}-{_dt.date.today().isoformat()}.jsonl")


def _size_limit() -> int:
    raw = os.getenv("ACTIVITY_LOG_MAX_BYTES", "0")
    return int(raw) if raw.strip().isdigit() else 0


def _rotate(path: str, limit: int) -> None:
    """Move a full file aside as <path>.<YYYYmmdd-HHMMSS>."""
    try:
        if os.path.getsize(path) < limit:
            return
    except FileNotFoundError:
        return
    with contextlib.suppress(FileNotFoundError):
        os.replace(path, f"{path}.{_dt.datetime.now():%Y%m%d-%H%M%S}")


def _append_record(path: str, record: dict[str, Any]) -> None:
    payload = {**redact(record), "_meta": _META}
    # default=str: enums and paths from module records
    line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n"

    os.makedirs(os.path.dirname(path), exist_ok=True)
    limit = _size_limit()
    if limit > 0:
        _rotate(path, limit)

    # one os.write per record with O_APPEND keeps concurrent writers line-atomic
    fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
    try:
        os.write(fd, line.encode("utf-8"))
    finally:
        os.close(fd)
