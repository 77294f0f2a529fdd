"""
pf_watch -> service JSONL logs. Records are dicts with at least
"component" and "op"; if the file write fails they go to stdlib logging.
"""

from __future__ import annotations

import logging
from typing import Any

from service import logging_utils

_activity_log = logging.getLogger("pf_watch.activity")
_error_log = logging.getLogger("pf_watch.error")


def activity(record: dict[str, Any]) -> None:
    payload = logging_utils.redact(record)
    try:
        logging_utils.write_activity_log(payload)
    except (OSError, TypeError, ValueError):
        _activity_log.info(payload)


def error(record: dict[str, Any]) -> None:
    payload = logging_utils.redact(record)
    try:
        logging_utils.write_error_log(payload)
    except (OSError, TypeError, ValueError):
        _error_log.error(payload)
