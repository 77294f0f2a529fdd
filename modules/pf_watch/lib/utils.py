from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

_CRLF_RE = re.compile(r"\r\n?")
_HSPACE_RE = re.compile(r"[ \t]+")
_INDENT_RE = re.compile(r"\n[ \t]+")
_ANY_SPACE_RE = re.compile(r"\s+")


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def normalize_text(text: str | None) -> str:
    """
    Collapse horizontal whitespace, strip line indentation, normalize line endings, trim.
    Newlines are kept so multi-line descriptions stay readable.
    """
    if not text:
        return ""
    out = _CRLF_RE.sub("\n", text)
    out = _HSPACE_RE.sub(" ", out)
    out = _INDENT_RE.sub("\n", out)
    return out.strip()


def normalize_spaces(text: str | None) -> str:
    """Collapse every whitespace run (newlines included) into a single space."""
    return _ANY_SPACE_RE.sub(" ", text or "").strip()


def split_tokens(value: str | None) -> list[str]:
    """Split a class-like / job-list attribute on whitespace, discarding empties."""
    return [tok for tok in _ANY_SPACE_RE.split(value or "") if tok]


def clean_terms(terms: Iterable[Any] | None) -> tuple[str, ...]:
    """Strip each term and drop blanks and non-strings."""
    if not terms:
        return ()
    return tuple(t.strip() for t in terms if isinstance(t, str) and t.strip())
