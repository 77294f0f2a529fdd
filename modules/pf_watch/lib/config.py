from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .utils import truthy


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env/data files cannot form a valid run."""


# -----------------------------
# Defaults
# -----------------------------
DEFAULT_LISTINGS_URL = "https://xivpf.com/listings"
DEFAULT_LIMIT = 5
DEFAULT_ALLOWED_DATA_CENTRES: tuple[str, ...] = ("Elemental", "Mana", "Meteor", "Gaia")
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_FILTER_FILENAME = "filter.json"

ENV_LISTINGS_URL = "FFXIV_PTFINDER_LISTINGS_URL"
ENV_LIMIT = "FFXIV_PTFINDER_LIMIT"
ENV_FILTER_FILE = "FFXIV_PTFINDER_FILTER_FILE"
ENV_FILTER_JSON = "FFXIV_PTFINDER_FILTER_JSON"
ENV_DESCRIPTION_TERMS = "FFXIV_PTFINDER_DESCRIPTION_TERMS"
ENV_DESCRIPTION_MODE = "FFXIV_PTFINDER_DESCRIPTION_MODE"
ENV_DATA_DIR = "PF_WATCH_DATA_DIR"

_PACKAGED_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


# -----------------------------
# Models
# -----------------------------
@dataclass
class Settings:
    """
    Canonical configuration for a 'pf_watch' run.

    Precedence is kwargs > environment > defaults. The search filter itself is
    NOT parsed here; `filter_file` / `filter_json` are handed to the filter loader
    by the engine so spec errors surface as FilterSpecError.
    """

    listings_url: str = DEFAULT_LISTINGS_URL
    limit: int = DEFAULT_LIMIT
    data_dir: str = str(_PACKAGED_DATA_DIR)

    # Search filter sources (file wins over inline JSON)
    filter_file: str | None = None
    filter_json: str | None = None

    # Legacy description pre-filter
    description_terms: list[str] = field(default_factory=list)
    description_mode: str = "and"

    allowed_data_centres: tuple[str, ...] = DEFAULT_ALLOWED_DATA_CENTRES

    # Runtime behavior
    enrich: bool = True
    skip_network: bool = False
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    # ------------- convenience -------------
    @property
    def listings_is_url(self) -> bool:
        return self.listings_url.lower().startswith(("http://", "https://"))

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs (runner already resolved any *_env keys),
        falling back to FFXIV_PTFINDER_* environment variables.

        Expected kwargs (all optional):

            listings_url: str = "https://xivpf.com/listings"  (URL or local file path)
            limit: int = 5
            data_dir: str  (reference JSON tables; defaults to packaged data)
            filter_file: str
            filter_json: str | dict
            filter_file_env / filter_json_env: values resolved from env var names
            description_terms: list[str] | "a,b" | '["a","b"]'
            description_mode: "and" | "or"
            allowed_data_centres: list[str]
            enrich: bool = true
            skip_network: bool = false
            request_timeout: float = 30
        """
        kw = dict(kwargs or {})

        listings_url = str(kw.get("listings_url") or _env(ENV_LISTINGS_URL) or DEFAULT_LISTINGS_URL).strip()

        raw_limit = kw.get("limit") if kw.get("limit") is not None else _env(ENV_LIMIT)
        try:
            limit = int(raw_limit) if raw_limit not in (None, "") else DEFAULT_LIMIT
        except (TypeError, ValueError) as e:
            raise ConfigError(f"'limit' must be an integer, got {raw_limit!r}") from e

        data_dir = str(kw.get("data_dir") or _env(ENV_DATA_DIR) or _PACKAGED_DATA_DIR)

        # *_env kwargs arrive already resolved by the runner
        filter_file = kw.get("filter_file") or kw.get("filter_file_env") or _env(ENV_FILTER_FILE)
        if filter_file is None:
            candidate = Path(data_dir) / DEFAULT_FILTER_FILENAME
            filter_file = str(candidate) if candidate.is_file() else None
        else:
            filter_file = str(filter_file).strip() or None

        filter_json = kw.get("filter_json") or kw.get("filter_json_env")
        if isinstance(filter_json, (dict, list)):
            filter_json = json.dumps(filter_json, ensure_ascii=False)
        filter_json = (str(filter_json).strip() if filter_json else None) or _env(ENV_FILTER_JSON)

        description_terms = parse_terms(
            kw.get("description_terms") if kw.get("description_terms") is not None else _env(ENV_DESCRIPTION_TERMS)
        )
        description_mode = str(kw.get("description_mode") or _env(ENV_DESCRIPTION_MODE) or "and").strip().lower()

        allowed = kw.get("allowed_data_centres")
        allowed_dcs = tuple(str(x) for x in allowed) if allowed else DEFAULT_ALLOWED_DATA_CENTRES

        skip_network = truthy(kw.get("skip_network"))
        enrich = truthy(kw["enrich"]) if "enrich" in kw else True
        if skip_network:
            enrich = False

        try:
            request_timeout = float(kw.get("request_timeout") or DEFAULT_REQUEST_TIMEOUT)
        except (TypeError, ValueError) as e:
            raise ConfigError("'request_timeout' must be a number.") from e

        settings = cls(
            listings_url=listings_url,
            limit=limit,
            data_dir=data_dir,
            filter_file=filter_file,
            filter_json=filter_json,
            description_terms=description_terms,
            description_mode=description_mode,
            allowed_data_centres=allowed_dcs,
            enrich=enrich,
            skip_network=skip_network,
            request_timeout=request_timeout,
        )
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_terms(value: Any) -> list[str]:
    """
    Accepts a list, a JSON array string ('["a","b"]') or a comma string ('a,b').
    Invalid JSON yields no terms.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if isinstance(v, str) and v.strip()]
    raw = str(value).strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return []
        if not isinstance(parsed, list):
            return []
        return [v.strip() for v in parsed if isinstance(v, str) and v.strip()]
    return [s.strip() for s in raw.split(",") if s.strip()]


def _validate_settings(s: Settings) -> None:
    if s.limit <= 0:
        raise ConfigError("'limit' must be >= 1.")
    if not s.listings_url:
        raise ConfigError("'listings_url' cannot be empty.")
    if s.description_mode not in ("and", "or"):
        raise ConfigError(f"'description_mode' must be 'and' or 'or', got {s.description_mode!r}.")
    if s.request_timeout <= 0:
        raise ConfigError("'request_timeout' must be > 0.")
    if s.skip_network and s.listings_is_url:
        raise ConfigError("'skip_network' requires 'listings_url' to be a local file path.")
    if not Path(s.data_dir).is_dir():
        raise ConfigError(f"'data_dir' does not exist: {s.data_dir}")
