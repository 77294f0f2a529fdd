from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> tuple[str, dict]:
    """
    Entry point for the 'pf_watch' module.

    Accepts kwargs (from scheduler/runner), including:
      listings_url: str = "https://xivpf.com/listings"  (or a local HTML file)
      limit: int = 5
      filter_file: Optional[str]
      filter_json: Optional[str | dict]
      description_terms / description_mode: legacy description filter
      allowed_data_centres: list[str]
      enrich: bool = True
      skip_network: bool = False

    Returns:
      (text, meta) - meta["messages"] are the Discord payloads the runner posts.
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "pf_watch.main",
        "op": "start",
        "listings_url": settings.listings_url,
        "limit": settings.limit,
        "filter_file": settings.filter_file,
        "inline_filter": bool(settings.filter_json),
        "flags": {
            "enrich": settings.enrich,
            "skip_network": settings.skip_network,
        },
    })

    return _run_engine(settings)
