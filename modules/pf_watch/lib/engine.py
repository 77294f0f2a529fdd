"""
Engine for one pf_watch pass: load the listings page, narrow it, enrich and
fully filter candidates one by one until `limit` matches are found, and render
the Discord messages.

Features:
  - Cheap pre-filter before any Lodestone traffic (`pipeline.build_listings`)
  - Sequential scan with early stop; the enrichment cache makes repeated
    creators cost one lookup
  - Dependency injection for testability (`fetch_markup`, `lookup`)
  - Structured logging via `logging_bridge`
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from . import logging_bridge, render
from .config import Settings
from .enrichment import EnrichmentCache, IdentityLookup
from .filters import SearchFilter, load_search_filter, matches, parse_search_filter_json
from .http_client import HttpClient
from .lodestone import LodestoneClient
from .models import Listing, ScanResult
from .pipeline import build_listings
from .reference import ReferenceData, load_reference_data

LISTINGS_COOKIES = {"lang": "ja"}


# =============================================================================
# INPUTS
# =============================================================================
def load_markup(source: str, *, timeout: float = 30.0, http: HttpClient | None = None) -> str:
    """Read listings markup from a local file or fetch it over HTTP(S)."""
    if not source.lower().startswith(("http://", "https://")):
        return Path(source).read_text(encoding="utf-8")

    client = http or HttpClient(timeout=timeout, cookies=LISTINGS_COOKIES)
    try:
        return client.get_text(source)
    finally:
        if http is None:
            client.close()


def load_filter(settings: Settings) -> SearchFilter | None:
    """The filter file wins over inline JSON; neither configured means no filter."""
    if settings.filter_file:
        return load_search_filter(settings.filter_file)
    return parse_search_filter_json(settings.filter_json)


def _default_fetch_markup(settings: Settings) -> str:
    return load_markup(settings.listings_url, timeout=settings.request_timeout)


# =============================================================================
# SCAN
# =============================================================================
async def scan(
    listings: Iterable[Listing],
    search_filter: SearchFilter | None,
    reference: ReferenceData,
    cache: EnrichmentCache | None,
    limit: int,
) -> ScanResult:
    """
    Walk candidates in order: enrich (when a cache is given), render, apply the
    full filter. Stops as soon as `limit` listings matched, so no lookup is
    made for candidates past the cutoff.
    """
    result = ScanResult()
    for listing in listings:
        if len(result.matched) >= limit:
            break
        result.scanned += 1

        enriched = await cache.enrich(listing) if cache is not None else listing
        text = render.format_listing_text(enriched, reference)
        if not matches(enriched, search_filter, reference=reference, formatted_text=text):
            result.filtered_out += 1
            continue

        result.matched.append(enriched)
        result.texts.append(text)
    return result


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    *,
    fetch_markup: Callable[[Settings], str] | None = None,
    lookup: IdentityLookup | None = None,
) -> tuple[str, dict]:
    """
    Run one complete cycle.

    Args:
        settings: validated module settings.
        fetch_markup: optional override returning raw listings markup (tests).
        lookup: optional identity lookup used instead of the Lodestone client.

    Returns:
        (text, meta). `meta["messages"]` holds the Discord payloads; it is the
        no-match line alone when nothing matched.
    """
    start_ns = time.perf_counter_ns()

    reference = load_reference_data(settings.data_dir)
    search_filter = load_filter(settings)
    if search_filter is None:
        logging_bridge.activity({
            "component": "pf_watch.engine",
            "op": "filter_missing",
            "filter_file": settings.filter_file,
        })
    else:
        logging_bridge.activity({
            "component": "pf_watch.engine",
            "op": "filter_loaded",
            "filter_file": settings.filter_file,
            "fields": search_filter.field_names(),
        })

    # -------------------------------------------------------------------------
    # BUILD CANDIDATES (no enrichment yet)
    # -------------------------------------------------------------------------
    t0 = time.perf_counter_ns()
    markup = (fetch_markup or _default_fetch_markup)(settings)
    candidates = build_listings(
        markup,
        settings.allowed_data_centres,
        reference.tags,
        search_filter,
        description_terms=settings.description_terms,
        description_mode=settings.description_mode,
    )
    logging_bridge.activity({
        "component": "pf_watch.engine",
        "op": "listings_built",
        "count": len(candidates),
        "ms": (time.perf_counter_ns() - t0) // 1_000_000,
    })

    # -------------------------------------------------------------------------
    # SCAN (enrich + full filter, stop at limit)
    # -------------------------------------------------------------------------
    owned_client: LodestoneClient | None = None
    cache: EnrichmentCache | None = None
    if settings.enrich:
        if lookup is None:
            owned_client = LodestoneClient(reference.achievement_names, timeout=settings.request_timeout)
            lookup = owned_client
        cache = EnrichmentCache(lookup)

    try:
        result = asyncio.run(scan(candidates, search_filter, reference, cache, settings.limit))
    finally:
        if owned_client is not None:
            owned_client.close()

    logging_bridge.activity({
        "component": "pf_watch.engine",
        "op": "scan_summary",
        "scanned": result.scanned,
        "filtered_out": result.filtered_out,
        "matched": len(result.matched),
        "limit": settings.limit,
        "cache_size": len(cache) if cache is not None else 0,
        "lookups": cache.lookups if cache is not None else 0,
    })

    # -------------------------------------------------------------------------
    # RENDER
    # -------------------------------------------------------------------------
    messages = render.discord_messages(result.texts)
    if result.matched:
        text = "\n\n".join(result.texts)
        message = f"{len(result.matched)} matching listings (scanned {result.scanned})"
        subject = f"PF Watch — {len(result.matched)} matches"
    else:
        logging_bridge.activity({
            "component": "pf_watch.engine",
            "op": "no_match",
            "scanned": result.scanned,
        })
        text = render.NO_MATCH_MESSAGE
        message = render.NO_MATCH_MESSAGE
        subject = "PF Watch — no matches"

    total_ms = (time.perf_counter_ns() - start_ns) // 1_000_000
    meta = {
        "message": message,
        "subject": subject,
        "messages": messages,
        "matched": len(result.matched),
        "scanned": result.scanned,
        "filtered_out": result.filtered_out,
        "candidates": len(candidates),
        "listing_ids": [l.id for l in result.matched],
        "total_ms": total_ms,
    }

    logging_bridge.activity({
        "component": "pf_watch.engine",
        "op": "done",
        "matched": len(result.matched),
        "messages": len(messages),
        "total_ms": total_ms,
    })
    return (text, meta)
