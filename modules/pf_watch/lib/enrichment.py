"""
Per-run memoization of creator lookups.

One `EnrichmentCache` lives for exactly one pipeline run. The first call for a
creator label performs the lookup; every later call (and any call that arrives
while the first is still in flight) reuses that result. Lookup failures are
absorbed here and never reach the scan loop.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Protocol

from . import logging_bridge
from .lodestone import AchievementResult, CreatorInfo, parse_creator
from .models import AchievementStatus, Listing


class IdentityLookup(Protocol):
    """The external lookup capability, one method per step."""

    def search_url(self, info: CreatorInfo) -> str: ...

    def achievement_url(self, profile_url: str) -> str | None: ...

    async def find_profile(self, search_url: str) -> str | None: ...

    async def fetch_achievements(self, achievement_url: str) -> AchievementResult: ...


@dataclass(frozen=True)
class CacheEntry:
    search_url: str
    profile_url: str | None = None
    achievement_url: str | None = None
    achievement_status: AchievementStatus | None = None
    achievement_clears: tuple[str, ...] | None = None

    def apply(self, listing: Listing) -> Listing:
        return replace(
            listing,
            lodestone_search_url=self.search_url,
            lodestone_url=self.profile_url,
            achievement_url=self.achievement_url,
            achievement_status=self.achievement_status,
            achievement_clears=self.achievement_clears,
        )


class EnrichmentCache:
    """
    Async memoizing map: creator label -> CacheEntry.

    Keys are the trimmed creator label. Labels that do not parse as
    "Name @ World" are never looked up and never cached.
    """

    def __init__(self, lookup: IdentityLookup) -> None:
        self._lookup = lookup
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Future[CacheEntry]] = {}
        self.lookups = 0
        self.hits = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, label: object) -> bool:
        return isinstance(label, str) and label.strip() in self._entries

    def get(self, label: str) -> CacheEntry | None:
        return self._entries.get((label or "").strip())

    async def get_or_compute(self, label: str | None) -> CacheEntry | None:
        key = (label or "").strip()
        if not key:
            return None

        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            self.hits += 1
            return await asyncio.shield(pending)

        info = parse_creator(key)
        if info is None:
            return None
        search_url = self._search_url(key, info)
        if search_url is None:
            return None

        task = asyncio.ensure_future(self._resolve(key, search_url))
        self._inflight[key] = task
        # a cancelled caller must not abort the lookup other callers wait on
        return await asyncio.shield(task)

    async def enrich(self, listing: Listing) -> Listing:
        """Return `listing` with lookup fields applied (unchanged when unresolvable)."""
        entry = await self.get_or_compute(listing.creator)
        if entry is None:
            return listing
        return entry.apply(listing)

    # ---- internals ----

    def _failed(self, op: str, label: str, exc: Exception) -> None:
        logging_bridge.error({
            "component": "pf_watch.enrichment",
            "op": op,
            "creator": label,
            "error": repr(exc),
        })

    def _search_url(self, label: str, info: CreatorInfo) -> str | None:
        try:
            return self._lookup.search_url(info)
        except Exception as e:
            self._failed("search_url", label, e)
            return None

    async def _resolve(self, key: str, search_url: str) -> CacheEntry:
        try:
            entry = await self._compute(key, search_url)
        finally:
            self._inflight.pop(key, None)
        self._entries[key] = entry
        return entry

    async def _compute(self, label: str, search_url: str) -> CacheEntry:
        self.lookups += 1

        try:
            profile_url = await self._lookup.find_profile(search_url)
        except Exception as e:
            self._failed("find_profile", label, e)
            profile_url = None

        if not profile_url:
            return CacheEntry(search_url=search_url)

        try:
            achievement_url = self._lookup.achievement_url(profile_url)
        except Exception as e:
            self._failed("achievement_url", label, e)
            achievement_url = None
        if not achievement_url:
            return CacheEntry(search_url=search_url, profile_url=profile_url)

        try:
            result = await self._lookup.fetch_achievements(achievement_url)
        except Exception as e:
            self._failed("fetch_achievements", label, e)
            return CacheEntry(
                search_url=search_url,
                profile_url=profile_url,
                achievement_url=achievement_url,
                achievement_status=AchievementStatus.ERROR,
            )

        return CacheEntry(
            search_url=search_url,
            profile_url=profile_url,
            achievement_url=achievement_url,
            achievement_status=result.status,
            achievement_clears=tuple(result.clears),
        )
