from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

ROLES: tuple[str, ...] = ("tank", "healer", "dps")

# Slot class markers used by the listings page
FILLED_TAG = "filled"
TOTAL_TAG = "total"


class AchievementStatus(str, Enum):
    """
    Outcome of the achievement-page lookup for a listing's creator.
    A listing that was never looked up (or had no profile) carries None instead.
    """

    OK = "ok"
    PRIVATE_OR_UNAVAILABLE = "private_or_unavailable"
    ERROR = "error"


@dataclass(frozen=True)
class Duty:
    title: str
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class PartySlot:
    """
    One cell of a listing's party strip.
    - tags: class tokens ("filled", "tank", "total", ...)
    - title: job code, space-joined job codes, or None for an empty/total cell
    """

    tags: tuple[str, ...]
    title: str | None = None

    @property
    def is_total(self) -> bool:
        return TOTAL_TAG in self.tags

    @property
    def is_filled(self) -> bool:
        return FILLED_TAG in self.tags

    def role_hints(self) -> list[str]:
        return [r for r in ROLES if r in self.tags]


@dataclass(frozen=True)
class Listing:
    """
    A single party-finder post.

    `id` is unique within one extraction batch (first occurrence wins).
    Enrichment fields stay None until the creator has been looked up.
    """

    id: str
    data_centre: str | None = None
    pf_category: str | None = None
    duty: Duty | None = None
    creator: str | None = None
    requirements: tuple[str, ...] = ()
    description: str = ""
    party: tuple[PartySlot, ...] = ()

    # ---- enrichment ----
    lodestone_search_url: str | None = None
    lodestone_url: str | None = None
    achievement_url: str | None = None
    achievement_clears: tuple[str, ...] | None = None
    achievement_status: AchievementStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view (used by the preview script and logs)."""
        return {
            "id": self.id,
            "dataCentre": self.data_centre,
            "pfCategory": self.pf_category,
            "duty": {"title": self.duty.title, "tags": list(self.duty.tags)} if self.duty else None,
            "creator": self.creator,
            "requirements": list(self.requirements),
            "description": self.description,
            "party": [{"tags": list(s.tags), "title": s.title} for s in self.party],
            "lodestoneSearchUrl": self.lodestone_search_url,
            "lodestoneUrl": self.lodestone_url,
            "achievementUrl": self.achievement_url,
            "achievementClears": list(self.achievement_clears) if self.achievement_clears is not None else None,
            "achievementStatus": self.achievement_status.value if self.achievement_status else None,
        }


@dataclass
class PartyGroups:
    """
    Role-partitioned view of a party.
    joined keeps headcount (list); recruiting is deduplicated (set).
    """

    joined: dict[str, list[str]] = field(default_factory=lambda: {r: [] for r in ROLES})
    recruiting: dict[str, set[str]] = field(default_factory=lambda: {r: set() for r in ROLES})


@dataclass
class ScanResult:
    """
    Outcome of one scan over candidate listings.
    - matched: enriched listings that passed the full filter (at most `limit`)
    - texts: rendered text for each matched listing, same order
    """

    matched: list[Listing] = field(default_factory=list)
    texts: list[str] = field(default_factory=list)
    scanned: int = 0
    filtered_out: int = 0
