# modules/pf_watch/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, Settings
from .engine import run_once, scan
from .enrichment import EnrichmentCache
from .extract import extract_listings
from .filters import FilterSpecError, SearchFilter, matches, prefilter_matches
from .models import AchievementStatus, Listing, PartySlot, ScanResult
from .party import build_party_groups
from .pipeline import build_listings
from .reference import ReferenceData, load_reference_data
from .tags import apply_description_tags

__all__ = [
    "AchievementStatus",
    "ConfigError",
    "EnrichmentCache",
    "FilterSpecError",
    "Listing",
    "PartySlot",
    "ReferenceData",
    "ScanResult",
    "SearchFilter",
    "Settings",
    "apply_description_tags",
    "build_listings",
    "build_party_groups",
    "extract_listings",
    "load_reference_data",
    "matches",
    "prefilter_matches",
    "run_once",
    "scan",
]
