"""
Declarative listing search filter: types, loader and matcher.

Semantics:
  - Every text match is a case-sensitive substring test (never regex).
  - An absent filter, or an absent sub-field, always passes. It never means "must be empty".
  - Checks short-circuit in a fixed order; the party check runs last because
    it derives role groups from the job tables.

JSON shape (camelCase keys, as operators write it):

    {
      "dutyTitle":     {"terms": ["絶"], "mode": "or"},
      "creator":       {"terms": ["@ Gaia"]},
      "dataCentres":   ["Mana"],
      "pfCategories":  ["HighEndDuty"],
      "requirements":  {"terms": ["Practice"]},
      "description":   {"terms": ["固定", "練習"], "mode": "and"},
      "formattedText": {"terms": ["絶テマ"]},
      "achievements":  {"ultimate": ["絶テマ"], "savage": [], "mode": "and"},
      "party": {
        "joined":     {"tank": ["戦"]},
        "recruiting": {"healer": ["白", "占"], "withinRoleMode": "or", "acrossRolesMode": "and"}
      }
    }
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import ConfigError
from .models import ROLES, AchievementStatus, Listing
from .party import build_party_groups
from .reference import ReferenceData
from .utils import clean_terms

log = logging.getLogger(__name__)

MODES = ("and", "or")


class FilterSpecError(ConfigError):
    """Raised when a search filter document is not valid JSON / not an object."""


# =============================================================================
# FILTER TYPES
# =============================================================================
@dataclass(frozen=True)
class TextFilter:
    terms: tuple[str, ...] = ()
    mode: str = "and"


@dataclass(frozen=True)
class PartyRoleFilter:
    roles: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    within_role_mode: str = "or"
    across_roles_mode: str = "and"


@dataclass(frozen=True)
class PartyFilter:
    joined: PartyRoleFilter | None = None
    recruiting: PartyRoleFilter | None = None


@dataclass(frozen=True)
class AchievementFilter:
    groups: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    mode: str = "and"

    def requested(self) -> dict[str, tuple[str, ...]]:
        return {g: names for g, names in self.groups.items() if names}


@dataclass(frozen=True)
class SearchFilter:
    duty_title: TextFilter | None = None
    creator: TextFilter | None = None
    data_centres: tuple[str, ...] = ()
    pf_categories: tuple[str, ...] = ()
    requirements: TextFilter | None = None
    description: TextFilter | None = None
    party: PartyFilter | None = None
    achievements: AchievementFilter | None = None
    formatted_text: TextFilter | None = None

    def field_names(self) -> list[str]:
        """Configured (non-empty) fields, for run logs."""
        out = []
        for name in (
            "duty_title",
            "creator",
            "data_centres",
            "pf_categories",
            "requirements",
            "description",
            "party",
            "achievements",
            "formatted_text",
        ):
            if getattr(self, name):
                out.append(name)
        return out


# =============================================================================
# LOADER
# =============================================================================
def _mode(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip().lower() in MODES:
        return value.strip().lower()
    return default


def _ignored(path: str, value: Any) -> None:
    log.warning("search filter: ignoring %s (unexpected type %s)", path, type(value).__name__)


def _text_filter(data: Mapping[str, Any], key: str) -> TextFilter | None:
    raw = data.get(key)
    if raw is None:
        return None
    if not isinstance(raw, dict):
        _ignored(key, raw)
        return None
    terms = raw.get("terms")
    if terms is not None and not isinstance(terms, list):
        _ignored(f"{key}.terms", terms)
        terms = None
    return TextFilter(terms=clean_terms(terms), mode=_mode(raw.get("mode"), "and"))


def _string_list(data: Mapping[str, Any], key: str) -> tuple[str, ...]:
    raw = data.get(key)
    if raw is None:
        return ()
    if not isinstance(raw, list):
        _ignored(key, raw)
        return ()
    return clean_terms(raw)


def _role_filter(raw: Any, path: str) -> PartyRoleFilter | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        _ignored(path, raw)
        return None

    roles: dict[str, tuple[str, ...]] = {}
    for role in ROLES:
        value = raw.get(role)
        if value is None:
            continue
        if not isinstance(value, list):
            _ignored(f"{path}.{role}", value)
            continue
        roles[role] = clean_terms(value)

    # roleMode / mode are the older spellings of withinRoleMode / acrossRolesMode
    within = raw.get("withinRoleMode", raw.get("roleMode"))
    across = raw.get("acrossRolesMode", raw.get("mode"))
    return PartyRoleFilter(
        roles=roles,
        within_role_mode=_mode(within, "or"),
        across_roles_mode=_mode(across, "and"),
    )


def _party_filter(data: Mapping[str, Any]) -> PartyFilter | None:
    raw = data.get("party")
    if raw is None:
        return None
    if not isinstance(raw, dict):
        _ignored("party", raw)
        return None
    return PartyFilter(
        joined=_role_filter(raw.get("joined"), "party.joined"),
        recruiting=_role_filter(raw.get("recruiting"), "party.recruiting"),
    )


def _achievement_filter(data: Mapping[str, Any]) -> AchievementFilter | None:
    raw = data.get("achievements")
    if raw is None:
        return None
    if not isinstance(raw, dict):
        _ignored("achievements", raw)
        return None

    groups: dict[str, tuple[str, ...]] = {}
    for key, value in raw.items():
        if key == "mode":
            continue
        if not isinstance(value, list):
            _ignored(f"achievements.{key}", value)
            continue
        groups[str(key)] = clean_terms(value)
    return AchievementFilter(groups=groups, mode=_mode(raw.get("mode"), "and"))


def parse_search_filter(data: Any) -> SearchFilter:
    """
    Build a SearchFilter from decoded JSON.

    The top level must be an object (FilterSpecError otherwise). Sub-fields of
    the wrong type are logged and treated as absent.
    """
    if not isinstance(data, dict):
        raise FilterSpecError(f"search filter must be a JSON object, got {type(data).__name__}.")

    return SearchFilter(
        duty_title=_text_filter(data, "dutyTitle"),
        creator=_text_filter(data, "creator"),
        data_centres=_string_list(data, "dataCentres"),
        pf_categories=_string_list(data, "pfCategories"),
        requirements=_text_filter(data, "requirements"),
        description=_text_filter(data, "description"),
        party=_party_filter(data),
        achievements=_achievement_filter(data),
        formatted_text=_text_filter(data, "formattedText"),
    )


def parse_search_filter_json(raw: str | None) -> SearchFilter | None:
    """Parse a JSON document; blank input means "no filter"."""
    text = (raw or "").strip()
    if not text:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise FilterSpecError(f"search filter is invalid JSON: {e}") from e
    return parse_search_filter(data)


def load_search_filter(path: str | Path) -> SearchFilter | None:
    """Read a filter file. A missing file raises FilterSpecError; an empty file means no filter."""
    try:
        with open(path, encoding="utf-8") as f:
            raw = f.read()
    except FileNotFoundError as e:
        raise FilterSpecError(f"search filter file not found: {path}") from e
    return parse_search_filter_json(raw)


# =============================================================================
# MATCHING
# =============================================================================
def match_text(value: str, flt: TextFilter | None) -> bool:
    if flt is None:
        return True
    terms = clean_terms(flt.terms)
    if not terms:
        return True
    if flt.mode == "or":
        return any(t in value for t in terms)
    return all(t in value for t in terms)


def match_in_list(value: str | None, allow_list: tuple[str, ...]) -> bool:
    if not allow_list:
        return True
    if not value:
        return False
    return value in allow_list


def match_roles(actual_by_role: Mapping[str, Any], flt: PartyRoleFilter | None) -> bool:
    """
    Evaluate one party side. Only roles with expectations produce a verdict;
    the within-role mode combines names, the across-roles mode combines verdicts.
    """
    if flt is None:
        return True

    checks: list[bool] = []
    for role in ROLES:
        expected = clean_terms(flt.roles.get(role))
        if not expected:
            continue
        actual = set(actual_by_role.get(role) or ())
        if flt.within_role_mode == "and":
            checks.append(all(name in actual for name in expected))
        else:
            checks.append(any(name in actual for name in expected))

    if not checks:
        return True
    return all(checks) if flt.across_roles_mode == "and" else any(checks)


def achievement_shorts_by_group(listing: Listing, reference: ReferenceData) -> dict[str, set[str]]:
    """Map the creator's cleared achievement names to short names, per group."""
    short_map = reference.achievement_short
    group_map = reference.achievement_group
    out: dict[str, set[str]] = {g: set() for g in reference.achievement_groups}
    for name in listing.achievement_clears or ():
        group = group_map.get(name)
        if group is None:
            continue
        out.setdefault(group, set()).add(short_map.get(name, name))
    return out


def match_achievements(listing: Listing, flt: AchievementFilter | None, reference: ReferenceData) -> bool:
    """
    Achievement gating: any requested group requires status OK; within a
    group every expected short name must be present; groups combine by mode.
    """
    if flt is None:
        return True
    requested = flt.requested()
    if not requested:
        return True

    # private, errored or never looked up: clears are unknown
    if listing.achievement_status is not AchievementStatus.OK:
        return False

    actual = achievement_shorts_by_group(listing, reference)
    checks = [all(name in actual.get(group, set()) for name in names) for group, names in requested.items()]
    return all(checks) if flt.mode == "and" else any(checks)


def match_party(listing: Listing, flt: PartyFilter | None, reference: ReferenceData) -> bool:
    if flt is None:
        return True
    if flt.joined is None and flt.recruiting is None:
        return True
    groups = build_party_groups(listing.party, reference.code_to_short, reference.code_to_role)
    if not match_roles(groups.joined, flt.joined):
        return False
    return match_roles(groups.recruiting, flt.recruiting)


def prefilter_matches(listing: Listing, flt: SearchFilter | None) -> bool:
    """
    The cheap subset of `matches`: fields known before any external lookup
    and without party-role derivation.
    """
    if flt is None:
        return True
    if not match_text(listing.duty.title if listing.duty else "", flt.duty_title):
        return False
    if not match_text(listing.creator or "", flt.creator):
        return False
    if not match_in_list(listing.data_centre, flt.data_centres):
        return False
    if not match_in_list(listing.pf_category, flt.pf_categories):
        return False
    if not match_text(" ".join(listing.requirements), flt.requirements):
        return False
    return match_text(listing.description or "", flt.description)


def matches(
    listing: Listing,
    flt: SearchFilter | None,
    *,
    reference: ReferenceData,
    formatted_text: str | None = None,
) -> bool:
    """
    Full match decision for one (possibly enriched) listing.

    `formatted_text` is the caller's pre-rendered form; the engine never renders.
    """
    if flt is None:
        return True
    if not prefilter_matches(listing, flt):
        return False
    if not match_achievements(listing, flt.achievements, reference):
        return False
    if flt.formatted_text is not None and not match_text(formatted_text or "", flt.formatted_text):
        return False
    return match_party(listing, flt.party, reference)
