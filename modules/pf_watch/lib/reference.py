"""
Immutable lookup tables (jobs, description tags, high-end achievements).

Built once per run by `load_reference_data()` and passed explicitly to every
consumer; nothing here is cached at module level.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .config import ConfigError
from .models import ROLES

JOBS_FILE = "jobs_ja.json"
TAGS_FILE = "description_tags_ja.json"
ACHIEVEMENTS_FILE = "achievements_ja.json"

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


@dataclass(frozen=True)
class JobInfo:
    short: str
    role: str


@dataclass(frozen=True)
class DescriptionTag:
    token: str
    label: str


@dataclass(frozen=True)
class AchievementInfo:
    name: str
    short: str
    group: str


@dataclass(frozen=True)
class ReferenceData:
    jobs: Mapping[str, JobInfo] = field(default_factory=lambda: MappingProxyType({}))
    tags: tuple[DescriptionTag, ...] = ()
    achievements: tuple[AchievementInfo, ...] = ()

    @property
    def code_to_short(self) -> Mapping[str, str]:
        return MappingProxyType({code: info.short for code, info in self.jobs.items()})

    @property
    def code_to_role(self) -> Mapping[str, str]:
        return MappingProxyType({code: info.role for code, info in self.jobs.items()})

    @property
    def achievement_names(self) -> frozenset[str]:
        return frozenset(a.name for a in self.achievements)

    @property
    def achievement_short(self) -> Mapping[str, str]:
        return MappingProxyType({a.name: a.short for a in self.achievements})

    @property
    def achievement_group(self) -> Mapping[str, str]:
        return MappingProxyType({a.name: a.group for a in self.achievements})

    @property
    def achievement_groups(self) -> tuple[str, ...]:
        """Distinct groups in table order (e.g. ("ultimate", "savage"))."""
        seen: list[str] = []
        for a in self.achievements:
            if a.group not in seen:
                seen.append(a.group)
        return tuple(seen)


# -----------------------------
# Parsers (dict -> tables)
# -----------------------------
def parse_jobs(data: Any) -> Mapping[str, JobInfo]:
    """
    Accepts {"version": n, "jobs": {"PLD": {"short": "ナ", "role": "tank"}, ...}}.
    """
    if not isinstance(data, dict) or not isinstance(data.get("jobs"), dict):
        raise ConfigError("jobs table must be an object with a 'jobs' object.")
    out: dict[str, JobInfo] = {}
    for code, info in data["jobs"].items():
        if not isinstance(info, dict):
            raise ConfigError(f"jobs[{code!r}] must be an object.")
        short = info.get("short")
        role = info.get("role")
        if not isinstance(short, str) or not short:
            raise ConfigError(f"jobs[{code!r}].short must be a non-empty string.")
        if role not in ROLES:
            raise ConfigError(f"jobs[{code!r}].role must be one of {ROLES}, got {role!r}.")
        out[str(code)] = JobInfo(short=short, role=role)
    return MappingProxyType(out)


def parse_tags(data: Any) -> tuple[DescriptionTag, ...]:
    """Accepts {"version": n, "tags": [{"token": "[Practice]", "label": "Practice"}, ...]}."""
    if not isinstance(data, dict) or not isinstance(data.get("tags"), list):
        raise ConfigError("description tags table must be an object with a 'tags' list.")
    out: list[DescriptionTag] = []
    for i, item in enumerate(data["tags"]):
        if not isinstance(item, dict):
            raise ConfigError(f"tags[{i}] must be an object.")
        token = item.get("token")
        label = item.get("label")
        if not isinstance(token, str) or not isinstance(label, str):
            raise ConfigError(f"tags[{i}] requires string 'token' and 'label'.")
        out.append(DescriptionTag(token=token, label=label))
    return tuple(out)


def parse_achievements(data: Any) -> tuple[AchievementInfo, ...]:
    """Accepts {"version": n, "achievements": [{"name", "short", "group"}, ...]}."""
    if not isinstance(data, dict) or not isinstance(data.get("achievements"), list):
        raise ConfigError("achievements table must be an object with an 'achievements' list.")
    out: list[AchievementInfo] = []
    for i, item in enumerate(data["achievements"]):
        if not isinstance(item, dict):
            raise ConfigError(f"achievements[{i}] must be an object.")
        name, short, group = item.get("name"), item.get("short"), item.get("group")
        if not all(isinstance(v, str) and v for v in (name, short, group)):
            raise ConfigError(f"achievements[{i}] requires non-empty 'name', 'short' and 'group'.")
        out.append(AchievementInfo(name=name, short=short, group=group))
    return tuple(out)


# -----------------------------
# Loader
# -----------------------------
def _read_json(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"reference data file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"reference data file is invalid JSON: {path}") from e


def load_reference_data(data_dir: str | Path | None = None) -> ReferenceData:
    """Read the three JSON tables from `data_dir` (defaults to the packaged data)."""
    base = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
    return ReferenceData(
        jobs=parse_jobs(_read_json(base / JOBS_FILE)),
        tags=parse_tags(_read_json(base / TAGS_FILE)),
        achievements=parse_achievements(_read_json(base / ACHIEVEMENTS_FILE)),
    )
