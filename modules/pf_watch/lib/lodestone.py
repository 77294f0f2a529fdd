"""
Lodestone character lookup: creator label -> search URL -> profile URL ->
high-end achievement clears.

URL builders and HTML parsers are pure; `LodestoneClient` wraps them with
blocking `requests` calls pushed onto a worker thread so the enrichment cache
can await them.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urlencode, urljoin

from bs4 import BeautifulSoup

from .http_client import HttpClient
from .models import AchievementStatus

LODESTONE_BASE_URL = "https://jp.finalfantasyxiv.com"
ACHIEVEMENT_CATEGORY_ID = 4
USER_AGENT = "pf_watch/1.0 (+https://jp.finalfantasyxiv.com)"

_CHARACTER_ID_RE = re.compile(r"/lodestone/character/(\d+)/")


@dataclass(frozen=True)
class CreatorInfo:
    name: str
    world: str


@dataclass(frozen=True)
class AchievementResult:
    status: AchievementStatus
    clears: tuple[str, ...] = ()


def parse_creator(label: str | None) -> CreatorInfo | None:
    """
    Split a "Name @ World" label on its last '@'.
    None when there is no '@' or either side is blank.
    """
    raw = (label or "").strip()
    if not raw:
        return None
    at = raw.rfind("@")
    if at == -1:
        return None
    name = raw[:at].strip()
    world = raw[at + 1 :].strip()
    if not name or not world:
        return None
    return CreatorInfo(name=name, world=world)


def build_search_url(info: CreatorInfo) -> str:
    """Character search URL carrying the same parameters as the site's own form."""
    params: list[tuple[str, str]] = [
        ("q", info.name),
        ("worldname", info.world),
        ("classjob", ""),
        ("race_tribe", ""),
    ]
    params.extend(("gcid", gc) for gc in ("1", "2", "3", "0"))
    params.extend(("blog_lang", lang) for lang in ("ja", "en", "de", "fr"))
    params.append(("order", ""))
    return f"{LODESTONE_BASE_URL}/lodestone/character/?{urlencode(params)}"


def parse_top_character_url(html: str) -> str | None:
    """First search hit's profile URL, made absolute."""
    soup = BeautifulSoup(html or "", "html.parser")
    link = soup.select_one("a.entry__link")
    href = link.get("href") if link is not None else None
    if not href:
        return None
    return urljoin(LODESTONE_BASE_URL, str(href))


def parse_character_id(character_url: str) -> str | None:
    match = _CHARACTER_ID_RE.search(character_url or "")
    return match.group(1) if match else None


def build_achievement_url(character_url: str) -> str | None:
    character_id = parse_character_id(character_url)
    if not character_id:
        return None
    return urljoin(
        LODESTONE_BASE_URL,
        f"/lodestone/character/{character_id}/achievement/category/{ACHIEVEMENT_CATEGORY_ID}/#anchor_achievement",
    )


def parse_achievement_clears(html: str, names: Iterable[str]) -> AchievementResult:
    """
    Look for the target achievements on a category page.

    An entry counts as found when its title is a target name and as cleared
    when it also carries a completion date. Finding no target entries at all
    means the page is private (or the category is hidden).
    """
    targets = set(names)
    soup = BeautifulSoup(html or "", "html.parser")

    found_any = False
    clears: list[str] = []
    for entry in soup.select("li.entry"):
        title = entry.select_one("p.entry__activity__txt")
        name = title.get_text().strip() if title is not None else ""
        if name not in targets:
            continue
        found_any = True
        if entry.select_one("time.entry__activity__time") is not None and name not in clears:
            clears.append(name)

    if not found_any:
        return AchievementResult(status=AchievementStatus.PRIVATE_OR_UNAVAILABLE, clears=())
    return AchievementResult(status=AchievementStatus.OK, clears=tuple(clears))


class LodestoneClient:
    """
    Identity/achievement lookup backed by jp.finalfantasyxiv.com.

    Each network step raises on failure (HTTP errors, timeouts); the
    enrichment cache decides what a failure means for the listing.
    """

    def __init__(self, achievement_names: Iterable[str], *, timeout: float = 30.0, http: HttpClient | None = None):
        self._names = frozenset(achievement_names)
        self._http = http or HttpClient(timeout=timeout, user_agent=USER_AGENT)

    def search_url(self, info: CreatorInfo) -> str:
        return build_search_url(info)

    def achievement_url(self, profile_url: str) -> str | None:
        return build_achievement_url(profile_url)

    async def find_profile(self, search_url: str) -> str | None:
        html = await asyncio.to_thread(self._http.get_text, search_url)
        return parse_top_character_url(html)

    async def fetch_achievements(self, achievement_url: str) -> AchievementResult:
        html = await asyncio.to_thread(self._http.get_text, achievement_url)
        return parse_achievement_clears(html, self._names)

    def close(self) -> None:
        self._http.close()
