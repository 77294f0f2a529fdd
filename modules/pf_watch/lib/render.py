from __future__ import annotations

from collections.abc import Iterable

from .models import AchievementStatus, Listing
from .party import build_party_groups
from .reference import ReferenceData

NO_MATCH_MESSAGE = "該当の募集は見つかりませんでした"
DISCORD_MAX_CHARS = 1900

_ROLE_LABELS = (("tank", "タンク"), ("healer", "ヒーラー"), ("dps", "DPS"))


def _role_line(label: str, values: Iterable[str]) -> str:
    return f"{label}：{' '.join(values)}"


def format_clears(listing: Listing, group: str, reference: ReferenceData) -> str:
    """Display value for one achievement group's clear line."""
    if not listing.achievement_url and not listing.lodestone_url:
        return ""

    status = listing.achievement_status
    if status is AchievementStatus.PRIVATE_OR_UNAVAILABLE:
        return "非公開/取得不可"
    if status is AchievementStatus.ERROR:
        return "取得エラー"

    # OK, or a profile without a derivable achievement page
    group_map = reference.achievement_group
    short_map = reference.achievement_short
    shorts = [short_map.get(n, n) for n in listing.achievement_clears or () if group_map.get(n) == group]
    return " / ".join(shorts) if shorts else "なし"


def format_listing_text(listing: Listing, reference: ReferenceData) -> str:
    """
    One listing as a plain-text block. This is also the form the
    `formattedText` filter matches against.
    """
    groups = build_party_groups(listing.party, reference.code_to_short, reference.code_to_role)
    lines = [
        f"コンテンツ: {listing.duty.title if listing.duty else ''}",
        f"募集者: {listing.creator or ''}",
        f"ロードストーン: {listing.lodestone_url or listing.lodestone_search_url or ''}",
        f"絶クリア: {format_clears(listing, 'ultimate', reference)}",
        f"零式クリア: {format_clears(listing, 'savage', reference)}",
        f"DC: {listing.data_centre or ''}",
        f"カテゴリ: {listing.pf_category or ''}",
        f"要件: {' '.join(listing.requirements)}",
        f"募集文: {listing.description}",
        "パーティ:",
        "【参加ジョブ】",
    ]
    lines.extend(_role_line(label, groups.joined[role]) for role, label in _ROLE_LABELS)
    lines.append("【募集ジョブ】")
    lines.extend(_role_line(label, sorted(groups.recruiting[role])) for role, label in _ROLE_LABELS)
    return "\n".join(lines)


def to_discord_code_block(text: str, max_chars: int = DISCORD_MAX_CHARS) -> str:
    """Wrap in a ``` block, keeping the message under Discord's 2000-char cap."""
    sanitized = (text or "").replace("```", "'''").strip()
    if len(sanitized) > max_chars:
        sanitized = sanitized[: max_chars - 1].rstrip() + "…"
    return f"```\n{sanitized}\n```"


def discord_messages(texts: Iterable[str]) -> list[str]:
    """One code block per listing; the no-match line when there is nothing to send."""
    messages = [to_discord_code_block(t) for t in texts]
    return messages or [NO_MATCH_MESSAGE]
