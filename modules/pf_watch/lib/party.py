from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import PartyGroups, PartySlot
from .utils import split_tokens


def build_party_groups(
    party: Iterable[PartySlot],
    code_to_short: Mapping[str, str],
    code_to_role: Mapping[str, str],
) -> PartyGroups:
    """
    Partition a listing's party slots into joined / recruiting role groups.

    Filled slots hold exactly one job code; an unknown code is skipped so it
    never lands in the wrong role. Recruiting slots may list several codes;
    role-hint classes on the slot win over the code's own role.
    """
    groups = PartyGroups()

    for slot in party:
        if slot.is_total:
            continue
        title = (slot.title or "").strip()
        if not title:
            continue

        if slot.is_filled:
            role = code_to_role.get(title)
            if role is None or role not in groups.joined:
                continue
            groups.joined[role].append(code_to_short.get(title, title))
            continue

        hinted = slot.role_hints()
        for code in split_tokens(title):
            short = code_to_short.get(code, code)
            if hinted:
                for role in hinted:
                    groups.recruiting[role].add(short)
                continue
            role = code_to_role.get(code)
            if role in groups.recruiting:
                groups.recruiting[role].add(short)

    return groups
