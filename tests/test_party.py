# tests/test_party.py
from modules.pf_watch.lib.models import PartySlot
from modules.pf_watch.lib.party import build_party_groups


def _groups(reference, *slots):
    return build_party_groups(slots, reference.code_to_short, reference.code_to_role)


def test_filled_tank_and_recruiting_healers(reference):
    groups = _groups(
        reference,
        PartySlot(("filled", "tank"), "WAR"),
        PartySlot(("healer",), "WHM SCH"),
    )
    assert groups.joined["tank"] == ["戦"]
    assert groups.recruiting["healer"] == {"白", "学"}
    assert groups.joined["healer"] == []
    assert groups.recruiting["tank"] == set()


def test_joined_keeps_headcount(reference):
    groups = _groups(
        reference,
        PartySlot(("filled",), "DNC"),
        PartySlot(("filled",), "DNC"),
    )
    assert groups.joined["dps"] == ["踊", "踊"]


def test_recruiting_is_deduplicated(reference):
    groups = _groups(
        reference,
        PartySlot(("dps",), "BRD MCH"),
        PartySlot(("dps",), "MCH DNC"),
    )
    assert groups.recruiting["dps"] == {"詩", "機", "踊"}


def test_total_and_blank_slots_are_ignored(reference):
    groups = _groups(
        reference,
        PartySlot(("total", "filled"), "WAR"),
        PartySlot(("filled",), "   "),
        PartySlot(("tank",), None),
    )
    assert all(not v for v in groups.joined.values())
    assert all(not v for v in groups.recruiting.values())


def test_unknown_filled_code_is_skipped(reference):
    groups = _groups(reference, PartySlot(("filled",), "XYZ"))
    assert all(not v for v in groups.joined.values())


def test_recruiting_without_hint_uses_code_role(reference):
    groups = _groups(reference, PartySlot(("empty",), "PLD WHM BLM XYZ"))
    assert groups.recruiting == {"tank": {"ナ"}, "healer": {"白"}, "dps": {"黒"}}


def test_role_hint_wins_over_code_role(reference):
    groups = _groups(reference, PartySlot(("healer",), "PLD"))
    assert groups.recruiting["healer"] == {"ナ"}
    assert groups.recruiting["tank"] == set()


def test_unknown_recruiting_code_with_hint_keeps_raw_code(reference):
    groups = _groups(reference, PartySlot(("tank",), "騎"))
    assert groups.recruiting["tank"] == {"騎"}


def test_multiple_hints_add_to_every_hinted_role(reference):
    groups = _groups(reference, PartySlot(("tank", "healer"), "PLD WHM"))
    assert groups.recruiting["tank"] == {"ナ", "白"}
    assert groups.recruiting["healer"] == {"ナ", "白"}
