"""
Listings page -> Listing records.

Pure text-to-structure transformation: no network, no files. Structural
absence (no container, no data-id, empty class list) skips the affected unit
and never fails the batch.
"""

from __future__ import annotations

from collections.abc import Iterator

from bs4 import BeautifulSoup
from bs4.element import Tag

from .models import Duty, Listing, PartySlot
from .utils import normalize_text, split_tokens

LISTINGS_ROOT = "#listings"
LISTING_SELECTOR = "div.listing[data-id]"
CREATOR_SELECTOR = ".right.meta .item.creator .text"


def _class_tokens(node: Tag) -> list[str]:
    # bs4 returns multi-valued attributes (class) as a list, others as str
    raw = node.get("class")
    if isinstance(raw, list):
        return [tok for tok in raw if tok]
    return split_tokens(raw)


def _attr(node: Tag, name: str) -> str | None:
    value = node.get(name)
    if value is None:
        return None
    if isinstance(value, list):
        value = " ".join(value)
    return str(value)


def iter_listing_nodes(soup: BeautifulSoup) -> Iterator[Tag]:
    """
    Yield candidate listing nodes in document order.
    Prefers the #listings container and falls back to a document-wide scan.
    """
    root = soup.select_one(LISTINGS_ROOT)
    scope = root if root is not None else soup
    yield from scope.select(LISTING_SELECTOR)


def _parse_duty(node: Tag) -> Duty | None:
    duty_node = node.select_one(".duty")
    if duty_node is None:
        return None
    # an empty title attribute is kept: the duty is then absent
    title_attr = _attr(duty_node, "title")
    title = (title_attr if title_attr is not None else normalize_text(duty_node.get_text())).strip()
    if not title:
        return None
    return Duty(title=title, tags=tuple(_class_tokens(duty_node)))


def _parse_creator(node: Tag) -> str | None:
    creator_node = node.select_one(CREATOR_SELECTOR)
    if creator_node is None:
        return None
    text = normalize_text(creator_node.get_text())
    return text or None


def _parse_description(node: Tag) -> str:
    desc_node = node.select_one(".description")
    if desc_node is None:
        return ""
    return normalize_text(desc_node.get_text())


def _parse_party(node: Tag) -> tuple[PartySlot, ...]:
    party_root = node.select_one(".party")
    if party_root is None:
        return ()

    slots: list[PartySlot] = []
    for child in party_root.find_all("div", recursive=False):
        tags = _class_tokens(child)
        if not tags:
            continue
        title = _attr(child, "title")
        slots.append(PartySlot(tags=tuple(tags), title=title or None))
    return tuple(slots)


def parse_listing_node(node: Tag) -> Listing | None:
    """Convert one listing node; None when it has no usable data-id."""
    listing_id = (_attr(node, "data-id") or "").strip()
    if not listing_id:
        return None

    return Listing(
        id=listing_id,
        data_centre=_attr(node, "data-centre") or None,
        pf_category=_attr(node, "data-pf-category") or None,
        duty=_parse_duty(node),
        creator=_parse_creator(node),
        requirements=(),
        description=_parse_description(node),
        party=_parse_party(node),
    )


def extract_listings(markup: str) -> list[Listing]:
    """
    Parse raw listings markup into Listings, in document order.
    Duplicate ids are dropped; the first occurrence wins.
    """
    if not markup or not markup.strip():
        return []

    soup = BeautifulSoup(markup, "html.parser")

    out: list[Listing] = []
    seen: set[str] = set()
    for node in iter_listing_nodes(soup):
        listing = parse_listing_node(node)
        if listing is None:
            continue
        if listing.id in seen:
            continue
        seen.add(listing.id)
        out.append(listing)
    return out
