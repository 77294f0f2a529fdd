from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace

from .models import Listing
from .reference import DescriptionTag
from .utils import normalize_spaces


def strip_tags(description: str, tags: Sequence[DescriptionTag]) -> tuple[str, tuple[str, ...]]:
    """
    Remove every occurrence of every tag token from `description`.

    Returns (clean_description, labels) where labels follow table order and
    appear once per tag found, regardless of how many times the token occurred.
    """
    labels: list[str] = []
    text = description or ""
    for tag in tags:
        if not tag.token:
            continue
        if tag.token in text:
            if tag.label not in labels:
                labels.append(tag.label)
            text = text.replace(tag.token, "")
    return normalize_spaces(text), tuple(labels)


def apply_description_tags(listings: Iterable[Listing], tags: Sequence[DescriptionTag]) -> list[Listing]:
    """
    Order-preserving map: every listing comes back, with tag tokens moved out
    of `description` and into `requirements`.
    """
    out: list[Listing] = []
    for listing in listings:
        description, labels = strip_tags(listing.description, tags)
        out.append(replace(listing, description=description, requirements=labels))
    return out
