from __future__ import annotations

from collections.abc import Collection, Iterable, Sequence

from .extract import extract_listings
from .filters import SearchFilter, TextFilter, match_text, prefilter_matches
from .models import Listing
from .reference import DescriptionTag
from .tags import apply_description_tags
from .utils import clean_terms


def restrict_data_centres(listings: Iterable[Listing], allowed: Collection[str]) -> list[Listing]:
    """Keep listings whose data centre is in `allowed`; a missing data centre never passes."""
    allowed_set = set(allowed)
    return [l for l in listings if l.data_centre and l.data_centre in allowed_set]


def filter_description_terms(listings: Iterable[Listing], terms: Iterable[str], mode: str = "and") -> list[Listing]:
    """Older single-field description filter, kept for FFXIV_PTFINDER_DESCRIPTION_TERMS."""
    flt = TextFilter(terms=clean_terms(terms), mode=mode)
    if not flt.terms:
        return list(listings)
    return [l for l in listings if match_text(l.description, flt)]


def build_listings(
    markup: str,
    allowed_data_centres: Collection[str],
    tags: Sequence[DescriptionTag],
    search_filter: SearchFilter | None = None,
    *,
    description_terms: Iterable[str] = (),
    description_mode: str = "and",
) -> list[Listing]:
    """
    extract -> data-centre allow-list -> tag normalization -> cheap pre-filter.

    Never enriches; the caller runs the cache and the full filter afterwards,
    listing by listing.
    """
    listings = extract_listings(markup)
    listings = restrict_data_centres(listings, allowed_data_centres)
    listings = apply_description_tags(listings, tags)
    listings = filter_description_terms(listings, description_terms, description_mode)
    if search_filter is None:
        return listings
    return [l for l in listings if prefilter_matches(l, search_filter)]
