# tests/test_pipeline.py
from modules.pf_watch.lib.filters import SearchFilter, TextFilter
from modules.pf_watch.lib.models import Listing
from modules.pf_watch.lib.pipeline import build_listings, filter_description_terms, restrict_data_centres


def test_restrict_data_centres():
    listings = [
        Listing(id="1", data_centre="Mana"),
        Listing(id="2", data_centre="UnknownDC"),
        Listing(id="3"),
        Listing(id="4", data_centre="Gaia"),
    ]
    assert [l.id for l in restrict_data_centres(listings, ("Mana", "Gaia"))] == ["1", "4"]


def test_legacy_description_terms():
    listings = [
        Listing(id="1", description="固定 練習"),
        Listing(id="2", description="固定"),
        Listing(id="3", description="野良"),
    ]
    assert [l.id for l in filter_description_terms(listings, ["固定", "練習"])] == ["1"]
    assert [l.id for l in filter_description_terms(listings, ["固定", "練習"], "or")] == ["1", "2"]
    assert [l.id for l in filter_description_terms(listings, [])] == ["1", "2", "3"]


def test_build_listings_end_to_end(reference, listing_html, page_html):
    html = page_html(
        listing_html("1", dc="Mana", description="[Practice] 固定"),
        listing_html("2", dc="UnknownDC", description="[Practice] 固定"),
        listing_html("3", dc="Gaia", description="野良"),
        listing_html("4", dc="Elemental", description="[Loot] 固定"),
    )

    out = build_listings(html, ("Mana", "Gaia", "Elemental"), reference.tags)

    assert [l.id for l in out] == ["1", "3", "4"]
    assert out[0].requirements == ("Practice",)
    assert out[0].description == "固定"


def test_build_listings_prefilter(reference, listing_html, page_html):
    html = page_html(
        listing_html("1", description="[Practice] 固定"),
        listing_html("2", description="[Loot] 固定"),
        listing_html("3", description="[Practice] 野良"),
    )
    flt = SearchFilter(requirements=TextFilter(("Practice",)), description=TextFilter(("固定",)))

    out = build_listings(html, ("Mana",), reference.tags, flt)

    assert [l.id for l in out] == ["1"]


def test_build_listings_applies_legacy_terms_after_tags(reference, listing_html, page_html):
    html = page_html(
        listing_html("1", description="[Practice] 固定"),
        listing_html("2", description="固定"),
    )
    # the tag token is gone before legacy terms are checked
    out = build_listings(html, ("Mana",), reference.tags, description_terms=["[Practice]"])
    assert out == []
