#!/usr/bin/env python3
"""
pf_preview.py — run the pf_watch pipeline locally and print what would be sent.

Never posts to the webhook. Lodestone lookups happen only for the Discord
preview or when the filter asks for achievements.

Examples:
    python scripts/pf_preview.py --limit 3
    python scripts/pf_preview.py --output discord --filter-file local/filter.json
    python scripts/pf_preview.py --input saved_listings.html --no-enrich
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Allow running from a checkout without installing
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from modules.pf_watch.lib import engine, render  # noqa: E402
from modules.pf_watch.lib.config import ConfigError, Settings  # noqa: E402
from modules.pf_watch.lib.enrichment import EnrichmentCache  # noqa: E402
from modules.pf_watch.lib.lodestone import LodestoneClient  # noqa: E402
from modules.pf_watch.lib.pipeline import build_listings  # noqa: E402
from modules.pf_watch.lib.reference import load_reference_data  # noqa: E402


# ----------------------------------------------------------------------
def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Preview pf_watch matches without sending anything",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--output", choices=("json", "discord"), default="json", help="Output format")
    parser.add_argument("--limit", type=int, help="Maximum matches (defaults to FFXIV_PTFINDER_LIMIT or 5)")
    parser.add_argument("--filter-file", help="Search filter JSON file")
    parser.add_argument("--input", help="Listings URL or saved HTML file")
    parser.add_argument("--no-enrich", action="store_true", help="Never call Lodestone")
    return parser.parse_args(argv)


def wants_enrichment(args: argparse.Namespace, search_filter) -> bool:
    if args.no_enrich:
        return False
    if args.output == "discord":
        return True
    return bool(search_filter and search_filter.achievements and search_filter.achievements.requested())


# ----------------------------------------------------------------------
def main(argv=None) -> int:
    args = parse_args(argv)

    kwargs = {}
    if args.limit is not None:
        kwargs["limit"] = args.limit
    if args.filter_file:
        kwargs["filter_file"] = args.filter_file
    if args.input:
        kwargs["listings_url"] = args.input

    try:
        settings = Settings.from_env_and_kwargs(kwargs)
        reference = load_reference_data(settings.data_dir)
        search_filter = engine.load_filter(settings)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    markup = engine.load_markup(settings.listings_url, timeout=settings.request_timeout)
    candidates = build_listings(
        markup,
        settings.allowed_data_centres,
        reference.tags,
        search_filter,
        description_terms=settings.description_terms,
        description_mode=settings.description_mode,
    )

    client = None
    cache = None
    if wants_enrichment(args, search_filter):
        client = LodestoneClient(reference.achievement_names, timeout=settings.request_timeout)
        cache = EnrichmentCache(client)
    try:
        result = asyncio.run(engine.scan(candidates, search_filter, reference, cache, settings.limit))
    finally:
        if client is not None:
            client.close()

    try:
        if args.output == "discord":
            print("\n\n".join(render.discord_messages(result.texts)))
        else:
            print(json.dumps([l.to_dict() for l in result.matched], ensure_ascii=False, indent=2))
    except BrokenPipeError:
        # `| head` closed stdout early
        sys.stderr.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
