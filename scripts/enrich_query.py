#!/usr/bin/env python3
"""
Run one query through the enrichment engine and print the result.

Usage:
    python scripts/enrich_query.py "fajr time in London"
    python scripts/enrich_query.py "namaz ka waqt" --location 24.8607,67.0011 --timezone Asia/Karachi
    python scripts/enrich_query.py "gold price today" --json

Prints the prompt-ready context text by default, or the full payload as
JSON with --json. Settings come from the same environment variables as the
server (SEARXNG_URL, TAVILY_API_KEY, ENRICH_*).
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from plugin_base.common import EnrichmentContext, ResolvedLocation  # noqa: E402
from routing import EnrichmentEngine  # noqa: E402

logger = logging.getLogger(__name__)


def parse_location(value: str, timezone_name: str) -> ResolvedLocation:
    try:
        lat, lng = (float(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected 'lat,lng', got {value!r}")
    return ResolvedLocation(lat=lat, lng=lng, timezone=timezone_name)


def main():
    parser = argparse.ArgumentParser(
        description="Enrich a query with live external data"
    )
    parser.add_argument("query", help="The user query")
    parser.add_argument(
        "--location", help="Caller location as 'lat,lng' (e.g. 51.5074,-0.1278)"
    )
    parser.add_argument(
        "--timezone", default="UTC", help="IANA time zone for --location"
    )
    parser.add_argument(
        "--json", action="store_true", help="Print the full payload as JSON"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log engine activity"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    context = EnrichmentContext()
    if args.location:
        try:
            context.resolved_location = parse_location(args.location, args.timezone)
        except argparse.ArgumentTypeError as e:
            parser.error(str(e))

    engine = EnrichmentEngine()
    payload = engine.enrich_sync(args.query, context)

    if args.json:
        print(json.dumps(payload.to_dict(), indent=2, ensure_ascii=False))
    else:
        text = engine.context_text(payload)
        if text:
            print(text)
        else:
            print(f"No external data needed ({payload.verdict.reason})")

    return 0


if __name__ == "__main__":
    sys.exit(main())
