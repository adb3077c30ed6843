"""
Binder Exchange — Manual Catalog Refresh

Runs one cache-maintenance operation by hand, outside the daily schedule.

Usage:
    python scripts/refresh_catalog.py oracle 4457ed35-7c10-48c8-9776-456485fdf070 --name "Lightning Bolt"
    python scripts/refresh_catalog.py oracle <oracle_id> --force
    python scripts/refresh_catalog.py warm "dragon" --max-oracles 5
    python scripts/refresh_catalog.py sweep --stale-hours 24 --limit 100
    python scripts/refresh_catalog.py reprice --binder-id 2d1c...
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import uuid

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.config import settings
from src.main import configure_logging, create_session_factory
from src.pipeline.freshness import ensure_fresh, refresh_stale_oracles
from src.pipeline.repricer import reprice_binder_cards
from src.pipeline.scryfall import ScryfallClient
from src.pipeline.warmer import warm_for_query


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one catalog cache maintenance operation.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    oracle = sub.add_parser("oracle", help="Refresh one oracle through the freshness gate.")
    oracle.add_argument("oracle_id", help="Scryfall oracle id.")
    oracle.add_argument("--name", default=None, help="Display name for a new oracle row.")
    oracle.add_argument(
        "--force",
        action="store_true",
        help="Ignore the staleness window (stale_days=0).",
    )

    warm = sub.add_parser("warm", help="Warm the cache for a free-text query.")
    warm.add_argument("query", help="Scryfall search text.")
    warm.add_argument("--max-oracles", type=int, default=settings.WARM_MAX_ORACLES)

    sweep = sub.add_parser("sweep", help="Recrawl every stale oracle.")
    sweep.add_argument("--stale-hours", type=float, default=settings.SWEEP_STALE_HOURS)
    sweep.add_argument("--limit", type=int, default=settings.SWEEP_LIMIT)

    reprice = sub.add_parser("reprice", help="Reprice auto-priced binder listings.")
    reprice.add_argument("--binder-id", type=uuid.UUID, default=None)

    return parser.parse_args()


async def run(args: argparse.Namespace) -> str:
    engine, session_factory = create_session_factory()

    try:
        async with session_factory() as session:
            if args.command == "reprice":
                updated = await reprice_binder_cards(session, binder_id=args.binder_id)
                return f"Repriced {updated} listing(s)."

            async with ScryfallClient() as client:
                if args.command == "oracle":
                    stale_days = 0 if args.force else settings.CATALOG_STALE_DAYS
                    crawled = await ensure_fresh(
                        session, client, args.oracle_id, args.name, stale_days=stale_days
                    )
                    return "Crawled." if crawled else "Skipped (fresh or leased elsewhere)."
                if args.command == "warm":
                    oracle_ids = await warm_for_query(
                        session, client, args.query, args.max_oracles
                    )
                    return f"Warmed {len(oracle_ids)} oracle(s): {', '.join(oracle_ids)}"
                refreshed = await refresh_stale_oracles(
                    session, client, stale_hours=args.stale_hours, limit=args.limit
                )
                return f"Refreshed {refreshed} stale oracle(s)."
    finally:
        await engine.dispose()


async def main() -> None:
    args = parse_args()
    configure_logging(settings.LOG_LEVEL)

    try:
        print(await run(args))
    except Exception as e:
        print(f"Refresh failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
