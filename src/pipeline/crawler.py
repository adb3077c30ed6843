"""
Binder Exchange — Print Crawler

Fetches every printing of one oracle from Scryfall and upserts them into the
`cards` table in a single batch. Set icons are resolved once per crawl for
all distinct set codes seen, through the process-wide SetIconCache.

Error semantics:
- 404 on the scoped search -> the oracle has no prints; crawl succeeds with 0 rows
- any other upstream failure -> ScryfallAPIError / httpx error propagates
- a failed upsert rolls back and propagates (no partial batches)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import DECIMAL, INTEGER, TIMESTAMP, bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.pipeline.scryfall import ScryfallCard, ScryfallClient
from src.pipeline.set_icons import SetIconCache, set_icon_cache

logger = structlog.get_logger(__name__)


# Typed binds keep timestamps and Decimals in the column's storage format on
# every backend (asyncpg in production, aiosqlite in tests).
UPSERT_PRINTS = text("""
    INSERT INTO cards (
        scryfall_id, oracle_id, name, set_code, collector_number,
        image_small, image_normal, tcgplayer_product_id,
        scry_usd, scry_usd_foil, scry_usd_etched, scry_prices_updated_at,
        set_icon_svg_uri, synced_at, updated_at
    ) VALUES (
        :scryfall_id, :oracle_id, :name, :set_code, :collector_number,
        :image_small, :image_normal, :tcgplayer_product_id,
        :scry_usd, :scry_usd_foil, :scry_usd_etched, :scry_prices_updated_at,
        :set_icon_svg_uri, :synced_at, :updated_at
    )
    ON CONFLICT (scryfall_id) DO UPDATE SET
        oracle_id = COALESCE(EXCLUDED.oracle_id, cards.oracle_id),
        name = EXCLUDED.name,
        set_code = EXCLUDED.set_code,
        collector_number = EXCLUDED.collector_number,
        image_small = EXCLUDED.image_small,
        image_normal = EXCLUDED.image_normal,
        tcgplayer_product_id = EXCLUDED.tcgplayer_product_id,
        scry_usd = EXCLUDED.scry_usd,
        scry_usd_foil = EXCLUDED.scry_usd_foil,
        scry_usd_etched = EXCLUDED.scry_usd_etched,
        scry_prices_updated_at = EXCLUDED.scry_prices_updated_at,
        set_icon_svg_uri = COALESCE(EXCLUDED.set_icon_svg_uri, cards.set_icon_svg_uri),
        synced_at = EXCLUDED.synced_at,
        updated_at = EXCLUDED.updated_at
""").bindparams(
    bindparam("tcgplayer_product_id", type_=INTEGER()),
    bindparam("scry_usd", type_=DECIMAL(10, 2)),
    bindparam("scry_usd_foil", type_=DECIMAL(10, 2)),
    bindparam("scry_usd_etched", type_=DECIMAL(10, 2)),
    bindparam("scry_prices_updated_at", type_=TIMESTAMP(timezone=True)),
    bindparam("synced_at", type_=TIMESTAMP(timezone=True)),
    bindparam("updated_at", type_=TIMESTAMP(timezone=True)),
)


def normalize_print(
    card: ScryfallCard,
    oracle_id: str | None,
    synced_at: datetime,
    set_icon_svg_uri: str | None = None,
) -> dict[str, Any]:
    """
    Map a Scryfall card onto a `cards` row.

    Set codes are uppercased, collector numbers are strings, and each finish
    price is independently nullable.
    """
    images = card.image_uris
    return {
        "scryfall_id": card.id,
        "oracle_id": card.oracle_id or oracle_id,
        "name": card.name,
        "set_code": (card.set or "").upper(),
        "collector_number": card.collector_number,
        "image_small": images.small if images else None,
        "image_normal": images.normal if images else None,
        "tcgplayer_product_id": card.tcgplayer_id,
        "scry_usd": card.prices.usd,
        "scry_usd_foil": card.prices.usd_foil,
        "scry_usd_etched": card.prices.usd_etched,
        "scry_prices_updated_at": synced_at,
        "set_icon_svg_uri": set_icon_svg_uri,
        "synced_at": synced_at,
        "updated_at": synced_at,
    }


async def upsert_prints(session: AsyncSession, rows: list[dict[str, Any]]) -> int:
    """
    Batch upsert print rows keyed by scryfall_id, committed as one unit.

    Returns:
        Number of rows written.
    """
    if not rows:
        return 0

    try:
        await session.execute(UPSERT_PRINTS, rows)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(
            "crawl_upsert_failed",
            rows=len(rows),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise

    return len(rows)


async def crawl_prints(
    session: AsyncSession,
    client: ScryfallClient,
    oracle_id: str,
    *,
    icons: SetIconCache | None = None,
) -> int:
    """
    Fetch all printings of `oracle_id` and upsert them.

    Args:
        session: Async database session.
        client: Open Scryfall client.
        oracle_id: Scryfall oracle id to crawl.
        icons: Icon memo to use (defaults to the process-wide cache).

    Returns:
        Number of print rows upserted.
    """
    if icons is None:
        icons = set_icon_cache

    logger.info("crawl_start", oracle_id=oracle_id)

    cards: list[ScryfallCard] = []
    pages = 0
    page_url: str | None = None

    while True:
        page = await client.search_page(query=f"oracleid:{oracle_id}", page_url=page_url)
        pages += 1
        cards.extend(page.data)

        if not (page.has_more and page.next_page):
            break
        page_url = page.next_page

    synced_at = datetime.now(timezone.utc)
    set_codes = {card.set.upper() for card in cards if card.set}
    icon_map = await icons.resolve(client, set_codes) if set_codes else {}

    rows = []
    for card in cards:
        row = normalize_print(card, oracle_id, synced_at)
        row["set_icon_svg_uri"] = icon_map.get(row["set_code"])
        rows.append(row)

    count = await upsert_prints(session, rows)

    logger.info(
        "crawl_complete",
        oracle_id=oracle_id,
        pages=pages,
        prints=count,
        set_codes=len(set_codes),
    )
    return count
