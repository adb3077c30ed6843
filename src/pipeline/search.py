"""
Binder Exchange — Card Search with Cache Warming

Local-first card search. On a miss the catalog cache is warmed for the
query, falling back to a fuzzy name lookup when the query matched nothing
upstream, and the local search runs again.
"""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.models.card_print import CardPrint
from src.pipeline.crawler import normalize_print, upsert_prints
from src.pipeline.freshness import ensure_fresh
from src.pipeline.scryfall import ScryfallAPIError, ScryfallCard, ScryfallClient
from src.pipeline.warmer import warm_for_query

logger = structlog.get_logger(__name__)


async def search_local(
    session: AsyncSession,
    query: str,
    limit: int = settings.SEARCH_LOCAL_LIMIT,
) -> list[CardPrint]:
    """Case-insensitive substring match on card name."""
    needle = query.strip().lower()
    if not needle:
        return []

    needle = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    result = await session.execute(
        select(CardPrint)
        .where(func.lower(CardPrint.name).like(f"%{needle}%", escape="\\"))
        .order_by(CardPrint.set_code.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def search_cards(
    session: AsyncSession,
    client: ScryfallClient,
    query: str,
    *,
    limit: int = settings.SEARCH_LOCAL_LIMIT,
    max_oracles: int = settings.WARM_MAX_ORACLES,
) -> list[CardPrint]:
    """
    Search cached prints, warming the cache on a miss.

    Upstream trouble never fails the search; the caller gets whatever the
    local store holds.
    """
    query = query.strip()
    if not query:
        return []

    hits = await search_local(session, query, limit)
    if hits:
        return hits

    logger.info("search_local_miss", query=query)

    oracle_ids = await warm_for_query(session, client, query, max_oracles)
    if not oracle_ids:
        try:
            card = await client.fetch_named(query)
        except (ScryfallAPIError, httpx.HTTPError, ValueError) as e:
            # ValueError: unreadable body (JSONDecodeError, pydantic ValidationError)
            logger.warning(
                "search_named_fallback_failed",
                query=query,
                error=str(e),
                error_type=type(e).__name__,
            )
            card = None

        if card is not None and card.oracle_id:
            logger.info("search_named_fallback_hit", query=query, name=card.name)
            try:
                await ensure_fresh(session, client, card.oracle_id, card.name)
            except Exception as e:
                logger.error(
                    "search_named_refresh_failed",
                    query=query,
                    oracle_id=card.oracle_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            # The user typed something close to card.name, not a substring of it
            return await search_local(session, card.name, limit)

    return await search_local(session, query, limit)


async def cache_print(session: AsyncSession, card: ScryfallCard) -> None:
    """Upsert one upstream print, e.g. one the user picked from raw results."""
    row = normalize_print(card, card.oracle_id, datetime.now(timezone.utc))
    await upsert_prints(session, [row])
    logger.info("print_cached", scryfall_id=card.id, oracle_id=card.oracle_id)
