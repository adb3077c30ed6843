"""
Binder Exchange — Query-Driven Warmer

Turns a local search miss into cache fills: discover which oracles match a
free-text query upstream, then run each through the freshness gate.

Discovery stops as soon as `max_oracles` distinct oracles are known, even
mid-page. Oracles are refreshed one after another to keep at most one
upstream crawl in flight per call.
"""

from __future__ import annotations

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.pipeline.freshness import ensure_fresh
from src.pipeline.scryfall import ScryfallAPIError, ScryfallClient

logger = structlog.get_logger(__name__)


async def discover_oracles(
    client: ScryfallClient,
    query: str,
    max_oracles: int = settings.WARM_MAX_ORACLES,
) -> dict[str, str | None]:
    """
    Collect up to `max_oracles` distinct oracle ids matching `query`.

    Upstream failures, including unreadable response bodies, end discovery
    early and are logged, not raised.

    Returns:
        oracle_id -> first-seen card name, in discovery order.
    """
    found: dict[str, str | None] = {}
    page_url: str | None = None

    while len(found) < max_oracles:
        try:
            page = await client.search_page(query=query, page_url=page_url)
        except (ScryfallAPIError, httpx.HTTPError, ValueError) as e:
            # ValueError: unreadable body (JSONDecodeError, pydantic ValidationError)
            logger.warning(
                "warm_discovery_failed",
                query=query,
                error=str(e),
                error_type=type(e).__name__,
            )
            break

        for card in page.data:
            if len(found) >= max_oracles:
                break
            if card.oracle_id and card.oracle_id not in found:
                found[card.oracle_id] = card.name

        if not (page.has_more and page.next_page):
            break
        page_url = page.next_page

    return found


async def warm_for_query(
    session: AsyncSession,
    client: ScryfallClient,
    query: str,
    max_oracles: int = settings.WARM_MAX_ORACLES,
) -> list[str]:
    """
    Warm the print cache for oracles matching a free-text query.

    Each discovered oracle goes through ensure_fresh sequentially. A failure
    on one oracle is logged and the rest still run.

    Returns:
        Discovered oracle ids (empty when upstream found nothing).
    """
    logger.info("warm_query_start", query=query, max_oracles=max_oracles)

    found = await discover_oracles(client, query, max_oracles)

    refreshed = 0
    for oracle_id, name in found.items():
        try:
            if await ensure_fresh(session, client, oracle_id, name):
                refreshed += 1
        except Exception as e:
            logger.error(
                "warm_oracle_failed",
                query=query,
                oracle_id=oracle_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    logger.info(
        "warm_query_complete",
        query=query,
        oracles=len(found),
        refreshed=refreshed,
    )
    return list(found)
