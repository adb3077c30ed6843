"""
Binder Exchange — Batch Repricer

Recomputes computed_price for every binder listing in 'scryfall' price mode
from the cached catalog prices. Run after catalog prices are refreshed.

Each listing is updated and committed on its own. The first failed write
aborts the run and propagates; listings committed before it stay updated.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import PriceMode
from src.engine.listing_price import compute_listing_price, pick_unit_price
from src.models.binder_card import BinderCard
from src.models.card_print import CardPrint

logger = structlog.get_logger(__name__)


async def reprice_binder_cards(
    session: AsyncSession,
    *,
    binder_id: uuid.UUID | None = None,
    binder_card_ids: Sequence[uuid.UUID] | None = None,
) -> int:
    """
    Reprice auto-priced listings, optionally narrowed to one binder or ids.

    Listings whose print has no usable price for their finish are skipped.

    Returns:
        Number of listings updated.
    """
    query = select(
        BinderCard.id,
        BinderCard.card_id,
        BinderCard.finish,
        BinderCard.fx_multiplier,
    ).where(BinderCard.price_mode == PriceMode.SCRYFALL.value)
    if binder_id is not None:
        query = query.where(BinderCard.binder_id == binder_id)
    if binder_card_ids:
        query = query.where(BinderCard.id.in_(list(binder_card_ids)))

    listings = (await session.execute(query)).all()
    if not listings:
        logger.info("reprice_nothing_to_do", binder_id=str(binder_id) if binder_id else None)
        return 0

    card_ids = {row.card_id for row in listings}
    prices = await session.execute(
        select(
            CardPrint.scryfall_id,
            CardPrint.scry_usd,
            CardPrint.scry_usd_foil,
            CardPrint.scry_usd_etched,
        ).where(CardPrint.scryfall_id.in_(card_ids))
    )
    by_id = {card.scryfall_id: card for card in prices.all()}

    updated = 0
    skipped = 0
    vanished = 0
    for row in listings:
        try:
            unit_price = pick_unit_price(by_id.get(row.card_id), row.finish)
        except ValueError:
            logger.warning("reprice_unknown_finish", binder_card_id=str(row.id), finish=row.finish)
            unit_price = None
        if unit_price is None:
            skipped += 1
            continue

        computed = compute_listing_price(unit_price, row.fx_multiplier)
        try:
            result = await session.execute(
                update(BinderCard)
                .where(BinderCard.id == row.id)
                .values(computed_price=computed, last_priced_at=datetime.now(timezone.utc))
            )
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(
                "reprice_write_failed",
                binder_card_id=str(row.id),
                updated_before_failure=updated,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        if result.rowcount:
            updated += 1
        else:
            # Deleted between the select and the write
            vanished += 1
            logger.info("reprice_listing_vanished", binder_card_id=str(row.id))

    logger.info(
        "reprice_complete",
        listings=len(listings),
        updated=updated,
        skipped=skipped,
        vanished=vanished,
    )
    return updated
