"""
Binder Exchange — Freshness Gate

Single-flight, staleness-gated refresh of one oracle's prints.

The lease is `oracles.last_synced_at` itself. One atomic upsert moves it to
"now" only when it is NULL or at/older than the staleness cutoff, and reports
success by returning the row. There is no unlock step: a holder that dies
mid-crawl leaves a recent timestamp that reads as fresh until the window
passes again. A crawl that fails with an exception hands the previous
timestamp back so the oracle stays eligible.

Staleness convention: stale iff last_synced_at <= now - stale window.

Failure semantics:
- storage read failure on the freshness check -> warning, skip (fail open)
- lease contention -> no-op, not an error
- crawl / metadata failure -> propagates to the caller
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import TIMESTAMP, bindparam, func, or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.models.card_print import CardPrint
from src.models.oracle import Oracle
from src.pipeline.crawler import crawl_prints
from src.pipeline.scryfall import ScryfallClient

logger = structlog.get_logger(__name__)


ACQUIRE_LEASE = text("""
    INSERT INTO oracles (oracle_id, name, prints_count, last_synced_at)
    VALUES (:oracle_id, :name, 0, :now)
    ON CONFLICT (oracle_id) DO UPDATE SET
        last_synced_at = EXCLUDED.last_synced_at
    WHERE oracles.last_synced_at IS NULL
       OR oracles.last_synced_at <= :cutoff
    RETURNING oracle_id
""").bindparams(
    bindparam("now", type_=TIMESTAMP(timezone=True)),
    bindparam("cutoff", type_=TIMESTAMP(timezone=True)),
)

RELEASE_LEASE = text("""
    UPDATE oracles
    SET last_synced_at = :previous
    WHERE oracle_id = :oracle_id
      AND last_synced_at = :claimed_at
""").bindparams(
    bindparam("previous", type_=TIMESTAMP(timezone=True)),
    bindparam("claimed_at", type_=TIMESTAMP(timezone=True)),
)

UPSERT_ORACLE_META = text("""
    INSERT INTO oracles (oracle_id, name, prints_count, last_synced_at)
    VALUES (:oracle_id, :name, :prints_count, :last_synced_at)
    ON CONFLICT (oracle_id) DO UPDATE SET
        name = COALESCE(oracles.name, EXCLUDED.name),
        prints_count = EXCLUDED.prints_count,
        last_synced_at = EXCLUDED.last_synced_at
""").bindparams(
    bindparam("last_synced_at", type_=TIMESTAMP(timezone=True)),
)


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands timestamps back naive; they are always stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_stale(last_synced_at: datetime | None, cutoff: datetime) -> bool:
    """True when the oracle has never synced or synced at/before `cutoff`."""
    last_synced_at = _as_utc(last_synced_at)
    return last_synced_at is None or last_synced_at <= cutoff


async def acquire_lease(
    session: AsyncSession,
    oracle_id: str,
    hint_name: str | None,
    *,
    cutoff: datetime,
    now: datetime,
) -> bool:
    """
    Claim the refresh of `oracle_id` by compare-and-set on last_synced_at.

    Creates the oracle row on first contact. Returns False when another
    caller refreshed (or is refreshing) inside the current window.
    """
    try:
        result = await session.execute(
            ACQUIRE_LEASE,
            {"oracle_id": oracle_id, "name": hint_name, "now": now, "cutoff": cutoff},
        )
        claimed = result.first() is not None
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(
            "freshness_lease_failed",
            oracle_id=oracle_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    return claimed


async def release_lease(
    session: AsyncSession,
    oracle_id: str,
    *,
    previous: datetime | None,
    claimed_at: datetime,
) -> None:
    """Hand back a lease we still hold, restoring the prior timestamp."""
    try:
        await session.execute(
            RELEASE_LEASE,
            {"oracle_id": oracle_id, "previous": previous, "claimed_at": claimed_at},
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.warning(
            "freshness_lease_release_failed",
            oracle_id=oracle_id,
            error=str(e),
        )


async def refresh_oracle_meta(
    session: AsyncSession,
    oracle_id: str,
    name: str | None = None,
) -> int:
    """
    Write the authoritative oracle row after a crawl.

    prints_count is recounted from `cards`, an existing name is kept and a
    missing one filled from `name`, last_synced_at moves to now.

    Returns:
        The print count written.
    """
    count_result = await session.execute(
        select(func.count()).select_from(CardPrint).where(CardPrint.oracle_id == oracle_id)
    )
    prints_count = count_result.scalar_one()

    await session.execute(
        UPSERT_ORACLE_META,
        {
            "oracle_id": oracle_id,
            "name": name,
            "prints_count": prints_count,
            "last_synced_at": datetime.now(timezone.utc),
        },
    )
    await session.commit()

    logger.info(
        "oracle_meta_refreshed",
        oracle_id=oracle_id,
        prints_count=prints_count,
    )
    return prints_count


async def ensure_fresh(
    session: AsyncSession,
    client: ScryfallClient,
    oracle_id: str | None,
    hint_name: str | None = None,
    *,
    stale_days: float = settings.CATALOG_STALE_DAYS,
) -> bool:
    """
    Refresh `oracle_id` if its prints are stale and nobody else is on it.

    Args:
        session: Async database session.
        client: Open Scryfall client.
        oracle_id: Oracle to check. Falsy -> no-op.
        hint_name: Display name to seed a new oracle row with.
        stale_days: Staleness window in days (fractions allowed).

    Returns:
        True if this call held the lease and crawled, False otherwise.
    """
    if not oracle_id:
        return False

    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(days=stale_days)

    try:
        result = await session.execute(
            select(Oracle.last_synced_at).where(Oracle.oracle_id == oracle_id)
        )
        previous = _as_utc(result.scalar_one_or_none())
    except SQLAlchemyError as e:
        await session.rollback()
        logger.warning(
            "freshness_read_failed_skipping",
            oracle_id=oracle_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False

    if not is_stale(previous, cutoff):
        logger.debug("freshness_cache_fresh", oracle_id=oracle_id)
        return False

    if not await acquire_lease(session, oracle_id, hint_name, cutoff=cutoff, now=now):
        logger.info("freshness_lease_contended", oracle_id=oracle_id)
        return False

    logger.info("freshness_lease_acquired", oracle_id=oracle_id, stale_days=stale_days)

    try:
        await crawl_prints(session, client, oracle_id)
    except Exception as e:
        logger.error(
            "freshness_crawl_failed",
            oracle_id=oracle_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        await release_lease(session, oracle_id, previous=previous, claimed_at=now)
        raise

    await refresh_oracle_meta(session, oracle_id, hint_name)
    return True


async def refresh_stale_oracles(
    session: AsyncSession,
    client: ScryfallClient,
    *,
    stale_hours: float = settings.SWEEP_STALE_HOURS,
    limit: int = settings.SWEEP_LIMIT,
) -> int:
    """
    Scheduled sweep: push every oracle older than `stale_hours` through the gate.

    Oldest (and never-synced) first. A failing oracle is logged and skipped;
    a failure to list the stale oracles propagates.

    Returns:
        Number of oracles actually recrawled.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(hours=stale_hours)

    result = await session.execute(
        select(Oracle.oracle_id, Oracle.name)
        .where(or_(Oracle.last_synced_at.is_(None), Oracle.last_synced_at <= cutoff))
        .order_by(Oracle.last_synced_at.asc().nulls_first())
        .limit(limit)
    )
    stale = result.all()

    logger.info("sweep_start", stale_oracles=len(stale), stale_hours=stale_hours)

    refreshed = 0
    failed = 0
    for oracle_id, name in stale:
        try:
            if await ensure_fresh(
                session, client, oracle_id, name, stale_days=stale_hours / 24
            ):
                refreshed += 1
        except Exception as e:
            failed += 1
            logger.error(
                "sweep_oracle_failed",
                oracle_id=oracle_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    logger.info("sweep_complete", refreshed=refreshed, failed=failed)
    return refreshed
