"""
Binder Exchange — Catalog Cache Worker Entrypoint

Configures structlog, opens the database, reports the state of the catalog
cache, then hands control to the daily refresh scheduler.

Run via:
    python -m src.main
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from src.config import PriceMode, settings
from src.models.binder_card import BinderCard
from src.models.card_print import CardPrint
from src.models.oracle import Oracle
from src.pipeline.scheduler import run_scheduler

logger = structlog.get_logger(__name__)


def configure_logging(log_level: str = settings.LOG_LEVEL) -> None:
    """
    JSON logs on stdout, filtered at `log_level`.

    structlog goes through stdlib loggers so `filter_by_level` can see the
    configured level; SQLAlchemy and httpx logs share the same stream.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_session_factory(database_url: str = settings.DATABASE_URL) -> tuple[Any, async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(
        database_url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )
    return engine, async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def catalog_status(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    stale_hours: float = settings.SWEEP_STALE_HOURS,
) -> dict[str, int]:
    """
    Snapshot of the cache, doubling as the startup health check.

    Fails if the database is unreachable or the catalog tables are missing.

    Returns:
        oracles, stale_oracles (due for the next sweep), prints,
        auto_priced_listings
    """
    cutoff = datetime.now(timezone.utc) - timedelta(hours=stale_hours)

    async with session_factory() as session:
        oracles = (await session.execute(select(func.count()).select_from(Oracle))).scalar_one()
        stale = (
            await session.execute(
                select(func.count())
                .select_from(Oracle)
                .where(or_(Oracle.last_synced_at.is_(None), Oracle.last_synced_at <= cutoff))
            )
        ).scalar_one()
        prints = (await session.execute(select(func.count()).select_from(CardPrint))).scalar_one()
        auto_priced = (
            await session.execute(
                select(func.count())
                .select_from(BinderCard)
                .where(BinderCard.price_mode == PriceMode.SCRYFALL.value)
            )
        ).scalar_one()

    return {
        "oracles": oracles,
        "stale_oracles": stale,
        "prints": prints,
        "auto_priced_listings": auto_priced,
    }


async def main() -> None:
    configure_logging()
    engine, session_factory = create_session_factory()

    try:
        try:
            status = await catalog_status(session_factory)
        except Exception as e:
            logger.error(
                "catalog_health_check_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.info(
            "catalog_worker_ready",
            stale_days=settings.CATALOG_STALE_DAYS,
            run_at=f"{settings.DAILY_REFRESH_HOUR:02d}:{settings.DAILY_REFRESH_MINUTE:02d}Z",
            **status,
        )
        await run_scheduler(engine, session_factory)
    finally:
        await engine.dispose()
        logger.info("catalog_worker_stopped")


if __name__ == "__main__":
    asyncio.run(main())
