"""
Binder Exchange — Daily Price Refresh Scheduler

Once a day (DAILY_REFRESH_HOUR:DAILY_REFRESH_MINUTE UTC, default 03:15):
1. Sweep stale oracles through the freshness gate (refresh_stale_oracles)
2. Reprice every auto-priced binder listing from the refreshed catalog

A failed run is logged and the loop keeps going; the next attempt is the
next day's slot.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import date, datetime, time, timezone
from typing import Any, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.pipeline.freshness import refresh_stale_oracles
from src.pipeline.repricer import reprice_binder_cards
from src.pipeline.scryfall import ScryfallClient

logger = structlog.get_logger(__name__)


class Scheduler:
    """
    Async scheduler for the daily catalog refresh.

    Checks every SCHEDULER_CHECK_INTERVAL_SECONDS whether today's slot has
    passed without a run.
    """

    def __init__(
        self,
        db_engine: Any,
        session_factory: async_sessionmaker[AsyncSession],
        client_factory: Callable[[], ScryfallClient] = ScryfallClient,
    ):
        self.db_engine = db_engine
        self.session_factory = session_factory
        self.client_factory = client_factory
        self._shutdown_event = asyncio.Event()

        self._run_at = time(
            hour=settings.DAILY_REFRESH_HOUR,
            minute=settings.DAILY_REFRESH_MINUTE,
            tzinfo=timezone.utc,
        )
        self._last_run_date: date | None = None

    async def shutdown(self) -> None:
        """Signal graceful shutdown to the scheduler loop."""
        logger.info("scheduler_shutdown_requested")
        self._shutdown_event.set()

    def _should_run_daily(self, now: datetime | None = None) -> bool:
        """True once per UTC day, at or after the configured slot."""
        now = now or datetime.now(timezone.utc)
        if self._last_run_date == now.date():
            return False
        slot = datetime.combine(now.date(), self._run_at)
        return now >= slot

    async def run_daily_refresh(self) -> dict[str, int]:
        """
        Sweep stale oracles, then reprice listings.

        Returns:
            {"refreshed": oracles recrawled, "updated": listings repriced}
        """
        logger.info("scheduler_daily_refresh_start")

        async with self.session_factory() as session:
            async with self.client_factory() as client:
                refreshed = await refresh_stale_oracles(
                    session, client, stale_hours=settings.SWEEP_STALE_HOURS
                )
            updated = await reprice_binder_cards(session)

        logger.info(
            "scheduler_daily_refresh_complete",
            refreshed=refreshed,
            updated=updated,
        )
        return {"refreshed": refreshed, "updated": updated}

    async def run(self) -> None:
        """
        Main scheduler loop. Runs indefinitely until shutdown is signaled.
        """
        logger.info(
            "scheduler_started",
            run_at=self._run_at.isoformat(),
            stale_hours=settings.SWEEP_STALE_HOURS,
        )

        poll_check_interval = settings.SCHEDULER_CHECK_INTERVAL_SECONDS

        try:
            while not self._shutdown_event.is_set():
                try:
                    if self._should_run_daily():
                        # Mark first so a failing run is not retried every tick
                        self._last_run_date = datetime.now(timezone.utc).date()
                        try:
                            await self.run_daily_refresh()
                        except Exception as e:
                            logger.error(
                                "scheduler_daily_refresh_failed",
                                error=str(e),
                                error_type=type(e).__name__,
                            )

                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=poll_check_interval,
                    )
                except asyncio.TimeoutError:
                    # Expected: timeout means no shutdown signal, continue loop
                    continue

        except asyncio.CancelledError:
            logger.info("scheduler_cancelled")
            raise
        finally:
            logger.info("scheduler_stopped")


async def run_scheduler(db_engine: Any, session_factory: async_sessionmaker[AsyncSession]) -> None:
    """
    Initialize and run the scheduler with graceful shutdown handling.

    Registers SIGTERM/SIGINT handlers to trigger shutdown.

    Args:
        db_engine: SQLAlchemy async engine.
        session_factory: SQLAlchemy async session factory.
    """
    scheduler = Scheduler(db_engine, session_factory)

    def handle_signal(_signum: int, _frame: Any) -> None:
        """Called by SIGTERM/SIGINT."""
        logger.info("scheduler_signal_received")
        asyncio.create_task(scheduler.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
        loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler for all signals
        logger.warning("signal_handlers_not_supported_on_platform")

    try:
        await scheduler.run()
    except Exception as e:
        logger.error("scheduler_fatal_error", error=str(e), error_type=type(e).__name__)
        raise
