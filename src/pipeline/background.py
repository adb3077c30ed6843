"""
Binder Exchange — Background Refresh Dispatcher

Lets hot read paths trigger ensure_fresh without awaiting it. Each refresh
runs as its own asyncio task with its own DB session and Scryfall client;
failures are logged from the task's done-callback and never reach the
request that scheduled them.

The in-process in-flight set only stops this process from crawling the same
oracle twice at once. Cross-process exclusion is the lease's job.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.pipeline.freshness import ensure_fresh
from src.pipeline.scryfall import ScryfallClient

logger = structlog.get_logger(__name__)


class RefreshDispatcher:
    """
    Owns fire-and-forget ensure_fresh tasks.

    Usage:
        dispatcher = RefreshDispatcher(session_factory)
        dispatcher.submit(oracle_id, "Lightning Bolt")
        ...
        await dispatcher.drain()   # on shutdown
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client_factory: Callable[[], ScryfallClient] = ScryfallClient,
    ) -> None:
        self.session_factory = session_factory
        self.client_factory = client_factory
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def in_flight(self) -> set[str]:
        return set(self._tasks)

    def submit(self, oracle_id: str | None, hint_name: str | None = None) -> asyncio.Task | None:
        """
        Schedule a refresh of `oracle_id` on the running loop.

        Returns:
            The task, or None if `oracle_id` is empty or already in flight.
        """
        if not oracle_id:
            return None
        if oracle_id in self._tasks:
            logger.debug("refresh_already_in_flight", oracle_id=oracle_id)
            return None

        task = asyncio.create_task(
            self._run(oracle_id, hint_name),
            name=f"ensure_fresh:{oracle_id}",
        )
        self._tasks[oracle_id] = task
        task.add_done_callback(lambda t, oid=oracle_id: self._on_done(oid, t))
        return task

    async def _run(self, oracle_id: str, hint_name: str | None) -> bool:
        async with self.session_factory() as session:
            async with self.client_factory() as client:
                return await ensure_fresh(session, client, oracle_id, hint_name)

    def _on_done(self, oracle_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(oracle_id, None)
        if task.cancelled():
            logger.info("refresh_background_cancelled", oracle_id=oracle_id)
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "refresh_background_failed",
                oracle_id=oracle_id,
                error=str(error),
                error_type=type(error).__name__,
            )
        else:
            logger.debug(
                "refresh_background_done",
                oracle_id=oracle_id,
                crawled=task.result(),
            )

    async def drain(self) -> None:
        """Wait for every outstanding refresh to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
