"""
Binder Exchange — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- In-memory SQLite database built from the ORM metadata
- Scryfall card payload builder
- Set icon memo reset between tests
- Async test support via pytest-asyncio
"""

from __future__ import annotations

from typing import Any, AsyncGenerator, Callable, Iterator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.models.base import Base
from src.pipeline.set_icons import set_icon_cache


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)

SCRYFALL_URL = "https://api.scryfall.com"


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a fresh in-memory SQLite database.

    StaticPool keeps every session on the same connection so they all see
    the same in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """One session on the shared in-memory database."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Scryfall Payloads
# ---------------------------------------------------------------------------


@pytest.fixture
def card_json() -> Callable[..., dict[str, Any]]:
    """
    Build a Scryfall card object.

    Usage:
        card_json("A", oracle_id="E1", set="abc", usd="1.50")
    """

    def _build(
        card_id: str,
        oracle_id: str | None = "E1",
        name: str = "Test Card",
        set: str = "abc",
        collector_number: Any = "1",
        usd: str | None = None,
        usd_foil: str | None = None,
        usd_etched: str | None = None,
    ) -> dict[str, Any]:
        return {
            "object": "card",
            "id": card_id,
            "oracle_id": oracle_id,
            "name": name,
            "set": set,
            "collector_number": collector_number,
            "image_uris": {
                "small": f"https://cards.scryfall.io/small/{card_id}.jpg",
                "normal": f"https://cards.scryfall.io/normal/{card_id}.jpg",
            },
            "tcgplayer_id": 1000,
            "prices": {"usd": usd, "usd_foil": usd_foil, "usd_etched": usd_etched},
        }

    return _build


def list_page(
    cards: list[dict[str, Any]],
    next_page: str | None = None,
) -> dict[str, Any]:
    """Scryfall list envelope around `cards`."""
    page: dict[str, Any] = {
        "object": "list",
        "total_cards": len(cards),
        "has_more": next_page is not None,
        "data": cards,
    }
    if next_page:
        page["next_page"] = next_page
    return page


# ---------------------------------------------------------------------------
# Process-wide State
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clear_set_icons() -> Iterator[None]:
    """The set icon memo lives for the process; isolate tests from each other."""
    set_icon_cache.clear()
    yield
    set_icon_cache.clear()
