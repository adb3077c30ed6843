"""
Tests for local-first card search (src/pipeline/search.py).

Covers:
- Local substring search, escaping and ordering
- Warm-on-miss path end to end against a mocked Scryfall
- Fuzzy-name fallback when the query matched nothing upstream
- Upstream failures degrading to local results
- cache_print single-print upsert
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx

from conftest import SCRYFALL_URL, list_page
from src.models.card_print import CardPrint
from src.pipeline.scryfall import ScryfallAPIError, ScryfallCard, ScryfallClient
from src.pipeline.search import cache_print, search_cards, search_local


async def _seed(session, *rows: tuple[str, str, str]) -> None:
    for scryfall_id, name, set_code in rows:
        session.add(CardPrint(
            scryfall_id=scryfall_id, oracle_id="E1", name=name,
            set_code=set_code, collector_number="1",
        ))
    await session.commit()


# ---------------------------------------------------------------------------
# search_local
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_local_search_is_case_insensitive_substring(db_session) -> None:
    await _seed(
        db_session,
        ("A", "Lightning Bolt", "LEA"),
        ("B", "Chain Lightning", "LEG"),
        ("C", "Counterspell", "LEA"),
    )

    hits = await search_local(db_session, "  LIGHTNING ")

    assert {h.scryfall_id for h in hits} == {"A", "B"}
    # Ordered by set code, descending
    assert [h.set_code for h in hits] == ["LEG", "LEA"]


@pytest.mark.asyncio
async def test_local_search_escapes_wildcards(db_session) -> None:
    await _seed(db_session, ("A", "100% Bolt", "ABC"), ("B", "1000 Bolts", "ABC"))

    hits = await search_local(db_session, "100%")

    assert [h.scryfall_id for h in hits] == ["A"]


@pytest.mark.asyncio
async def test_local_search_limit_and_blank(db_session) -> None:
    await _seed(db_session, *[(f"P{i}", "Island", f"S{i:02d}") for i in range(5)])

    assert len(await search_local(db_session, "island", limit=3)) == 3
    assert await search_local(db_session, "   ") == []


# ---------------------------------------------------------------------------
# search_cards
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_local_hit_skips_upstream(db_session) -> None:
    await _seed(db_session, ("A", "Lightning Bolt", "LEA"))
    client = MagicMock()

    with patch("src.pipeline.search.warm_for_query", new=AsyncMock()) as warm:
        hits = await search_cards(db_session, client, "bolt")

    assert [h.scryfall_id for h in hits] == ["A"]
    warm.assert_not_awaited()


@pytest.mark.asyncio
async def test_blank_query_returns_nothing(db_session) -> None:
    assert await search_cards(db_session, MagicMock(), "  ") == []


@pytest.mark.asyncio
async def test_miss_warms_cache_then_searches_again(db_session, card_json) -> None:
    discovery = list_page([card_json("D1", oracle_id="E1", name="Test Card")])
    crawl = list_page([
        card_json("P1", oracle_id="E1", name="Test Card", set="abc", usd="1.00"),
        card_json("P2", oracle_id="E1", name="Test Card", set="def", usd="2.00"),
    ])

    with respx.mock(base_url=SCRYFALL_URL) as mock:
        mock.get("/cards/search", params={"q": "test card"}).mock(
            return_value=httpx.Response(200, json=discovery)
        )
        mock.get("/cards/search", params={"q": "oracleid:E1"}).mock(
            return_value=httpx.Response(200, json=crawl)
        )
        mock.get("/sets/abc").mock(return_value=httpx.Response(404, json={}))
        mock.get("/sets/def").mock(return_value=httpx.Response(404, json={}))

        async with ScryfallClient() as client:
            hits = await search_cards(db_session, client, "test card")

    assert [h.scryfall_id for h in hits] == ["P2", "P1"]
    assert hits[1].scry_usd == Decimal("1.00")


@pytest.mark.asyncio
async def test_named_fallback_searches_by_resolved_name(db_session) -> None:
    card = ScryfallCard.model_validate(
        {"id": "N1", "oracle_id": "E9", "name": "Lightning Bolt", "set": "lea", "collector_number": "161"}
    )
    client = MagicMock()
    client.fetch_named = AsyncMock(return_value=card)

    async def crawl(session, client, oracle_id, hint_name=None, **kwargs):
        await _seed(session, ("N1", "Lightning Bolt", "LEA"))
        return True

    with patch("src.pipeline.search.warm_for_query", new=AsyncMock(return_value=[])), \
         patch("src.pipeline.search.ensure_fresh", new=AsyncMock(side_effect=crawl)) as gate:
        hits = await search_cards(db_session, client, "lightnin bolt")

    client.fetch_named.assert_awaited_once_with("lightnin bolt")
    assert gate.await_args.args[2:] == ("E9", "Lightning Bolt")
    assert [h.scryfall_id for h in hits] == ["N1"]


@pytest.mark.asyncio
async def test_upstream_failures_degrade_to_empty(db_session) -> None:
    client = MagicMock()
    client.fetch_named = AsyncMock(side_effect=ScryfallAPIError(503, "/cards/named"))

    with patch("src.pipeline.search.warm_for_query", new=AsyncMock(return_value=[])):
        assert await search_cards(db_session, client, "anything") == []


@pytest.mark.asyncio
async def test_named_refresh_failure_still_returns_local(db_session) -> None:
    await _seed(db_session, ("N1", "Lightning Bolt", "LEA"))
    card = ScryfallCard.model_validate(
        {"id": "N1", "oracle_id": "E9", "name": "Lightning Bolt", "set": "lea", "collector_number": "161"}
    )
    client = MagicMock()
    client.fetch_named = AsyncMock(return_value=card)

    with patch("src.pipeline.search.warm_for_query", new=AsyncMock(return_value=[])), \
         patch("src.pipeline.search.ensure_fresh", new=AsyncMock(side_effect=httpx.ConnectError("down"))):
        hits = await search_cards(db_session, client, "lightnin bolt")

    assert [h.scryfall_id for h in hits] == ["N1"]


# ---------------------------------------------------------------------------
# cache_print
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cache_print_upserts_single_print(db_session, card_json) -> None:
    card = ScryfallCard.model_validate(card_json("X1", oracle_id="E5", set="mh3", usd="0.25"))

    await cache_print(db_session, card)

    hits = await search_local(db_session, "test card")
    assert len(hits) == 1
    assert hits[0].scryfall_id == "X1"
    assert hits[0].set_code == "MH3"
    assert hits[0].scry_usd == Decimal("0.25")


@pytest.mark.asyncio
async def test_unreadable_upstream_bodies_degrade_to_empty(db_session) -> None:
    with respx.mock(base_url=SCRYFALL_URL) as mock:
        mock.get("/cards/search").mock(return_value=httpx.Response(200, text="<html>oops</html>"))
        named = mock.get("/cards/named").mock(return_value=httpx.Response(200, text="<html>oops</html>"))

        async with ScryfallClient() as client:
            hits = await search_cards(db_session, client, "dragon")

    assert hits == []
    assert named.call_count == 1
