"""
Tests for the set icon memoizer (src/pipeline/set_icons.py).
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx

from conftest import SCRYFALL_URL
from src.pipeline.scryfall import ScryfallAPIError, ScryfallClient, ScryfallSet
from src.pipeline.set_icons import SetIconCache


@pytest.mark.asyncio
async def test_resolve_uppercases_keys_and_dedupes() -> None:
    client = MagicMock()
    client.fetch_set = AsyncMock(
        return_value=ScryfallSet(code="mh3", icon_svg_uri="https://svgs/mh3.svg")
    )
    cache = SetIconCache()

    resolved = await cache.resolve(client, ["mh3", "MH3", "Mh3"])

    assert resolved == {"MH3": "https://svgs/mh3.svg"}
    client.fetch_set.assert_awaited_once_with("mh3")
    assert "mh3" in cache
    assert cache.get("mh3") == "https://svgs/mh3.svg"


@pytest.mark.asyncio
async def test_hit_skips_upstream() -> None:
    client = MagicMock()
    client.fetch_set = AsyncMock(return_value=ScryfallSet(code="abc", icon_svg_uri="https://svgs/abc.svg"))
    cache = SetIconCache()

    await cache.resolve(client, {"ABC"})
    second = await cache.resolve(client, {"abc"})

    assert second == {"ABC": "https://svgs/abc.svg"}
    assert client.fetch_set.await_count == 1


@pytest.mark.asyncio
async def test_failing_code_is_negative_cached() -> None:
    """Two resolves of the same failing code cost exactly one upstream call."""
    cache = SetIconCache()

    with respx.mock(base_url=SCRYFALL_URL) as mock:
        route = mock.get("/sets/zzz").mock(return_value=httpx.Response(404, json={}))

        async with ScryfallClient() as client:
            first = await cache.resolve(client, {"ZZZ"})
            second = await cache.resolve(client, {"ZZZ"})

    assert first == {"ZZZ": None}
    assert second == {"ZZZ": None}
    assert route.call_count == 1
    assert "ZZZ" in cache


@pytest.mark.asyncio
async def test_failure_does_not_stop_other_codes() -> None:
    async def fetch_set(code: str) -> ScryfallSet:
        if code == "bad":
            raise ScryfallAPIError(500, f"/sets/{code}")
        if code == "net":
            raise httpx.ConnectError("boom")
        return ScryfallSet(code=code, icon_svg_uri=f"https://svgs/{code}.svg")

    client = MagicMock()
    client.fetch_set = AsyncMock(side_effect=fetch_set)
    cache = SetIconCache()

    resolved = await cache.resolve(client, {"BAD", "NET", "OK"})

    assert resolved == {"BAD": None, "NET": None, "OK": "https://svgs/ok.svg"}
    assert len(cache) == 3


@pytest.mark.asyncio
async def test_empty_and_blank_codes() -> None:
    client = MagicMock()
    client.fetch_set = AsyncMock()
    cache = SetIconCache()

    assert await cache.resolve(client, []) == {}
    assert await cache.resolve(client, ["", ""]) == {}
    client.fetch_set.assert_not_awaited()


@pytest.mark.asyncio
async def test_concurrent_resolves_share_one_lookup() -> None:
    """Overlapping crawls asking for the same new code hit upstream once."""
    cache = SetIconCache()

    async def slow_set(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.05)
        return httpx.Response(
            200, json={"code": "abc", "name": "ABC", "icon_svg_uri": "https://svgs/abc.svg"}
        )

    with respx.mock(base_url=SCRYFALL_URL) as mock:
        route = mock.get("/sets/abc").mock(side_effect=slow_set)

        async with ScryfallClient() as client:
            first, second = await asyncio.gather(
                cache.resolve(client, {"ABC"}),
                cache.resolve(client, {"abc", "ABC"}),
            )

    assert route.call_count == 1
    assert first == second == {"ABC": "https://svgs/abc.svg"}
    assert cache._pending == {}


@pytest.mark.asyncio
async def test_concurrent_resolves_share_failure() -> None:
    release = asyncio.Event()

    async def failing_set(code: str) -> ScryfallSet:
        await release.wait()
        raise ScryfallAPIError(502, f"/sets/{code}")

    client = MagicMock()
    client.fetch_set = AsyncMock(side_effect=failing_set)
    cache = SetIconCache()

    waiters = asyncio.gather(
        cache.resolve(client, {"XYZ"}),
        cache.resolve(client, {"XYZ"}),
    )
    await asyncio.sleep(0)
    release.set()
    first, second = await waiters

    assert first == second == {"XYZ": None}
    assert client.fetch_set.await_count == 1
    assert "XYZ" in cache
