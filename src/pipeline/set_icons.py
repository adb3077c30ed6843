"""
Binder Exchange — Set Icon Memoizer

Process-lifetime map of SET CODE -> icon_svg_uri. Failed lookups are cached
as None so a bad code costs one upstream call per process, not one per crawl.
Nothing is evicted or persisted; the domain has a small, finite set of codes.

Concurrent resolves of the same uncached code share one in-flight lookup.
Single event loop only: the maps are read and written without a lock.
"""

from __future__ import annotations

import asyncio
from typing import Iterable

import structlog

from src.pipeline.scryfall import ScryfallClient

logger = structlog.get_logger(__name__)


class SetIconCache:
    """get-or-resolve memo with negative caching."""

    def __init__(self) -> None:
        self._icons: dict[str, str | None] = {}
        self._pending: dict[str, asyncio.Task] = {}

    def __contains__(self, set_code: str) -> bool:
        return set_code.upper() in self._icons

    def __len__(self) -> int:
        return len(self._icons)

    def get(self, set_code: str) -> str | None:
        return self._icons.get(set_code.upper())

    def clear(self) -> None:
        self._icons.clear()
        self._pending.clear()

    async def _lookup(self, client: ScryfallClient, code: str) -> str | None:
        try:
            scry_set = await client.fetch_set(code.lower())
            icon = scry_set.icon_svg_uri
        except Exception as e:
            logger.warning(
                "set_icon_lookup_failed",
                set_code=code,
                error=str(e),
                error_type=type(e).__name__,
            )
            icon = None
        finally:
            self._pending.pop(code, None)

        self._icons[code] = icon
        return icon

    async def resolve(
        self,
        client: ScryfallClient,
        set_codes: Iterable[str],
    ) -> dict[str, str | None]:
        """
        Resolve icon URIs for a batch of set codes.

        Codes are deduplicated case-insensitively; keys of the result are
        uppercase. Never raises: any lookup failure resolves to None.
        """
        wanted = {code.upper() for code in set_codes if code}
        resolved: dict[str, str | None] = {}
        fetched = 0

        for code in sorted(wanted):
            if code in self._icons:
                resolved[code] = self._icons[code]
                continue

            pending = self._pending.get(code)
            if pending is None:
                pending = asyncio.create_task(
                    self._lookup(client, code), name=f"set_icon:{code}"
                )
                self._pending[code] = pending
                fetched += 1

            # A cancelled caller must not cancel the lookup other callers await
            resolved[code] = await asyncio.shield(pending)

        logger.debug(
            "set_icons_resolved",
            requested=len(wanted),
            fetched=fetched,
            cached_total=len(self._icons),
        )
        return resolved


# Process-wide singleton
set_icon_cache = SetIconCache()
