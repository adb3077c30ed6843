"""
Binder Exchange — Scryfall API Client

Read-only access to the upstream card catalog:
- Card search (oracle-scoped or free text) with next_page pagination
- Fuzzy single-card lookup by name
- Set metadata (icon URIs)

Base URL: https://api.scryfall.com
Pagination: absolute `next_page` URL while `has_more` is true.

A search with no matches answers 404, so 404 on search is returned as an
empty page rather than an error. Every other non-success status raises
ScryfallAPIError and is left to the caller; only 429 is retried here.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field, field_validator

from src.config import settings

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Search flags shared by every search request: one row per printing,
# newest first, no tokens/art series/variations.
# ---------------------------------------------------------------------------
SEARCH_PARAMS: dict[str, str] = {
    "unique": "prints",
    "order": "released",
    "dir": "desc",
    "include_extras": "false",
    "include_variations": "false",
}


class ScryfallAPIError(Exception):
    """Non-success, non-404 response from Scryfall."""

    def __init__(self, status_code: int, path: str, detail: str = "") -> None:
        self.status_code = status_code
        self.path = path
        self.detail = detail
        super().__init__(f"scryfall {status_code} on {path}")


# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class ScryfallPrices(BaseModel):
    """USD prices per finish. Scryfall sends decimal strings or null."""
    usd: Decimal | None = None
    usd_foil: Decimal | None = None
    usd_etched: Decimal | None = None

    @field_validator("usd", "usd_foil", "usd_etched", mode="before")
    @classmethod
    def parse_decimal(cls, v: Any) -> Decimal | None:
        """Safely convert price values to Decimal. Never use float for money."""
        if v is None or v == "":
            return None
        try:
            return Decimal(str(v))
        except (InvalidOperation, ValueError):
            return None


class ScryfallImageUris(BaseModel):
    small: str | None = None
    normal: str | None = None


class ScryfallCard(BaseModel):
    """One printing as returned by /cards/search or /cards/named."""
    id: str = Field(..., description="Scryfall print id")
    oracle_id: str | None = Field(default=None, description="Logical card id")
    name: str = Field(..., description="Card name")
    set: str = Field(default="", description="Set code, lowercase upstream")
    collector_number: str = Field(default="")
    image_uris: ScryfallImageUris | None = None
    tcgplayer_id: int | None = None
    prices: ScryfallPrices = Field(default_factory=ScryfallPrices)

    @field_validator("collector_number", mode="before")
    @classmethod
    def stringify_collector_number(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("prices", mode="before")
    @classmethod
    def default_prices(cls, v: Any) -> Any:
        return {} if v is None else v


class ScryfallCardList(BaseModel):
    """One page of a paginated search."""
    data: list[ScryfallCard] = Field(default_factory=list)
    has_more: bool = False
    next_page: str | None = None
    total_cards: int = 0


class ScryfallSet(BaseModel):
    code: str
    name: str = ""
    icon_svg_uri: str | None = None


# ---------------------------------------------------------------------------
# API Client
# ---------------------------------------------------------------------------


class ScryfallClient:
    """
    Async client for the Scryfall REST API.

    Usage:
        async with ScryfallClient() as client:
            page = await client.search_page("oracleid:...")
            card = await client.fetch_named("lightning bolt")
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        base_backoff: float | None = None,
    ):
        self._base_url = base_url or settings.SCRYFALL_BASE_URL
        self._timeout = timeout if timeout is not None else settings.SCRYFALL_TIMEOUT_SECONDS
        self._max_retries = (
            max_retries if max_retries is not None else settings.SCRYFALL_MAX_RETRIES
        )
        self._base_backoff = (
            base_backoff if base_backoff is not None else settings.SCRYFALL_BACKOFF_SECONDS
        )
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ScryfallClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "User-Agent": settings.SCRYFALL_USER_AGENT,
                "Accept": "application/json",
            },
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def _get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        GET with exponential backoff on 429 only.

        Returns the final response whatever its status; transport errors
        (httpx.RequestError, including timeouts) propagate.
        """
        assert self._client is not None, "Client not initialized. Use 'async with'."

        response = await self._client.get(path, params=params)
        attempt = 0
        while response.status_code == 429 and attempt < self._max_retries:
            wait_time = self._base_backoff * (2 ** attempt)
            logger.warning(
                "scryfall_rate_limited",
                attempt=attempt + 1,
                wait_seconds=wait_time,
                path=path,
            )
            await asyncio.sleep(wait_time)
            attempt += 1
            response = await self._client.get(path, params=params)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, path: str) -> None:
        if response.is_success:
            return
        detail = response.text[:200]
        logger.error(
            "scryfall_http_error",
            status_code=response.status_code,
            path=path,
            detail=detail,
        )
        raise ScryfallAPIError(response.status_code, path, detail)

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def search_page(
        self,
        query: str | None = None,
        page_url: str | None = None,
    ) -> ScryfallCardList:
        """
        Fetch one page of /cards/search.

        Pass `query` for the first page and the previous page's `next_page`
        as `page_url` for the following ones (the cursor already carries
        the query and flags).

        Returns:
            The page; an empty page with has_more=False on 404.

        Raises:
            ScryfallAPIError: any other non-success status.
        """
        if page_url:
            path, params = page_url, None
        else:
            path, params = "/cards/search", {"q": query or "", **SEARCH_PARAMS}

        response = await self._get(path, params=params)
        if response.status_code == 404:
            logger.info("scryfall_search_no_results", query=query, path=path)
            return ScryfallCardList()
        self._raise_for_status(response, path)
        return ScryfallCardList.model_validate(response.json())

    async def fetch_named(self, fuzzy: str) -> ScryfallCard | None:
        """
        Best single match for a (possibly misspelled) card name.

        Returns:
            The card, or None when Scryfall has no match (404).
        """
        path = "/cards/named"
        response = await self._get(path, params={"fuzzy": fuzzy})
        if response.status_code == 404:
            logger.info("scryfall_named_not_found", fuzzy=fuzzy)
            return None
        self._raise_for_status(response, path)
        return ScryfallCard.model_validate(response.json())

    async def fetch_set(self, set_code: str) -> ScryfallSet:
        """Set metadata by code (Scryfall expects lowercase)."""
        path = f"/sets/{set_code.lower()}"
        response = await self._get(path)
        self._raise_for_status(response, path)
        return ScryfallSet.model_validate(response.json())
