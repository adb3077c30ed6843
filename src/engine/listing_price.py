"""
Binder Exchange — Listing Price Selection

Picks the catalog unit price for a listing's finish and converts it to the
listing's display price.

Fallback chain (first non-null wins):
- etched   -> usd_etched, usd_foil, usd
- foil     -> usd_foil, usd
- non_foil -> usd
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Protocol

from src.config import CardFinish

_TWO_DP = Decimal("0.01")


class PricedPrint(Protocol):
    scry_usd: Decimal | None
    scry_usd_foil: Decimal | None
    scry_usd_etched: Decimal | None


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(_TWO_DP, rounding=ROUND_HALF_UP)


def pick_unit_price(card: PricedPrint | None, finish: str | CardFinish) -> Decimal | None:
    """
    Unit USD price for `finish`, walking the fallback chain.

    Returns:
        The price, or None when the print is unknown or has no usable tier.
    """
    if card is None:
        return None

    finish = CardFinish(finish)
    if finish is CardFinish.ETCHED:
        chain = (card.scry_usd_etched, card.scry_usd_foil, card.scry_usd)
    elif finish is CardFinish.FOIL:
        chain = (card.scry_usd_foil, card.scry_usd)
    else:
        chain = (card.scry_usd,)

    for price in chain:
        if price is not None:
            return price
    return None


def compute_listing_price(
    unit_price: Decimal,
    fx_multiplier: Decimal | None,
) -> Decimal:
    """
    Display price for a listing (2dp).

    A positive multiplier converts USD into the seller's currency; without
    one the USD price is stored as-is.
    """
    if fx_multiplier is not None and fx_multiplier > Decimal("0"):
        return _quantize(unit_price * fx_multiplier)
    return _quantize(unit_price)
