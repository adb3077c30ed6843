"""
Binder Exchange — Card Print Model

One row per Scryfall printing. Rows are only ever written by upsert
(crawler or single-print cache) and never deleted by the cache layer.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, INTEGER, TIMESTAMP, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class CardPrint(Base):
    """A specific printing (set + collector number) of an oracle."""

    __tablename__ = "cards"

    scryfall_id: Mapped[str] = mapped_column(
        String, primary_key=True, comment="Scryfall card (print) id"
    )
    oracle_id: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Owning oracle"
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    set_code: Mapped[str] = mapped_column(
        String, nullable=False, comment="Uppercased set code (e.g., 'MH3')"
    )
    collector_number: Mapped[str] = mapped_column(String, nullable=False)
    image_small: Mapped[str | None] = mapped_column(String, nullable=True)
    image_normal: Mapped[str | None] = mapped_column(String, nullable=True)
    tcgplayer_product_id: Mapped[int | None] = mapped_column(INTEGER, nullable=True)

    # Price snapshot in USD, one per finish
    scry_usd: Mapped[Decimal | None] = mapped_column(
        DECIMAL(10, 2), nullable=True, comment="Non-foil price"
    )
    scry_usd_foil: Mapped[Decimal | None] = mapped_column(
        DECIMAL(10, 2), nullable=True, comment="Foil price"
    )
    scry_usd_etched: Mapped[Decimal | None] = mapped_column(
        DECIMAL(10, 2), nullable=True, comment="Etched foil price"
    )
    scry_prices_updated_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    set_icon_svg_uri: Mapped[str | None] = mapped_column(String, nullable=True)
    synced_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_cards_oracle_id", "oracle_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<CardPrint scryfall_id={self.scryfall_id!r} name={self.name!r} "
            f"set={self.set_code!r} #{self.collector_number}>"
        )
