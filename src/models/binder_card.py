"""
Binder Exchange — Binder Card (listing) Model

Only the columns the repricer reads or writes are mapped here. The rest of
the listing lifecycle (reservations, offers, status) belongs to the web app.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, INTEGER, TIMESTAMP, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from src.config import CardFinish, PriceMode
from src.models.base import Base


class BinderCard(Base):
    """A card listed in a user's binder."""

    __tablename__ = "binder_cards"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    binder_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    card_id: Mapped[str] = mapped_column(
        String, nullable=False, comment="cards.scryfall_id"
    )
    finish: Mapped[str] = mapped_column(
        String, nullable=False, default=CardFinish.NON_FOIL.value
    )
    price_mode: Mapped[str] = mapped_column(
        String, nullable=False, default=PriceMode.FIXED.value,
        comment="'scryfall' rows are repriced from the catalog cache",
    )
    fx_multiplier: Mapped[Decimal | None] = mapped_column(
        DECIMAL(12, 4), nullable=True,
        comment="USD -> display currency multiplier (NULL = show USD)",
    )
    fixed_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    computed_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    last_priced_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    quantity: Mapped[int] = mapped_column(INTEGER, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_binder_cards_binder_price_mode", "binder_id", "price_mode"),
    )

    def __repr__(self) -> str:
        return (
            f"<BinderCard id={self.id} card_id={self.card_id!r} finish={self.finish!r} "
            f"mode={self.price_mode!r} computed={self.computed_price}>"
        )
