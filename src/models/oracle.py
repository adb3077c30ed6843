"""
Binder Exchange — Oracle Model

One row per logical card (Scryfall oracle_id), independent of printing.
last_synced_at doubles as the refresh lease: a caller claims the refresh by
moving it to "now" only when it is NULL or older than the staleness cutoff.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import INTEGER, TIMESTAMP, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class Oracle(Base):
    """Catalog entity — a card identity that is stable across reprints."""

    __tablename__ = "oracles"

    oracle_id: Mapped[str] = mapped_column(
        String, primary_key=True, comment="Scryfall oracle_id"
    )
    name: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Best-effort display name"
    )
    prints_count: Mapped[int] = mapped_column(
        INTEGER, nullable=False, default=0, server_default="0",
        comment="Number of cached prints for this oracle",
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        comment="Lease + freshness timestamp; NULL until the first crawl",
    )

    __table_args__ = (
        Index("ix_oracles_last_synced_at", "last_synced_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Oracle oracle_id={self.oracle_id!r} name={self.name!r} "
            f"prints={self.prints_count} synced={self.last_synced_at}>"
        )
