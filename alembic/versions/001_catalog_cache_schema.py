"""Catalog cache schema — oracles, cards, binder_cards

Revision ID: 001_catalog_cache_schema
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers
revision: str = "001_catalog_cache_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- oracles (last_synced_at is also the refresh lease) ---
    op.create_table(
        "oracles",
        sa.Column("oracle_id", sa.String(), nullable=False, primary_key=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("prints_count", sa.INTEGER(), nullable=False, server_default="0"),
        sa.Column("last_synced_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_oracles_last_synced_at", "oracles", ["last_synced_at"])

    # --- cards (one row per Scryfall printing) ---
    op.create_table(
        "cards",
        sa.Column("scryfall_id", sa.String(), nullable=False, primary_key=True),
        sa.Column("oracle_id", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("set_code", sa.String(), nullable=False),
        sa.Column("collector_number", sa.String(), nullable=False),
        sa.Column("image_small", sa.String(), nullable=True),
        sa.Column("image_normal", sa.String(), nullable=True),
        sa.Column("tcgplayer_product_id", sa.INTEGER(), nullable=True),
        sa.Column("scry_usd", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("scry_usd_foil", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("scry_usd_etched", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("scry_prices_updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("set_icon_svg_uri", sa.String(), nullable=True),
        sa.Column("synced_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_cards_oracle_id", "cards", ["oracle_id"])

    # --- binder_cards (repricer columns only; owned by the web app) ---
    op.create_table(
        "binder_cards",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("binder_id", UUID(as_uuid=True), nullable=False),
        sa.Column("card_id", sa.String(), sa.ForeignKey("cards.scryfall_id"), nullable=False),
        sa.Column("finish", sa.String(), nullable=False, server_default="non_foil"),
        sa.Column("price_mode", sa.String(), nullable=False, server_default="fixed"),
        sa.Column("fx_multiplier", sa.DECIMAL(12, 4), nullable=True),
        sa.Column("fixed_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("computed_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("last_priced_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("quantity", sa.INTEGER(), nullable=False, server_default="1"),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("finish IN ('non_foil', 'foil', 'etched')", name="ck_binder_cards_finish"),
        sa.CheckConstraint("price_mode IN ('fixed', 'scryfall')", name="ck_binder_cards_price_mode"),
    )
    op.create_index(
        "ix_binder_cards_binder_price_mode", "binder_cards", ["binder_id", "price_mode"]
    )


def downgrade() -> None:
    op.drop_index("ix_binder_cards_binder_price_mode", table_name="binder_cards")
    op.drop_table("binder_cards")
    op.drop_index("ix_cards_oracle_id", table_name="cards")
    op.drop_table("cards")
    op.drop_index("ix_oracles_last_synced_at", table_name="oracles")
    op.drop_table("oracles")
