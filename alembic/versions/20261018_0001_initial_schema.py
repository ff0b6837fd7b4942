"""Initial indexer schema: cursors, campaigns, trades, candles, stats.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RAW_AMOUNT = sa.Numeric(78, 0)
DECIMAL_AMOUNT = sa.Numeric(78, 18)


def upgrade() -> None:
    op.create_table(
        "chain_cursor",
        sa.Column("chain_id", sa.BigInteger(), nullable=False),
        sa.Column("cursor_name", sa.String(80), nullable=False),
        sa.Column("last_indexed_block", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("chain_id", "cursor_name"),
    )

    op.create_table(
        "campaigns",
        sa.Column("chain_id", sa.BigInteger(), nullable=False),
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("token_address", sa.String(42), nullable=False),
        sa.Column("creator_address", sa.String(42), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("symbol", sa.Text(), nullable=False),
        sa.Column("created_block", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("chain_id", "address"),
    )
    op.create_index("idx_campaigns_chain_active", "campaigns", ["chain_id", "is_active"])

    op.create_table(
        "trades",
        sa.Column("chain_id", sa.BigInteger(), nullable=False),
        sa.Column("tx_hash", sa.String(66), nullable=False),
        sa.Column("log_index", sa.Integer(), nullable=False),
        sa.Column("campaign_address", sa.String(42), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("block_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("side", sa.String(4), nullable=False),
        sa.Column("wallet", sa.String(42), nullable=False),
        sa.Column("token_amount_raw", RAW_AMOUNT, nullable=False),
        sa.Column("quote_amount_raw", RAW_AMOUNT, nullable=False),
        sa.Column("token_amount", DECIMAL_AMOUNT, nullable=False),
        sa.Column("quote_amount", DECIMAL_AMOUNT, nullable=False),
        sa.Column("price", DECIMAL_AMOUNT, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("chain_id", "tx_hash", "log_index"),
        sa.CheckConstraint("side IN ('buy', 'sell')", name="ck_trades_side"),
    )
    op.create_index(
        "idx_trades_campaign_block",
        "trades",
        ["chain_id", "campaign_address", "block_number", "log_index"],
    )
    op.create_index("idx_trades_campaign_time", "trades", ["chain_id", "campaign_address", "block_time"])

    op.create_table(
        "candles",
        sa.Column("chain_id", sa.BigInteger(), nullable=False),
        sa.Column("campaign_address", sa.String(42), nullable=False),
        sa.Column("timeframe", sa.String(8), nullable=False),
        sa.Column("bucket_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("open", DECIMAL_AMOUNT, nullable=False),
        sa.Column("high", DECIMAL_AMOUNT, nullable=False),
        sa.Column("low", DECIMAL_AMOUNT, nullable=False),
        sa.Column("close", DECIMAL_AMOUNT, nullable=False),
        sa.Column("volume", DECIMAL_AMOUNT, nullable=False),
        sa.Column("trade_count", sa.Integer(), nullable=False),
        sa.Column("first_block", sa.BigInteger(), nullable=False),
        sa.Column("first_log_index", sa.Integer(), nullable=False),
        sa.Column("last_block", sa.BigInteger(), nullable=False),
        sa.Column("last_log_index", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("chain_id", "campaign_address", "timeframe", "bucket_start"),
    )

    op.create_table(
        "stats",
        sa.Column("chain_id", sa.BigInteger(), nullable=False),
        sa.Column("campaign_address", sa.String(42), nullable=False),
        sa.Column("last_price", DECIMAL_AMOUNT, nullable=True),
        sa.Column("net_sold", DECIMAL_AMOUNT, nullable=False),
        sa.Column("market_cap", DECIMAL_AMOUNT, nullable=True),
        sa.Column("rolling_volume", DECIMAL_AMOUNT, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("chain_id", "campaign_address"),
    )


def downgrade() -> None:
    op.drop_table("stats")
    op.drop_table("candles")
    op.drop_index("idx_trades_campaign_time", table_name="trades")
    op.drop_index("idx_trades_campaign_block", table_name="trades")
    op.drop_table("trades")
    op.drop_index("idx_campaigns_chain_active", table_name="campaigns")
    op.drop_table("campaigns")
    op.drop_table("chain_cursor")
