"""SQLAlchemy models for the indexer read-model.

This module defines the database schema for scan cursors, launchpad
campaigns, their trades, time-bucketed candles and stat snapshots.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# uint256 amounts fit in 78 decimal digits.
RAW_AMOUNT = Numeric(78, 0)
DECIMAL_AMOUNT = Numeric(78, 18)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class ChainCursorModel(Base):
    """Last scanned block per (chain, logical scan stream)."""

    __tablename__ = "chain_cursor"

    chain_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    cursor_name: Mapped[str] = mapped_column(String(80), primary_key=True)
    last_indexed_block: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


class CampaignModel(Base):
    """A launchpad campaign discovered from the factory's creation events."""

    __tablename__ = "campaigns"

    chain_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    address: Mapped[str] = mapped_column(String(42), primary_key=True)

    token_address: Mapped[str] = mapped_column(String(42), nullable=False)
    creator_address: Mapped[str] = mapped_column(String(42), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    symbol: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # 0 means "not known yet".
    created_block: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("idx_campaigns_chain_active", "chain_id", "is_active"),)


class TradeModel(Base):
    """One buy or sell against a campaign's bonding curve."""

    __tablename__ = "trades"

    chain_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    tx_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    log_index: Mapped[int] = mapped_column(Integer, primary_key=True)

    campaign_address: Mapped[str] = mapped_column(String(42), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    side: Mapped[str] = mapped_column(String(4), nullable=False)
    wallet: Mapped[str] = mapped_column(String(42), nullable=False)

    token_amount_raw: Mapped[Decimal] = mapped_column(RAW_AMOUNT, nullable=False)
    quote_amount_raw: Mapped[Decimal] = mapped_column(RAW_AMOUNT, nullable=False)
    token_amount: Mapped[Decimal] = mapped_column(DECIMAL_AMOUNT, nullable=False)
    quote_amount: Mapped[Decimal] = mapped_column(DECIMAL_AMOUNT, nullable=False)
    price: Mapped[Decimal | None] = mapped_column(DECIMAL_AMOUNT, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        CheckConstraint("side IN ('buy', 'sell')", name="ck_trades_side"),
        Index("idx_trades_campaign_block", "chain_id", "campaign_address", "block_number", "log_index"),
        Index("idx_trades_campaign_time", "chain_id", "campaign_address", "block_time"),
    )


class CandleModel(Base):
    """OHLC bucket per (campaign, timeframe).

    The first/last applied trade positions let out-of-order application
    (e.g. a repair pass) merge without regressing open or close.
    """

    __tablename__ = "candles"

    chain_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    campaign_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    timeframe: Mapped[str] = mapped_column(String(8), primary_key=True)
    bucket_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)

    open: Mapped[Decimal] = mapped_column(DECIMAL_AMOUNT, nullable=False)
    high: Mapped[Decimal] = mapped_column(DECIMAL_AMOUNT, nullable=False)
    low: Mapped[Decimal] = mapped_column(DECIMAL_AMOUNT, nullable=False)
    close: Mapped[Decimal] = mapped_column(DECIMAL_AMOUNT, nullable=False)
    volume: Mapped[Decimal] = mapped_column(DECIMAL_AMOUNT, nullable=False)
    trade_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    first_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    first_log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    last_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_log_index: Mapped[int] = mapped_column(Integer, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


class StatSnapshotModel(Base):
    """Derived per-campaign stats, fully recomputed from trades."""

    __tablename__ = "stats"

    chain_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    campaign_address: Mapped[str] = mapped_column(String(42), primary_key=True)

    last_price: Mapped[Decimal | None] = mapped_column(DECIMAL_AMOUNT, nullable=True)
    net_sold: Mapped[Decimal] = mapped_column(DECIMAL_AMOUNT, nullable=False)
    market_cap: Mapped[Decimal | None] = mapped_column(DECIMAL_AMOUNT, nullable=True)
    rolling_volume: Mapped[Decimal] = mapped_column(DECIMAL_AMOUNT, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
