"""Repository pattern implementations for data access.

This module provides data access abstractions for scan cursors, campaigns,
trades, candles and stat snapshots.

Merging writes (cursor advance, campaign rediscovery, candle folding) all
follow the same shape inside the caller's transaction: an
``INSERT ... ON CONFLICT DO NOTHING`` creates the row if it is new, otherwise
the existing row is read under ``FOR UPDATE`` and the pure rule from
`launchpad_indexer.indexer.merge` decides the stored value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from launchpad_indexer.indexer.merge import (
    CandleState,
    CandleTick,
    merge_candle,
    merge_created_block,
    merge_cursor,
)
from launchpad_indexer.storage.models import (
    CampaignModel,
    CandleModel,
    ChainCursorModel,
    StatSnapshotModel,
    TradeModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we store is UTC.
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _dialect_insert(session: AsyncSession, model: type[Any]) -> Any:
    """Return the dialect-specific INSERT construct supporting ON CONFLICT."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


@dataclass
class CampaignDTO:
    """Data transfer object for campaigns."""

    chain_id: int
    address: str
    token_address: str
    creator_address: str
    name: str
    symbol: str
    created_block: int = 0
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: CampaignModel) -> CampaignDTO:
        return cls(
            chain_id=model.chain_id,
            address=model.address,
            token_address=model.token_address,
            creator_address=model.creator_address,
            name=model.name,
            symbol=model.symbol,
            created_block=int(model.created_block or 0),
            is_active=bool(model.is_active),
            created_at=_utc(model.created_at) if model.created_at else None,
            updated_at=_utc(model.updated_at) if model.updated_at else None,
        )


@dataclass
class TradeDTO:
    """Data transfer object for trades."""

    chain_id: int
    campaign_address: str
    tx_hash: str
    log_index: int
    block_number: int
    block_time: datetime
    side: str
    wallet: str
    token_amount_raw: int
    quote_amount_raw: int
    token_amount: Decimal
    quote_amount: Decimal
    price: Decimal | None

    @classmethod
    def from_model(cls, model: TradeModel) -> TradeDTO:
        return cls(
            chain_id=model.chain_id,
            campaign_address=model.campaign_address,
            tx_hash=model.tx_hash,
            log_index=model.log_index,
            block_number=model.block_number,
            block_time=_utc(model.block_time),
            side=model.side,
            wallet=model.wallet,
            token_amount_raw=int(model.token_amount_raw),
            quote_amount_raw=int(model.quote_amount_raw),
            token_amount=_to_decimal(model.token_amount),
            quote_amount=_to_decimal(model.quote_amount),
            price=_to_decimal(model.price) if model.price is not None else None,
        )


@dataclass
class CandleDTO:
    """Data transfer object for candles."""

    chain_id: int
    campaign_address: str
    timeframe: str
    bucket_start: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    trade_count: int

    @classmethod
    def from_model(cls, model: CandleModel) -> CandleDTO:
        return cls(
            chain_id=model.chain_id,
            campaign_address=model.campaign_address,
            timeframe=model.timeframe,
            bucket_start=_utc(model.bucket_start),
            open=_to_decimal(model.open),
            high=_to_decimal(model.high),
            low=_to_decimal(model.low),
            close=_to_decimal(model.close),
            volume=_to_decimal(model.volume),
            trade_count=int(model.trade_count),
        )


@dataclass
class StatSnapshotDTO:
    """Data transfer object for stat snapshots."""

    chain_id: int
    campaign_address: str
    last_price: Decimal | None
    net_sold: Decimal
    market_cap: Decimal | None
    rolling_volume: Decimal
    updated_at: datetime

    @classmethod
    def from_model(cls, model: StatSnapshotModel) -> StatSnapshotDTO:
        return cls(
            chain_id=model.chain_id,
            campaign_address=model.campaign_address,
            last_price=_to_decimal(model.last_price) if model.last_price is not None else None,
            net_sold=_to_decimal(model.net_sold),
            market_cap=_to_decimal(model.market_cap) if model.market_cap is not None else None,
            rolling_volume=_to_decimal(model.rolling_volume),
            updated_at=_utc(model.updated_at),
        )


class ChainCursorRepository:
    """Repository for per-stream scan cursors.

    A stored cursor never moves backward: `advance_to` persists
    ``max(stored, candidate)``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, chain_id: int, cursor_name: str) -> int:
        result = await self.session.execute(
            select(ChainCursorModel.last_indexed_block).where(
                (ChainCursorModel.chain_id == chain_id) & (ChainCursorModel.cursor_name == cursor_name)
            )
        )
        value = result.scalar_one_or_none()
        return int(value) if value is not None else 0

    async def advance_to(self, chain_id: int, cursor_name: str, block: int) -> int:
        """Advance a cursor to `block` unless it is already further along.

        Returns:
            The stored value after the merge.
        """
        now = datetime.now(UTC)
        stmt = (
            _dialect_insert(self.session, ChainCursorModel)
            .values(chain_id=chain_id, cursor_name=cursor_name, last_indexed_block=block, updated_at=now)
            .on_conflict_do_nothing(index_elements=["chain_id", "cursor_name"])
            .returning(ChainCursorModel.last_indexed_block)
        )
        if (await self.session.execute(stmt)).first() is not None:
            return block

        result = await self.session.execute(
            select(ChainCursorModel)
            .where((ChainCursorModel.chain_id == chain_id) & (ChainCursorModel.cursor_name == cursor_name))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one()
        merged = merge_cursor(int(model.last_indexed_block), block)
        if merged != model.last_indexed_block:
            model.last_indexed_block = merged
            model.updated_at = now
        await self.session.flush()
        return merged


class CampaignRepository:
    """Repository for discovered campaigns."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, chain_id: int, address: str) -> CampaignDTO | None:
        result = await self.session.execute(
            select(CampaignModel).where(
                (CampaignModel.chain_id == chain_id) & (CampaignModel.address == address.lower())
            )
        )
        model = result.scalar_one_or_none()
        return CampaignDTO.from_model(model) if model else None

    async def upsert_discovered(self, dto: CampaignDTO) -> CampaignDTO:
        """Insert or refresh a campaign seen in the creation event stream.

        Address and metadata fields are overwritten. `created_block` treats 0
        as unknown and otherwise keeps the earliest value. The active flag of
        an existing row is left alone so rediscovery never undoes a manual
        deactivation.
        """
        now = datetime.now(UTC)
        values = {
            "chain_id": dto.chain_id,
            "address": dto.address.lower(),
            "token_address": dto.token_address.lower(),
            "creator_address": dto.creator_address.lower(),
            "name": dto.name,
            "symbol": dto.symbol,
            "created_block": max(dto.created_block, 0),
        }
        stmt = (
            _dialect_insert(self.session, CampaignModel)
            .values(**values, is_active=True, created_at=now, updated_at=now)
            .on_conflict_do_nothing(index_elements=["chain_id", "address"])
            .returning(CampaignModel.address)
        )
        inserted = (await self.session.execute(stmt)).first() is not None

        result = await self.session.execute(
            select(CampaignModel)
            .where((CampaignModel.chain_id == dto.chain_id) & (CampaignModel.address == values["address"]))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one()
        if not inserted:
            model.token_address = values["token_address"]
            model.creator_address = values["creator_address"]
            model.name = values["name"]
            model.symbol = values["symbol"]
            model.created_block = merge_created_block(int(model.created_block or 0), values["created_block"])
            model.updated_at = now
            await self.session.flush()
        return CampaignDTO.from_model(model)

    async def list_active(self, chain_id: int) -> list[CampaignDTO]:
        result = await self.session.execute(
            select(CampaignModel)
            .where((CampaignModel.chain_id == chain_id) & (CampaignModel.is_active.is_(True)))
            .order_by(CampaignModel.created_block.asc(), CampaignModel.address.asc())
        )
        return [CampaignDTO.from_model(m) for m in result.scalars().all()]

    async def set_active(self, chain_id: int, address: str, *, active: bool) -> bool:
        """Flip the active flag. Returns False if the campaign is unknown."""
        result = await self.session.execute(
            update(CampaignModel)
            .where((CampaignModel.chain_id == chain_id) & (CampaignModel.address == address.lower()))
            .values(is_active=active, updated_at=datetime.now(UTC))
        )
        await self.session.flush()
        return bool(result.rowcount)


class TradeRepository:
    """Repository for persisted trades.

    (chain_id, tx_hash, log_index) is the idempotence key: re-inserting a
    trade is a no-op.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, chain_id: int, tx_hash: str, log_index: int) -> TradeDTO | None:
        result = await self.session.execute(
            select(TradeModel).where(
                (TradeModel.chain_id == chain_id)
                & (TradeModel.tx_hash == tx_hash.lower())
                & (TradeModel.log_index == log_index)
            )
        )
        model = result.scalar_one_or_none()
        return TradeDTO.from_model(model) if model else None

    async def insert_if_absent(self, dto: TradeDTO) -> bool:
        """Insert a trade unless its key already exists.

        Returns:
            True if a new row was created.
        """
        values = {
            "chain_id": dto.chain_id,
            "tx_hash": dto.tx_hash.lower(),
            "log_index": dto.log_index,
            "campaign_address": dto.campaign_address.lower(),
            "block_number": dto.block_number,
            "block_time": dto.block_time,
            "side": dto.side,
            "wallet": dto.wallet.lower(),
            "token_amount_raw": Decimal(dto.token_amount_raw),
            "quote_amount_raw": Decimal(dto.quote_amount_raw),
            "token_amount": dto.token_amount,
            "quote_amount": dto.quote_amount,
            "price": dto.price,
            "created_at": datetime.now(UTC),
        }
        stmt = (
            _dialect_insert(self.session, TradeModel)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["chain_id", "tx_hash", "log_index"])
            .returning(TradeModel.log_index)
        )
        return (await self.session.execute(stmt)).first() is not None

    async def list_for_campaign(self, chain_id: int, campaign_address: str) -> list[TradeDTO]:
        result = await self.session.execute(
            select(TradeModel)
            .where((TradeModel.chain_id == chain_id) & (TradeModel.campaign_address == campaign_address.lower()))
            .order_by(TradeModel.block_number.asc(), TradeModel.log_index.asc())
        )
        return [TradeDTO.from_model(m) for m in result.scalars().all()]

    async def count_for_campaign(self, chain_id: int, campaign_address: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(TradeModel)
            .where((TradeModel.chain_id == chain_id) & (TradeModel.campaign_address == campaign_address.lower()))
        )
        return int(result.scalar_one())

    async def get_last_price(self, chain_id: int, campaign_address: str) -> Decimal | None:
        """Price of the latest priced trade, by (block_number, log_index)."""
        result = await self.session.execute(
            select(TradeModel.price)
            .where(
                (TradeModel.chain_id == chain_id)
                & (TradeModel.campaign_address == campaign_address.lower())
                & (TradeModel.price.is_not(None))
            )
            .order_by(TradeModel.block_number.desc(), TradeModel.log_index.desc())
            .limit(1)
        )
        value = result.scalar_one_or_none()
        return _to_decimal(value) if value is not None else None

    async def sum_token_amount_by_side(self, chain_id: int, campaign_address: str) -> dict[str, Decimal]:
        result = await self.session.execute(
            select(TradeModel.side, func.sum(TradeModel.token_amount))
            .where((TradeModel.chain_id == chain_id) & (TradeModel.campaign_address == campaign_address.lower()))
            .group_by(TradeModel.side)
        )
        totals = {"buy": Decimal(0), "sell": Decimal(0)}
        for side, total in result.all():
            totals[side] = _to_decimal(total)
        return totals

    async def sum_quote_amount_since(self, chain_id: int, campaign_address: str, *, since: datetime) -> Decimal:
        if since.tzinfo is None:
            raise ValueError("since must be timezone-aware")
        result = await self.session.execute(
            select(func.sum(TradeModel.quote_amount)).where(
                (TradeModel.chain_id == chain_id)
                & (TradeModel.campaign_address == campaign_address.lower())
                & (TradeModel.block_time >= since)
            )
        )
        return _to_decimal(result.scalar_one_or_none())


class CandleRepository:
    """Repository for time-bucketed OHLC candles."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(
        self,
        chain_id: int,
        campaign_address: str,
        timeframe: str,
        bucket_start: datetime,
    ) -> CandleDTO | None:
        result = await self.session.execute(
            select(CandleModel).where(
                (CandleModel.chain_id == chain_id)
                & (CandleModel.campaign_address == campaign_address.lower())
                & (CandleModel.timeframe == timeframe)
                & (CandleModel.bucket_start == bucket_start)
            )
        )
        model = result.scalar_one_or_none()
        return CandleDTO.from_model(model) if model else None

    async def list_for_campaign(self, chain_id: int, campaign_address: str, timeframe: str) -> list[CandleDTO]:
        result = await self.session.execute(
            select(CandleModel)
            .where(
                (CandleModel.chain_id == chain_id)
                & (CandleModel.campaign_address == campaign_address.lower())
                & (CandleModel.timeframe == timeframe)
            )
            .order_by(CandleModel.bucket_start.asc())
        )
        return [CandleDTO.from_model(m) for m in result.scalars().all()]

    async def apply_tick(
        self,
        *,
        chain_id: int,
        campaign_address: str,
        timeframe: str,
        bucket_start: datetime,
        tick: CandleTick,
    ) -> CandleDTO:
        """Fold one priced trade into its bucket, creating the bucket if needed."""
        if bucket_start.tzinfo is None:
            raise ValueError("bucket_start must be timezone-aware")
        campaign_address = campaign_address.lower()
        now = datetime.now(UTC)
        fresh = merge_candle(None, tick)
        stmt = (
            _dialect_insert(self.session, CandleModel)
            .values(
                chain_id=chain_id,
                campaign_address=campaign_address,
                timeframe=timeframe,
                bucket_start=bucket_start,
                updated_at=now,
                **_candle_columns(fresh),
            )
            .on_conflict_do_nothing(index_elements=["chain_id", "campaign_address", "timeframe", "bucket_start"])
            .returning(CandleModel.trade_count)
        )
        inserted = (await self.session.execute(stmt)).first() is not None

        result = await self.session.execute(
            select(CandleModel)
            .where(
                (CandleModel.chain_id == chain_id)
                & (CandleModel.campaign_address == campaign_address)
                & (CandleModel.timeframe == timeframe)
                & (CandleModel.bucket_start == bucket_start)
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one()
        if not inserted:
            merged = merge_candle(_candle_state(model), tick)
            for key, value in _candle_columns(merged).items():
                setattr(model, key, value)
            model.updated_at = now
            await self.session.flush()
        return CandleDTO.from_model(model)


def _candle_state(model: CandleModel) -> CandleState:
    return CandleState(
        open=_to_decimal(model.open),
        high=_to_decimal(model.high),
        low=_to_decimal(model.low),
        close=_to_decimal(model.close),
        volume=_to_decimal(model.volume),
        trade_count=int(model.trade_count),
        first_position=(int(model.first_block), int(model.first_log_index)),
        last_position=(int(model.last_block), int(model.last_log_index)),
    )


def _candle_columns(state: CandleState) -> dict[str, Any]:
    return {
        "open": state.open,
        "high": state.high,
        "low": state.low,
        "close": state.close,
        "volume": state.volume,
        "trade_count": state.trade_count,
        "first_block": state.first_position[0],
        "first_log_index": state.first_position[1],
        "last_block": state.last_position[0],
        "last_log_index": state.last_position[1],
    }


class StatSnapshotRepository:
    """Repository for per-campaign stat snapshots (full replace on write)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, chain_id: int, campaign_address: str) -> StatSnapshotDTO | None:
        result = await self.session.execute(
            select(StatSnapshotModel).where(
                (StatSnapshotModel.chain_id == chain_id)
                & (StatSnapshotModel.campaign_address == campaign_address.lower())
            )
        )
        model = result.scalar_one_or_none()
        return StatSnapshotDTO.from_model(model) if model else None

    async def replace(self, dto: StatSnapshotDTO) -> StatSnapshotDTO:
        values = {
            "chain_id": dto.chain_id,
            "campaign_address": dto.campaign_address.lower(),
            "last_price": dto.last_price,
            "net_sold": dto.net_sold,
            "market_cap": dto.market_cap,
            "rolling_volume": dto.rolling_volume,
            "updated_at": dto.updated_at,
        }
        stmt = _dialect_insert(self.session, StatSnapshotModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["chain_id", "campaign_address"],
            set_={
                "last_price": stmt.excluded.last_price,
                "net_sold": stmt.excluded.net_sold,
                "market_cap": stmt.excluded.market_cap,
                "rolling_volume": stmt.excluded.rolling_volume,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return dto
