"""Trade Scanner & Candle Aggregator.

For one campaign and block window, each chunk is processed as a unit:

1. Fetch buy and sell logs together (rotation + range splitting).
2. Decode and order them by (block, log index).
3. Resolve block timestamps through the per-pass cache.
4. In one transaction: insert trades idempotently, fold new priced trades
   into every timeframe's candle, recompute stats, advance the cursor.
5. After commit, publish realtime deltas for what actually changed.

A failure anywhere in steps 1-4 leaves the cursor at the previous chunk
boundary, so the next pass replays the chunk; idempotent trade keys make
that replay safe.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from launchpad_indexer.chain.events import TRADE_TOPICS, TradeEvent, decode_trade_log
from launchpad_indexer.indexer.amounts import price_per_token, to_decimal_amount
from launchpad_indexer.indexer.candles import bucket_datetime
from launchpad_indexer.indexer.cursors import CursorStore, campaign_cursor
from launchpad_indexer.indexer.merge import CandleTick
from launchpad_indexer.indexer.windows import chunk_ranges
from launchpad_indexer.storage.repos import (
    CandleDTO,
    CandleRepository,
    StatSnapshotDTO,
    TradeDTO,
    TradeRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from launchpad_indexer.chain.client import LogSource
    from launchpad_indexer.chain.fetcher import RangeSplittingFetcher
    from launchpad_indexer.chain.pool import ProviderPool
    from launchpad_indexer.indexer.publisher import RealtimePublisher
    from launchpad_indexer.indexer.stats import StatsRecomputer

logger = logging.getLogger(__name__)


class BlockTimeCache:
    """Block timestamps memoized for the lifetime of one pass."""

    def __init__(self, pool: ProviderPool[Any]) -> None:
        self._pool = pool
        self._timestamps: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._timestamps)

    async def get(self, block_number: int) -> int:
        cached = self._timestamps.get(block_number)
        if cached is not None:
            return cached

        async def fetch(endpoint: LogSource) -> int:
            return await endpoint.get_block_timestamp(block_number)

        ts = await self._pool.with_rotation(fetch)
        self._timestamps[block_number] = ts
        return ts


@dataclass
class ChunkOutcome:
    new_trades: list[TradeDTO] = field(default_factory=list)
    candles: list[CandleDTO] = field(default_factory=list)
    stats: StatSnapshotDTO | None = None


@dataclass
class CampaignScanResult:
    chain_id: int
    campaign_address: str
    from_block: int
    to_block: int
    chunks: int = 0
    logs: int = 0
    trades_inserted: int = 0


def build_trade(
    chain_id: int,
    campaign_address: str,
    event: TradeEvent,
    block_ts: int,
    *,
    token_decimals: int,
    quote_decimals: int,
) -> TradeDTO:
    token_amount = to_decimal_amount(event.token_amount_raw, token_decimals)
    quote_amount = to_decimal_amount(event.quote_amount_raw, quote_decimals)
    return TradeDTO(
        chain_id=chain_id,
        campaign_address=campaign_address.lower(),
        tx_hash=event.meta.tx_hash,
        log_index=event.meta.log_index,
        block_number=event.meta.block_number,
        block_time=datetime.fromtimestamp(block_ts, tz=UTC),
        side=event.side,
        wallet=event.wallet,
        token_amount_raw=event.token_amount_raw,
        quote_amount_raw=event.quote_amount_raw,
        token_amount=token_amount,
        quote_amount=quote_amount,
        price=price_per_token(quote_amount, token_amount),
    )


class CandleAggregator:
    """Folds priced trades into one candle per configured timeframe."""

    def __init__(self, timeframes: Sequence[str]) -> None:
        if not timeframes:
            raise ValueError("At least one timeframe is required")
        self._timeframes = tuple(timeframes)

    @property
    def timeframes(self) -> tuple[str, ...]:
        return self._timeframes

    async def apply(self, session: AsyncSession, trade: TradeDTO) -> list[CandleDTO]:
        """Update every timeframe's bucket for `trade`. Unpriced trades are skipped."""
        if trade.price is None:
            return []
        repo = CandleRepository(session)
        tick = CandleTick(
            price=trade.price,
            volume=trade.quote_amount,
            block_number=trade.block_number,
            log_index=trade.log_index,
        )
        ts = int(trade.block_time.timestamp())
        return [
            await repo.apply_tick(
                chain_id=trade.chain_id,
                campaign_address=trade.campaign_address,
                timeframe=tf,
                bucket_start=bucket_datetime(ts, tf),
                tick=tick,
            )
            for tf in self._timeframes
        ]


class TradeScanner:
    """Indexes one campaign's trades over a block window, chunk by chunk."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fetcher: RangeSplittingFetcher,
        *,
        chunk_size: int,
        candles: CandleAggregator,
        stats: StatsRecomputer,
        publisher: RealtimePublisher,
        token_decimals: int = 18,
        quote_decimals: int = 18,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._sessions = session_factory
        self._fetcher = fetcher
        self._chunk_size = chunk_size
        self._candles = candles
        self._stats = stats
        self._publisher = publisher
        self._token_decimals = token_decimals
        self._quote_decimals = quote_decimals

    async def scan(
        self,
        pool: ProviderPool[Any],
        campaign_address: str,
        *,
        from_block: int,
        to_block: int,
        block_times: BlockTimeCache,
    ) -> CampaignScanResult:
        """Index trades for one campaign in ``[from_block, to_block]``.

        Raises:
            EndpointsExhaustedError: If a chunk or block timestamp cannot be
                fetched from any endpoint.
            EventDecodeError: If a campaign log is malformed.
        """
        chain_id = pool.chain_id
        campaign_address = campaign_address.lower()
        cursor_name = campaign_cursor(campaign_address)
        result = CampaignScanResult(
            chain_id=chain_id,
            campaign_address=campaign_address,
            from_block=from_block,
            to_block=to_block,
        )
        log_filter = {"address": campaign_address, "topics": [list(TRADE_TOPICS)]}

        for start, end in chunk_ranges(from_block, to_block, self._chunk_size):

            async def fetch(endpoint: LogSource, start: int = start, end: int = end) -> list[dict[str, Any]]:
                return await self._fetcher.fetch_logs(endpoint, log_filter, start, end)

            logs = await pool.with_rotation(fetch)
            events = sorted(
                (decode_trade_log(log) for log in logs),
                key=lambda ev: (ev.meta.block_number, ev.meta.log_index),
            )
            timestamps = {ev.meta.block_number: await block_times.get(ev.meta.block_number) for ev in events}

            async with self._sessions() as session:
                outcome = await self._apply_chunk(session, chain_id, campaign_address, events, timestamps)
                await CursorStore(session).advance_to(chain_id, cursor_name, end + 1)
                await session.commit()

            await self._publish(outcome)

            result.chunks += 1
            result.logs += len(events)
            result.trades_inserted += len(outcome.new_trades)
            logger.debug(
                "Campaign %s chain %d [%d,%d]: %d log(s), %d new trade(s)",
                campaign_address,
                chain_id,
                start,
                end,
                len(events),
                len(outcome.new_trades),
            )
        return result

    async def _apply_chunk(
        self,
        session: AsyncSession,
        chain_id: int,
        campaign_address: str,
        events: list[TradeEvent],
        timestamps: dict[int, int],
    ) -> ChunkOutcome:
        outcome = ChunkOutcome()
        trades = TradeRepository(session)
        for event in events:
            trade = build_trade(
                chain_id,
                campaign_address,
                event,
                timestamps[event.meta.block_number],
                token_decimals=self._token_decimals,
                quote_decimals=self._quote_decimals,
            )
            # Replayed trades must not be folded into candles a second time.
            if not await trades.insert_if_absent(trade):
                continue
            outcome.new_trades.append(trade)
            outcome.candles.extend(await self._candles.apply(session, trade))

        if events:
            outcome.stats = await self._stats.recompute(session, chain_id, campaign_address)
        return outcome

    async def _publish(self, outcome: ChunkOutcome) -> None:
        for trade in outcome.new_trades:
            await self._publisher.publish_trade(trade)
        for candle in outcome.candles:
            await self._publisher.publish_candle(candle)
        if outcome.stats is not None:
            await self._publisher.publish_stats(outcome.stats)
