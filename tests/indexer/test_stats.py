"""Tests for the stats recomputer."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from launchpad_indexer.indexer.stats import StatsRecomputer
from launchpad_indexer.storage.repos import StatSnapshotRepository, TradeDTO, TradeRepository

CHAIN_ID = 97
CAMPAIGN = "0x" + "c1" * 20
AS_OF = datetime(2026, 3, 1, 12, tzinfo=UTC)


def _trade(log_index: int, block: int, side: str, tokens: str, quote: str, *, age: timedelta) -> TradeDTO:
    token_amount = Decimal(tokens)
    quote_amount = Decimal(quote)
    return TradeDTO(
        chain_id=CHAIN_ID,
        campaign_address=CAMPAIGN,
        tx_hash="0x" + f"{block:08x}" * 8,
        log_index=log_index,
        block_number=block,
        block_time=AS_OF - age,
        side=side,
        wallet="0x" + "a1" * 20,
        token_amount_raw=int(token_amount * 10**18),
        quote_amount_raw=int(quote_amount * 10**18),
        token_amount=token_amount,
        quote_amount=quote_amount,
        price=(quote_amount / token_amount) if token_amount else None,
    )


class TestStatsRecomputer:
    @pytest.mark.asyncio
    async def test_no_trades(self, async_session: AsyncSession) -> None:
        snapshot = await StatsRecomputer().recompute(async_session, CHAIN_ID, CAMPAIGN, as_of=AS_OF)

        assert snapshot.last_price is None
        assert snapshot.market_cap is None
        assert snapshot.net_sold == Decimal(0)
        assert snapshot.rolling_volume == Decimal(0)

    @pytest.mark.asyncio
    async def test_recompute_from_trades(self, async_session: AsyncSession) -> None:
        trades = TradeRepository(async_session)
        await trades.insert_if_absent(_trade(0, 100, "buy", "1000", "1", age=timedelta(days=3)))
        await trades.insert_if_absent(_trade(0, 200, "buy", "500", "1", age=timedelta(hours=2)))
        await trades.insert_if_absent(_trade(1, 200, "sell", "100", "0.25", age=timedelta(hours=2)))

        snapshot = await StatsRecomputer().recompute(async_session, CHAIN_ID, CAMPAIGN, as_of=AS_OF)
        await async_session.commit()

        assert snapshot.last_price == Decimal("0.0025")
        assert snapshot.net_sold == Decimal("1400")
        assert snapshot.market_cap == Decimal("3.5")
        assert snapshot.rolling_volume == Decimal("1.25")

        stored = await StatSnapshotRepository(async_session).get(CHAIN_ID, CAMPAIGN)
        assert stored is not None
        assert stored.market_cap == Decimal("3.5")
        assert stored.updated_at == AS_OF

    @pytest.mark.asyncio
    async def test_recompute_is_repeatable(self, async_session: AsyncSession) -> None:
        await TradeRepository(async_session).insert_if_absent(
            _trade(0, 100, "buy", "10", "0.01", age=timedelta(minutes=5))
        )
        recomputer = StatsRecomputer()

        first = await recomputer.recompute(async_session, CHAIN_ID, CAMPAIGN, as_of=AS_OF)
        second = await recomputer.recompute(async_session, CHAIN_ID, CAMPAIGN, as_of=AS_OF)

        assert first == second

    @pytest.mark.asyncio
    async def test_custom_rolling_window(self, async_session: AsyncSession) -> None:
        await TradeRepository(async_session).insert_if_absent(
            _trade(0, 100, "buy", "10", "2", age=timedelta(hours=2))
        )
        snapshot = await StatsRecomputer(rolling_window=timedelta(hours=1)).recompute(
            async_session, CHAIN_ID, CAMPAIGN, as_of=AS_OF
        )
        assert snapshot.rolling_volume == Decimal(0)

    def test_rejects_non_positive_window(self) -> None:
        with pytest.raises(ValueError):
            StatsRecomputer(rolling_window=timedelta(0))

    @pytest.mark.asyncio
    async def test_rejects_naive_as_of(self, async_session: AsyncSession) -> None:
        with pytest.raises(ValueError):
            await StatsRecomputer().recompute(async_session, CHAIN_ID, CAMPAIGN, as_of=datetime(2026, 1, 1))
