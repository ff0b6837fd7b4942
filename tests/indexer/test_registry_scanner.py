"""Tests for the registry scanner."""

from __future__ import annotations

import pytest

from launchpad_indexer.chain.events import EventDecodeError
from launchpad_indexer.chain.fetcher import RangeSplittingFetcher
from launchpad_indexer.chain.pool import ProviderPool
from launchpad_indexer.indexer.cursors import FACTORY_CURSOR, CursorStore
from launchpad_indexer.indexer.registry import RegistryScanner
from launchpad_indexer.storage.repos import CampaignRepository

CHAIN_ID = 97
FACTORY = "0x" + "fa" * 20


def _pool(endpoint) -> ProviderPool:
    return ProviderPool(CHAIN_ID, [endpoint], rotation_delay_seconds=0, rotation_jitter_seconds=0)


class TestRegistryScanner:
    @pytest.mark.asyncio
    async def test_discovers_campaigns_and_advances_cursor(
        self, session_factory, fake_endpoint, campaign_log
    ) -> None:
        first = "0x" + "01" * 20
        second = "0x" + "02" * 20
        endpoint = fake_endpoint(
            logs=[
                campaign_log(block=700, campaign=second, name="Second", symbol="TWO"),
                campaign_log(block=120, campaign=first, name="First", symbol="ONE"),
            ]
        )
        scanner = RegistryScanner(session_factory, RangeSplittingFetcher(), chunk_size=500)

        result = await scanner.scan(_pool(endpoint), factory_address=FACTORY, from_block=0, to_block=999)

        assert result.discovered == 2
        assert result.chunks == 2
        assert endpoint.get_logs_calls == [(0, 499), (500, 999)]
        async with session_factory() as session:
            campaigns = await CampaignRepository(session).list_active(CHAIN_ID)
            cursor = await CursorStore(session).get(CHAIN_ID, FACTORY_CURSOR)
        assert [(c.address, c.created_block, c.symbol) for c in campaigns] == [
            (first, 120, "ONE"),
            (second, 700, "TWO"),
        ]
        assert cursor == 1000

    @pytest.mark.asyncio
    async def test_rescan_keeps_earliest_creation_block(self, session_factory, fake_endpoint, campaign_log) -> None:
        scanner = RegistryScanner(session_factory, RangeSplittingFetcher(), chunk_size=500)
        await scanner.scan(
            _pool(fake_endpoint(logs=[campaign_log(block=300)])),
            factory_address=FACTORY,
            from_block=0,
            to_block=499,
        )
        await scanner.scan(
            _pool(fake_endpoint(logs=[campaign_log(block=450, name="Renamed")])),
            factory_address=FACTORY,
            from_block=0,
            to_block=499,
        )

        async with session_factory() as session:
            campaigns = await CampaignRepository(session).list_active(CHAIN_ID)
        assert len(campaigns) == 1
        assert campaigns[0].created_block == 300
        assert campaigns[0].name == "Renamed"

    @pytest.mark.asyncio
    async def test_ignores_other_addresses(self, session_factory, fake_endpoint, campaign_log) -> None:
        endpoint = fake_endpoint(logs=[campaign_log(block=10, factory="0x" + "99" * 20)])
        scanner = RegistryScanner(session_factory, RangeSplittingFetcher(), chunk_size=500)

        result = await scanner.scan(_pool(endpoint), factory_address=FACTORY, from_block=0, to_block=99)

        assert result.discovered == 0

    @pytest.mark.asyncio
    async def test_malformed_log_fails_chunk(self, session_factory, fake_endpoint, campaign_log) -> None:
        bad = campaign_log(block=10)
        bad["data"] = "0x1234"
        scanner = RegistryScanner(session_factory, RangeSplittingFetcher(), chunk_size=500)

        with pytest.raises(EventDecodeError):
            await scanner.scan(_pool(fake_endpoint(logs=[bad])), factory_address=FACTORY, from_block=0, to_block=99)

        async with session_factory() as session:
            assert await CursorStore(session).get(CHAIN_ID, FACTORY_CURSOR) == 0

    def test_rejects_non_positive_chunk(self, session_factory) -> None:
        with pytest.raises(ValueError):
            RegistryScanner(session_factory, RangeSplittingFetcher(), chunk_size=0)
