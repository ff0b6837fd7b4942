"""Orchestrator - drives one normal or repair pass across every chain.

Per chain, a pass:

1. Builds a fresh provider pool and block-time cache owned by this pass.
2. Computes ``target = head - confirmations`` once and reuses it for every
   sub-scan, so factory and campaign scans see the same snapshot.
3. Runs the registry scan (failures are logged, campaigns still scan).
4. Scans each active campaign inside its own failure boundary.

Chains are independent: one chain's failure never stops the next one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from launchpad_indexer.chain.client import EndpointClient, LogSource
from launchpad_indexer.chain.fetcher import FetcherConfig, RangeSplittingFetcher
from launchpad_indexer.chain.pool import (
    DEFAULT_ROTATION_DELAY_SECONDS,
    DEFAULT_ROTATION_JITTER_SECONDS,
    ProviderPool,
)
from launchpad_indexer.indexer.cursors import FACTORY_CURSOR, CursorStore, campaign_cursor
from launchpad_indexer.indexer.registry import RegistryScanner
from launchpad_indexer.indexer.stats import StatsRecomputer
from launchpad_indexer.indexer.trades import BlockTimeCache, CandleAggregator, TradeScanner
from launchpad_indexer.indexer.windows import ScanMode, WindowPolicy
from launchpad_indexer.storage.repos import CampaignDTO, CampaignRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from launchpad_indexer.config import ChainSettings, Settings
    from launchpad_indexer.indexer.publisher import RealtimePublisher

logger = logging.getLogger(__name__)

EndpointFactory = Callable[[str, "ChainSettings"], LogSource]


def default_endpoint_factory(url: str, chain: ChainSettings) -> LogSource:
    return EndpointClient(url, max_requests_per_second=chain.max_requests_per_second)


@dataclass
class PassReport:
    """Summary of one pass."""

    mode: ScanMode
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    chains_scanned: int = 0
    chains_failed: int = 0
    campaigns_discovered: int = 0
    campaigns_scanned: int = 0
    campaigns_failed: int = 0
    trades_inserted: int = 0

    @property
    def ok(self) -> bool:
        return self.chains_failed == 0 and self.campaigns_failed == 0


class Orchestrator:
    """Runs indexing passes for all configured chains.

    Example:
        ```python
        orchestrator = Orchestrator(settings, db.session_factory, RealtimePublisher(redis))
        report = await orchestrator.run_pass("normal")
        ```
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: RealtimePublisher,
        *,
        endpoint_factory: EndpointFactory = default_endpoint_factory,
        rotation_delay_seconds: float = DEFAULT_ROTATION_DELAY_SECONDS,
        rotation_jitter_seconds: float = DEFAULT_ROTATION_JITTER_SECONDS,
    ) -> None:
        self._settings = settings
        self._sessions = session_factory
        self._endpoint_factory = endpoint_factory
        self._rotation_delay = rotation_delay_seconds
        self._rotation_jitter = rotation_jitter_seconds

        cfg = settings.indexer
        self._confirmations = cfg.confirmations
        self._windows = WindowPolicy(
            lookback_blocks=cfg.lookback_blocks,
            repair_lookback_blocks=cfg.repair_lookback_blocks,
            repair_rewind_blocks=cfg.repair_rewind_blocks,
        )
        fetcher = RangeSplittingFetcher(
            FetcherConfig(min_chunk_floor=cfg.min_log_chunk_size, max_split_depth=cfg.max_split_depth)
        )
        self._registry = RegistryScanner(session_factory, fetcher, chunk_size=cfg.log_chunk_size)
        self._trades = TradeScanner(
            session_factory,
            fetcher,
            chunk_size=cfg.log_chunk_size,
            candles=CandleAggregator(cfg.timeframes),
            stats=StatsRecomputer(rolling_window=timedelta(hours=cfg.rolling_volume_window_hours)),
            publisher=publisher,
            token_decimals=cfg.token_decimals,
            quote_decimals=cfg.quote_decimals,
        )

    async def run_pass(self, mode: ScanMode = "normal") -> PassReport:
        report = PassReport(mode=mode)
        for chain in self._settings.chains:
            try:
                await self._run_chain(chain, mode, report)
                report.chains_scanned += 1
            except Exception:
                report.chains_failed += 1
                logger.exception("Chain %d %s pass failed", chain.chain_id, mode)
        report.finished_at = datetime.now(UTC)
        logger.info(
            "%s pass finished: chains=%d failed_chains=%d discovered=%d campaigns=%d "
            "failed_campaigns=%d trades=%d",
            mode.capitalize(),
            report.chains_scanned,
            report.chains_failed,
            report.campaigns_discovered,
            report.campaigns_scanned,
            report.campaigns_failed,
            report.trades_inserted,
        )
        return report

    def _build_pool(self, chain: ChainSettings) -> ProviderPool[Any]:
        return ProviderPool(
            chain.chain_id,
            [self._endpoint_factory(url, chain) for url in chain.rpc_urls],
            rotation_delay_seconds=self._rotation_delay,
            rotation_jitter_seconds=self._rotation_jitter,
        )

    async def _run_chain(self, chain: ChainSettings, mode: ScanMode, report: PassReport) -> None:
        pool = self._build_pool(chain)
        try:

            async def fetch_head(endpoint: LogSource) -> int:
                return await endpoint.get_block_number()

            head = await pool.with_rotation(fetch_head)
            target = max(0, head - self._confirmations)
            logger.debug("Chain %d head=%d target=%d (%s)", chain.chain_id, head, target, mode)

            if chain.factory_address:
                try:
                    report.campaigns_discovered += await self._scan_registry(
                        pool, chain, chain.factory_address, mode, target
                    )
                except Exception:
                    logger.exception("Registry scan failed on chain %d", chain.chain_id)

            async with self._sessions() as session:
                campaigns = await CampaignRepository(session).list_active(chain.chain_id)

            block_times = BlockTimeCache(pool)
            for campaign in campaigns:
                try:
                    report.trades_inserted += await self._scan_campaign(
                        pool, chain, campaign, mode, target, block_times
                    )
                    report.campaigns_scanned += 1
                except Exception:
                    report.campaigns_failed += 1
                    logger.exception(
                        "Campaign scan failed (chain=%d, campaign=%s)",
                        chain.chain_id,
                        campaign.address,
                    )
        finally:
            await pool.aclose()

    async def _scan_registry(
        self,
        pool: ProviderPool[Any],
        chain: ChainSettings,
        factory_address: str,
        mode: ScanMode,
        target: int,
    ) -> int:
        async with self._sessions() as session:
            cursor = await CursorStore(session).get(chain.chain_id, FACTORY_CURSOR)
        from_block = self._windows.registry_start(
            mode=mode,
            cursor=cursor,
            target=target,
            factory_start_block=chain.factory_start_block,
        )
        if from_block > target:
            return 0
        result = await self._registry.scan(
            pool,
            factory_address=factory_address,
            from_block=from_block,
            to_block=target,
        )
        return result.discovered

    async def _scan_campaign(
        self,
        pool: ProviderPool[Any],
        chain: ChainSettings,
        campaign: CampaignDTO,
        mode: ScanMode,
        target: int,
        block_times: BlockTimeCache,
    ) -> int:
        async with self._sessions() as session:
            cursor = await CursorStore(session).get(chain.chain_id, campaign_cursor(campaign.address))
        from_block = self._windows.campaign_start(
            mode=mode,
            cursor=cursor,
            target=target,
            created_block=campaign.created_block,
            factory_start_block=chain.factory_start_block,
        )
        if from_block > target:
            return 0
        result = await self._trades.scan(
            pool,
            campaign.address,
            from_block=from_block,
            to_block=target,
            block_times=block_times,
        )
        return result.trades_inserted
