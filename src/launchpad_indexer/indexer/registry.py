"""Registry Scanner - discover campaigns from the factory's creation events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from launchpad_indexer.chain.events import CAMPAIGN_CREATED_TOPIC, decode_campaign_created_log
from launchpad_indexer.indexer.cursors import FACTORY_CURSOR, CursorStore
from launchpad_indexer.indexer.windows import chunk_ranges
from launchpad_indexer.storage.repos import CampaignDTO, CampaignRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from launchpad_indexer.chain.client import LogSource
    from launchpad_indexer.chain.fetcher import RangeSplittingFetcher
    from launchpad_indexer.chain.pool import ProviderPool

logger = logging.getLogger(__name__)


@dataclass
class RegistryScanResult:
    chain_id: int
    from_block: int
    to_block: int
    chunks: int = 0
    discovered: int = 0


class RegistryScanner:
    """Scans the factory for `CampaignCreated` in fixed-size chunks.

    Each chunk's campaign upserts and the factory cursor advance commit
    together, so a crash loses at most one chunk of discovery progress.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fetcher: RangeSplittingFetcher,
        *,
        chunk_size: int,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._sessions = session_factory
        self._fetcher = fetcher
        self._chunk_size = chunk_size

    async def scan(
        self,
        pool: ProviderPool[Any],
        *,
        factory_address: str,
        from_block: int,
        to_block: int,
    ) -> RegistryScanResult:
        """Index creation events in ``[from_block, to_block]``.

        Raises:
            EndpointsExhaustedError: If a chunk cannot be fetched from any
                endpoint. Chunks committed before it are kept.
            EventDecodeError: If a factory log is malformed.
        """
        chain_id = pool.chain_id
        result = RegistryScanResult(chain_id=chain_id, from_block=from_block, to_block=to_block)
        log_filter = {"address": factory_address, "topics": [CAMPAIGN_CREATED_TOPIC]}

        for start, end in chunk_ranges(from_block, to_block, self._chunk_size):

            async def fetch(endpoint: LogSource, start: int = start, end: int = end) -> list[dict[str, Any]]:
                return await self._fetcher.fetch_logs(endpoint, log_filter, start, end)

            logs = await pool.with_rotation(fetch)
            events = sorted(
                (decode_campaign_created_log(log) for log in logs),
                key=lambda ev: (ev.meta.block_number, ev.meta.log_index),
            )

            async with self._sessions() as session:
                campaigns = CampaignRepository(session)
                for event in events:
                    await campaigns.upsert_discovered(
                        CampaignDTO(
                            chain_id=chain_id,
                            address=event.campaign,
                            token_address=event.token,
                            creator_address=event.creator,
                            name=event.name,
                            symbol=event.symbol,
                            created_block=event.meta.block_number,
                        )
                    )
                await CursorStore(session).advance_to(chain_id, FACTORY_CURSOR, end + 1)
                await session.commit()

            result.chunks += 1
            result.discovered += len(events)
            if events:
                logger.info(
                    "Discovered %d campaign(s) on chain %d in [%d,%d]",
                    len(events),
                    chain_id,
                    start,
                    end,
                )
        return result
