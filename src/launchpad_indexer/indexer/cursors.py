"""Cursor Store - resumable, forward-only scan progress."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from launchpad_indexer.storage.repos import ChainCursorRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

FACTORY_CURSOR = "factory"


def campaign_cursor(address: str) -> str:
    return f"campaign:{address.lower()}"


class CursorStore:
    """Read and advance named cursors within the caller's transaction.

    `advance_to` persists ``max(stored, candidate)`` so a rewound repair pass
    racing a newer normal pass can never regress progress.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._repo = ChainCursorRepository(session)

    async def get(self, chain_id: int, name: str) -> int:
        """Next block to scan for a stream, or 0 if it has never run."""
        return await self._repo.get(chain_id, name)

    async def advance_to(self, chain_id: int, name: str, block: int) -> int:
        stored = await self._repo.advance_to(chain_id, name, block)
        if stored != block:
            logger.debug(
                "Cursor %s on chain %d kept at %d (candidate %d is behind)",
                name,
                chain_id,
                stored,
                block,
            )
        return stored
