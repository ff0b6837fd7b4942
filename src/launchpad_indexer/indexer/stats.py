"""Stats Recomputer - derive a campaign's stat snapshot from its trades."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from launchpad_indexer.indexer.amounts import multiply
from launchpad_indexer.storage.repos import StatSnapshotDTO, StatSnapshotRepository, TradeRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_ROLLING_WINDOW = timedelta(hours=24)


class StatsRecomputer:
    """Rebuilds the stat snapshot from the trade table.

    Every call is a full recomputation, never an incremental patch, so it is
    safe to run redundantly or after an interrupted pass:

    - ``last_price``: price of the latest priced trade by (block, log index)
    - ``net_sold``: total bought minus total sold, in tokens
    - ``market_cap``: ``last_price * net_sold`` (None without a price)
    - ``rolling_volume``: quote volume traded within the trailing window
    """

    def __init__(self, *, rolling_window: timedelta = DEFAULT_ROLLING_WINDOW) -> None:
        if rolling_window <= timedelta(0):
            raise ValueError("rolling_window must be positive")
        self._rolling_window = rolling_window

    async def recompute(
        self,
        session: AsyncSession,
        chain_id: int,
        campaign_address: str,
        *,
        as_of: datetime | None = None,
    ) -> StatSnapshotDTO:
        as_of = as_of or datetime.now(UTC)
        if as_of.tzinfo is None:
            raise ValueError("as_of must be timezone-aware")

        trades = TradeRepository(session)
        last_price = await trades.get_last_price(chain_id, campaign_address)
        totals = await trades.sum_token_amount_by_side(chain_id, campaign_address)
        net_sold = totals["buy"] - totals["sell"]
        rolling_volume = await trades.sum_quote_amount_since(
            chain_id,
            campaign_address,
            since=as_of - self._rolling_window,
        )

        snapshot = StatSnapshotDTO(
            chain_id=chain_id,
            campaign_address=campaign_address.lower(),
            last_price=last_price,
            net_sold=net_sold,
            market_cap=multiply(last_price, net_sold) if last_price is not None else None,
            rolling_volume=rolling_volume,
            updated_at=as_of,
        )
        await StatSnapshotRepository(session).replace(snapshot)
        logger.debug(
            "Stats for %s on chain %d: price=%s net_sold=%s volume=%s",
            campaign_address,
            chain_id,
            last_price,
            net_sold,
            rolling_volume,
        )
        return snapshot
