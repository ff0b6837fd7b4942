"""Realtime Publisher - best-effort deltas on per-campaign channels.

Messages are hints for live subscribers; the trade, candle and stats tables
remain authoritative. A dropped publish never fails a scan.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from launchpad_indexer.storage.repos import CandleDTO, StatSnapshotDTO, TradeDTO

logger = logging.getLogger(__name__)


def channel_name(chain_id: int, campaign_address: str) -> str:
    return f"{chain_id}:{campaign_address.lower()}"


def _dec(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return format(value.normalize(), "f")


def trade_message(trade: TradeDTO) -> dict[str, Any]:
    return {
        "type": "trade",
        "chainId": trade.chain_id,
        "campaign": trade.campaign_address,
        "txHash": trade.tx_hash,
        "logIndex": trade.log_index,
        "side": trade.side,
        "wallet": trade.wallet,
        "tokenAmount": _dec(trade.token_amount),
        "quoteAmount": _dec(trade.quote_amount),
        "price": _dec(trade.price),
        "ts": int(trade.block_time.timestamp()),
        "blockNumber": trade.block_number,
    }


def candle_message(candle: CandleDTO) -> dict[str, Any]:
    """Only the fields a trade can move: close and volume.

    ``v`` is the bucket's total volume after the merge, not the triggering
    trade's amount, so applying the same message twice is harmless.
    """
    return {
        "type": "candle_upsert",
        "tf": candle.timeframe,
        "bucket": int(candle.bucket_start.timestamp()),
        "c": _dec(candle.close),
        "v": _dec(candle.volume),
    }


def stats_message(stats: StatSnapshotDTO) -> dict[str, Any]:
    return {
        "type": "stats_patch",
        "lastPrice": _dec(stats.last_price),
        "marketCap": _dec(stats.market_cap),
        "rollingVolume": _dec(stats.rolling_volume),
    }


class RealtimePublisher:
    """Stateless fan-out over Redis pub/sub.

    Example:
        ```python
        redis = Redis.from_url("redis://localhost:6379")
        publisher = RealtimePublisher(redis)
        await publisher.publish_trade(trade)
        ```
    """

    def __init__(self, redis: Redis | None = None, *, enabled: bool = True) -> None:
        self._redis = redis
        self._enabled = enabled

    async def publish_trade(self, trade: TradeDTO) -> bool:
        return await self._publish(trade.chain_id, trade.campaign_address, trade_message(trade))

    async def publish_candle(self, candle: CandleDTO) -> bool:
        return await self._publish(candle.chain_id, candle.campaign_address, candle_message(candle))

    async def publish_stats(self, stats: StatSnapshotDTO) -> bool:
        return await self._publish(stats.chain_id, stats.campaign_address, stats_message(stats))

    async def _publish(self, chain_id: int, campaign_address: str, message: dict[str, Any]) -> bool:
        if not self._enabled or not self._redis:
            return False
        channel = channel_name(chain_id, campaign_address)
        try:
            await self._redis.publish(channel, json.dumps(message))
        except Exception as e:
            logger.warning("Failed to publish %s to %s: %s", message.get("type"), channel, e)
            return False
        return True

    async def aclose(self) -> None:
        if self._redis:
            await self._redis.aclose()
