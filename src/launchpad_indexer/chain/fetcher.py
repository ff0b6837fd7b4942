"""Log retrieval that absorbs rate limiting on a single endpoint.

Strategy per range, in order:
1. Bisect a rate-limited range (bounded by depth and a minimum span).
2. Once a range can no longer be split, retry it with jittered exponential backoff.
3. If still rate limited, re-raise so the provider pool rotates endpoints.

Pruned-history and non-retryable errors are never split or retried here.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

from launchpad_indexer.chain.client import LogSource
from launchpad_indexer.chain.errors import RateLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetcherConfig:
    min_chunk_floor: int = 250
    max_split_depth: int = 12
    backoff_initial_seconds: float = 0.75
    backoff_max_seconds: float = 15.0
    backoff_jitter_seconds: float = 0.25
    backoff_attempts: int = 6


class RangeSplittingFetcher:
    """Fetch `eth_getLogs` results for an inclusive block range.

    Splitting uses an explicit work stack rather than recursion. The left half
    is always processed first, so the output is ordered exactly as a single
    unsplit response over the whole range would be.
    """

    def __init__(self, config: FetcherConfig | None = None) -> None:
        self._config = config or FetcherConfig()

    @property
    def config(self) -> FetcherConfig:
        return self._config

    async def fetch_logs(
        self,
        endpoint: LogSource,
        log_filter: dict[str, Any],
        from_block: int,
        to_block: int,
    ) -> list[dict[str, Any]]:
        if to_block < from_block:
            return []

        results: list[dict[str, Any]] = []
        stack: list[tuple[int, int, int]] = [(from_block, to_block, 0)]
        while stack:
            start, end, depth = stack.pop()
            try:
                logs = await endpoint.get_logs(self._params(log_filter, start, end))
            except RateLimitError as e:
                span = end - start + 1
                if span > self._config.min_chunk_floor and depth < self._config.max_split_depth:
                    mid = (start + end) // 2
                    logger.debug(
                        "Rate limited on %s for [%d,%d]; splitting at %d (depth=%d)",
                        endpoint.url,
                        start,
                        end,
                        mid,
                        depth + 1,
                    )
                    # Right half pushed first so the left half is popped first.
                    stack.append((mid + 1, end, depth + 1))
                    stack.append((start, mid, depth + 1))
                    continue
                logs = await self._fetch_with_backoff(endpoint, log_filter, start, end, first_error=e)
            results.extend(logs)
        return results

    async def _fetch_with_backoff(
        self,
        endpoint: LogSource,
        log_filter: dict[str, Any],
        start: int,
        end: int,
        *,
        first_error: RateLimitError,
    ) -> list[dict[str, Any]]:
        delay = self._config.backoff_initial_seconds
        for attempt in range(self._config.backoff_attempts):
            wait = delay + random.uniform(0, self._config.backoff_jitter_seconds)
            logger.warning(
                "Rate limited on %s for [%d,%d]; backing off %.2fs (attempt %d/%d)",
                endpoint.url,
                start,
                end,
                wait,
                attempt + 1,
                self._config.backoff_attempts,
            )
            await asyncio.sleep(wait)
            try:
                return await endpoint.get_logs(self._params(log_filter, start, end))
            except RateLimitError:
                pass
            delay = min(self._config.backoff_max_seconds, delay * 2)

        raise first_error

    @staticmethod
    def _params(log_filter: dict[str, Any], start: int, end: int) -> dict[str, Any]:
        return {**log_filter, "fromBlock": start, "toBlock": end}
