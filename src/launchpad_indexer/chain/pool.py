"""Ordered per-chain endpoint pool with round-robin rotation."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Generic, TypeVar

from launchpad_indexer.chain.client import LogSource
from launchpad_indexer.chain.errors import EndpointsExhaustedError, TransientRPCError

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=LogSource)

DEFAULT_ROTATION_DELAY_SECONDS = 0.5
DEFAULT_ROTATION_JITTER_SECONDS = 0.5


class ProviderPool(Generic[E]):
    """Runs operations against the current endpoint, rotating on transient failures.

    Transient failures (rate limit, transport, pruned history) rotate to the next
    endpoint and retry, up to two full rotations. Anything else propagates
    immediately. The only state is the rotation index, so a pool is cheap to
    build once per pass.
    """

    def __init__(
        self,
        chain_id: int,
        endpoints: Sequence[E],
        *,
        rotation_delay_seconds: float = DEFAULT_ROTATION_DELAY_SECONDS,
        rotation_jitter_seconds: float = DEFAULT_ROTATION_JITTER_SECONDS,
    ) -> None:
        if not endpoints:
            raise ValueError(f"No RPC endpoints configured for chain {chain_id}")
        self.chain_id = chain_id
        self._endpoints = list(endpoints)
        self._index = 0
        self._rotation_delay = rotation_delay_seconds
        self._rotation_jitter = rotation_jitter_seconds

    @property
    def endpoints(self) -> list[E]:
        return list(self._endpoints)

    @property
    def current(self) -> E:
        return self._endpoints[self._index]

    @property
    def max_attempts(self) -> int:
        return 2 * len(self._endpoints)

    def rotate(self) -> E:
        self._index = (self._index + 1) % len(self._endpoints)
        return self.current

    async def with_rotation(self, op: Callable[[E], Awaitable[T]]) -> T:
        """Execute `op` against the current endpoint with rotation on transient failure.

        Raises:
            EndpointsExhaustedError: If every attempt failed transiently.
        """
        last_error: TransientRPCError | None = None
        for attempt in range(self.max_attempts):
            endpoint = self.current
            try:
                return await op(endpoint)
            except TransientRPCError as e:
                last_error = e
                logger.warning(
                    "RPC error on chain %d (attempt %d/%d, rpc=%s, reason=%s: %s); rotating endpoint",
                    self.chain_id,
                    attempt + 1,
                    self.max_attempts,
                    endpoint.url,
                    type(e).__name__,
                    e,
                )
                self.rotate()
                if attempt < self.max_attempts - 1:
                    await asyncio.sleep(self._rotation_delay + random.uniform(0, self._rotation_jitter))

        raise EndpointsExhaustedError(self.chain_id, self.max_attempts, last_error) from last_error

    async def aclose(self) -> None:
        for endpoint in self._endpoints:
            close = getattr(endpoint, "aclose", None)
            if callable(close):
                await close()
