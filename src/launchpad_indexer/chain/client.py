"""Single-endpoint EVM JSON-RPC client.

One `EndpointClient` wraps one RPC URL. It does not retry or fail over on
its own: every failure is classified into the `chain.errors` taxonomy and
raised, and the `ProviderPool` / `RangeSplittingFetcher` decide what to do.
Requests are paced by a token bucket so one endpoint never sees unbounded
pressure from a single indexer process.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp
from web3 import AsyncWeb3
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers import AsyncHTTPProvider

from launchpad_indexer.chain.errors import TransientRPCError, classify_rpc_error

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS_PER_SECOND = 10.0
DEFAULT_REQUEST_TIMEOUT = 30


class LogSource(Protocol):
    """What the indexer needs from one RPC endpoint."""

    url: str

    async def get_block_number(self) -> int: ...

    async def get_logs(self, filter_params: dict[str, Any]) -> list[dict[str, Any]]: ...

    async def get_block_timestamp(self, block_number: int) -> int: ...


@dataclass
class RateLimiter:
    """Token bucket rate limiter."""

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> RateLimiter:
        """Create a rate limiter with specified max requests per second."""
        return cls(
            max_tokens=max_requests_per_second,
            refill_rate=max_requests_per_second,
            tokens=max_requests_per_second,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


class EndpointClient:
    """Rate-limited, error-classifying wrapper around one RPC URL.

    Example:
        ```python
        client = EndpointClient("https://bsc-testnet.publicnode.com")
        head = await client.get_block_number()
        logs = await client.get_logs({"address": "0x...", "fromBlock": 1, "toBlock": 100})
        await client.aclose()
        ```
    """

    def __init__(
        self,
        url: str,
        *,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        request_timeout: int = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.url = url
        self._w3 = AsyncWeb3(
            AsyncHTTPProvider(
                url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=request_timeout)},
                # Retries belong to the fetcher and the provider pool.
                exception_retry_configuration=None,
            )
        )
        self._inject_poa_middleware()
        self._rate_limiter = RateLimiter.create(max_requests_per_second)

    def __repr__(self) -> str:
        return f"EndpointClient({self.url!r})"

    def _inject_poa_middleware(self) -> None:
        try:
            self._w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        except Exception as e:
            logger.warning("Failed to inject PoA middleware (rpc=%s): %s", self.url, e)

    async def _call(self, func_name: str, *args: Any) -> Any:
        await self._rate_limiter.acquire()
        try:
            method = getattr(self._w3.eth, func_name)
            return await method(*args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise classify_rpc_error(e) from e

    async def get_block_number(self) -> int:
        return int(await self._call("get_block_number"))

    async def get_logs(self, filter_params: dict[str, Any]) -> list[dict[str, Any]]:
        """Fetch logs via `eth_getLogs`. Raises a classified error on failure."""
        params = dict(filter_params)
        if params.get("address"):
            params["address"] = AsyncWeb3.to_checksum_address(params["address"])
        logs = await self._call("get_logs", params)
        return [dict(log) for log in logs]

    async def get_block_timestamp(self, block_number: int) -> int:
        if block_number < 0:
            raise ValueError("block_number must be >= 0")
        block = await self._call("get_block", block_number)
        if block is None or block.get("timestamp") is None:
            # A lagging endpoint may not have the block yet; another one might.
            raise TransientRPCError(f"Block {block_number} not available from {self.url}")
        return int(block["timestamp"])

    async def aclose(self) -> None:
        """Close the async HTTP provider session to avoid leaked aiohttp sessions."""
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if not callable(disconnect):
            return
        try:
            result = disconnect()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.warning("Failed to close RPC provider session (rpc=%s): %s", self.url, e)
