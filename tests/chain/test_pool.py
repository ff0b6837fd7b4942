"""Tests for the provider pool."""

from __future__ import annotations

import pytest

from launchpad_indexer.chain.errors import (
    EndpointsExhaustedError,
    PrunedHistoryError,
    RateLimitError,
    RPCError,
    TransportError,
)
from launchpad_indexer.chain.pool import ProviderPool


class _Endpoint:
    def __init__(self, url: str) -> None:
        self.url = url
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


def _pool(*urls: str) -> ProviderPool[_Endpoint]:
    return ProviderPool(
        97,
        [_Endpoint(u) for u in urls],
        rotation_delay_seconds=0,
        rotation_jitter_seconds=0,
    )


class TestProviderPool:
    def test_requires_endpoints(self) -> None:
        with pytest.raises(ValueError):
            ProviderPool(97, [])

    def test_rotate_wraps_around(self) -> None:
        pool = _pool("a", "b", "c")
        assert pool.current.url == "a"
        assert [pool.rotate().url for _ in range(4)] == ["b", "c", "a", "b"]
        assert pool.max_attempts == 6

    @pytest.mark.asyncio
    async def test_success_stays_on_current(self) -> None:
        pool = _pool("a", "b")
        seen: list[str] = []

        async def op(ep: _Endpoint) -> str:
            seen.append(ep.url)
            return ep.url

        assert await pool.with_rotation(op) == "a"
        assert await pool.with_rotation(op) == "a"
        assert seen == ["a", "a"]

    @pytest.mark.asyncio
    async def test_transient_failure_rotates(self) -> None:
        pool = _pool("a", "b", "c")
        seen: list[str] = []

        async def op(ep: _Endpoint) -> str:
            seen.append(ep.url)
            if ep.url == "a":
                raise RateLimitError("throttled")
            if ep.url == "b":
                raise PrunedHistoryError("pruned")
            return "ok"

        assert await pool.with_rotation(op) == "ok"
        assert seen == ["a", "b", "c"]
        assert pool.current.url == "c"

    @pytest.mark.asyncio
    async def test_non_transient_error_propagates_immediately(self) -> None:
        pool = _pool("a", "b")
        calls = 0

        async def op(ep: _Endpoint) -> None:
            nonlocal calls
            calls += 1
            raise RPCError("execution reverted")

        with pytest.raises(RPCError):
            await pool.with_rotation(op)
        assert calls == 1
        assert pool.current.url == "a"

    @pytest.mark.asyncio
    async def test_exhaustion_after_two_rotations(self) -> None:
        pool = _pool("a", "b")
        seen: list[str] = []

        async def op(ep: _Endpoint) -> None:
            seen.append(ep.url)
            raise TransportError("503")

        with pytest.raises(EndpointsExhaustedError) as exc_info:
            await pool.with_rotation(op)
        assert seen == ["a", "b", "a", "b"]
        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value.last_error, TransportError)

    @pytest.mark.asyncio
    async def test_aclose_closes_every_endpoint(self) -> None:
        pool = _pool("a", "b")
        await pool.aclose()
        assert all(ep.closed for ep in pool.endpoints)
