"""RPC failure taxonomy.

Raw failures coming out of web3 / aiohttp / JSON-RPC payloads are mapped onto
a small closed set of exception classes so the pool and fetcher can decide
between splitting, backing off, rotating, or propagating.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any

import aiohttp

# JSON-RPC error codes seen on public providers.
RATE_LIMIT_RPC_CODE = -32005
PRUNED_HISTORY_RPC_CODE = -32701

_TRANSPORT_HTTP_STATUSES = frozenset({502, 503, 504})
_TRANSPORT_STATUS_RE = re.compile(r"\b50[234]\b")

_TRANSPORT_MESSAGE_FRAGMENTS = (
    "service unavailable",
    "bad gateway",
    "gateway timeout",
    "handshake failure",
    "eproto",
    "econnreset",
    "connection reset",
    "server disconnected",
    "etimedout",
    "timeout",
    "timed out",
)


class ChainClientError(Exception):
    """Base exception for chain client errors."""


class RPCError(ChainClientError):
    """Raised when an RPC call fails in a non-retryable way."""


class TransientRPCError(ChainClientError):
    """Failure class that another endpoint may not exhibit."""


class RateLimitError(TransientRPCError):
    """Raised when the endpoint is throttling requests."""


class TransportError(TransientRPCError):
    """Raised on gateway, timeout, or connection failures."""


class PrunedHistoryError(TransientRPCError):
    """Raised when the endpoint cannot serve logs for an old block range."""


class EndpointsExhaustedError(ChainClientError):
    """Raised when every endpoint in a pool failed transiently."""

    def __init__(self, chain_id: int, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(
            f"All RPC endpoints for chain {chain_id} failed after {attempts} attempts: {last_error}"
        )
        self.chain_id = chain_id
        self.attempts = attempts
        self.last_error = last_error


def _rpc_payload(exc: BaseException) -> dict[str, Any] | None:
    """Find a JSON-RPC error object attached to an exception, if any."""
    for attr in ("rpc_response", "error", "info", "value"):
        candidate = getattr(exc, attr, None)
        if isinstance(candidate, dict):
            inner = candidate.get("error")
            return inner if isinstance(inner, dict) else candidate
        if isinstance(candidate, list) and candidate and isinstance(candidate[0], dict):
            inner = candidate[0].get("error")
            if isinstance(inner, dict):
                return inner
    for arg in exc.args:
        if isinstance(arg, dict):
            inner = arg.get("error")
            return inner if isinstance(inner, dict) else arg
    return None


def _error_code(exc: BaseException) -> int | None:
    payload = _rpc_payload(exc)
    if payload:
        code = payload.get("code")
    elif isinstance(exc, aiohttp.ClientResponseError):
        # HTTP statuses are read from `status`; `code` is a deprecated alias.
        return None
    else:
        code = getattr(exc, "code", None)
    try:
        return int(code) if code is not None else None
    except (TypeError, ValueError):
        return None


def _error_message(exc: BaseException) -> str:
    parts = [str(exc)]
    payload = _rpc_payload(exc)
    if payload and payload.get("message"):
        parts.append(str(payload["message"]))
    return " ".join(parts).lower()


def is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, RateLimitError):
        return True
    if getattr(exc, "status", None) == 429:
        return True
    if _error_code(exc) == RATE_LIMIT_RPC_CODE:
        return True
    message = _error_message(exc)
    return "rate limit" in message or "too many requests" in message


def is_pruned_history_error(exc: BaseException) -> bool:
    if isinstance(exc, PrunedHistoryError):
        return True
    if _error_code(exc) == PRUNED_HISTORY_RPC_CODE:
        return True
    return "pruned" in _error_message(exc)


def is_transport_error(exc: BaseException) -> bool:
    if isinstance(exc, TransportError):
        return True
    if isinstance(exc, (aiohttp.ClientConnectionError, asyncio.TimeoutError, ConnectionError)):
        return True
    if getattr(exc, "status", None) in _TRANSPORT_HTTP_STATUSES:
        return True
    message = _error_message(exc)
    if any(fragment in message for fragment in _TRANSPORT_MESSAGE_FRAGMENTS):
        return True
    return _TRANSPORT_STATUS_RE.search(message) is not None


def classify_rpc_error(exc: BaseException) -> ChainClientError:
    """Map a raw RPC failure onto the taxonomy.

    Pruned history is checked first: some providers report it with messages
    that also look like rate limiting.
    """
    if isinstance(exc, ChainClientError):
        return exc
    if is_pruned_history_error(exc):
        return PrunedHistoryError(str(exc))
    if is_rate_limit_error(exc):
        return RateLimitError(str(exc))
    if is_transport_error(exc):
        return TransportError(str(exc) or type(exc).__name__)
    return RPCError(str(exc) or type(exc).__name__)
