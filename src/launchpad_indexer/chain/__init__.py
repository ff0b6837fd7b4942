"""Chain access layer - RPC endpoints, rotation, log fetching and decoding."""

from launchpad_indexer.chain.client import EndpointClient, LogSource, RateLimiter
from launchpad_indexer.chain.errors import (
    ChainClientError,
    EndpointsExhaustedError,
    PrunedHistoryError,
    RateLimitError,
    RPCError,
    TransientRPCError,
    TransportError,
    classify_rpc_error,
)
from launchpad_indexer.chain.events import (
    CampaignCreated,
    EventDecodeError,
    TokensPurchased,
    TokensSold,
    decode_log,
)
from launchpad_indexer.chain.fetcher import FetcherConfig, RangeSplittingFetcher
from launchpad_indexer.chain.pool import ProviderPool

__all__ = [
    "CampaignCreated",
    "ChainClientError",
    "EndpointClient",
    "EndpointsExhaustedError",
    "EventDecodeError",
    "FetcherConfig",
    "LogSource",
    "PrunedHistoryError",
    "ProviderPool",
    "RPCError",
    "RangeSplittingFetcher",
    "RateLimitError",
    "RateLimiter",
    "TokensPurchased",
    "TokensSold",
    "TransientRPCError",
    "TransportError",
    "classify_rpc_error",
    "decode_log",
]
