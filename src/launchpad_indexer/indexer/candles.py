"""Candle timeframes and bucketing."""

from __future__ import annotations

import re
from datetime import UTC, datetime

_TIMEFRAME_RE = re.compile(r"^(\d+)([smhdw])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86_400, "w": 604_800}


def timeframe_seconds(timeframe: str) -> int:
    """Duration of a timeframe label such as ``5s``, ``15m`` or ``1d``.

    Raises:
        ValueError: If the label is not ``<positive int><s|m|h|d|w>``.
    """
    match = _TIMEFRAME_RE.match(timeframe.strip())
    if match is None:
        raise ValueError(f"Invalid timeframe: {timeframe!r}")
    seconds = int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if seconds <= 0:
        raise ValueError(f"Timeframe must be positive: {timeframe!r}")
    return seconds


def bucket_start(ts: int, timeframe: str) -> int:
    """Epoch second at which the bucket containing `ts` starts."""
    size = timeframe_seconds(timeframe)
    return ts - (ts % size)


def bucket_datetime(ts: int, timeframe: str) -> datetime:
    return datetime.fromtimestamp(bucket_start(ts, timeframe), tz=UTC)
