"""Pure merge rules for incrementally maintained rows.

Each rule takes the stored state (or None) and an incoming observation and
returns the merged state. Repositories apply them inside a single
read-modify-write under a row lock, so the rules themselves never touch I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

# (block_number, log_index)
LogPosition = tuple[int, int]


def merge_cursor(existing: int | None, incoming: int) -> int:
    """A cursor never moves backward."""
    if existing is None:
        return incoming
    return max(existing, incoming)


def merge_created_block(existing: int, incoming: int) -> int:
    """Reconcile a creation block where 0 means unknown.

    Prefer whichever side is known; when both are, the earliest wins.
    """
    if existing <= 0:
        return max(incoming, 0)
    if incoming <= 0:
        return existing
    return min(existing, incoming)


@dataclass(frozen=True)
class CandleTick:
    """One priced trade as seen by a candle."""

    price: Decimal
    volume: Decimal
    block_number: int
    log_index: int

    @property
    def position(self) -> LogPosition:
        return (self.block_number, self.log_index)


@dataclass(frozen=True)
class CandleState:
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    trade_count: int
    first_position: LogPosition
    last_position: LogPosition


def merge_candle(existing: CandleState | None, tick: CandleTick) -> CandleState:
    """Fold one trade into a bucket.

    high/low/volume/count always merge. open only moves for a trade earlier
    than any applied so far, close only for a later one, so re-applying an
    older range after a newer one cannot regress either. Applied in order
    this is the plain "last trade sets close" rule.
    """
    if existing is None:
        return CandleState(
            open=tick.price,
            high=tick.price,
            low=tick.price,
            close=tick.price,
            volume=tick.volume,
            trade_count=1,
            first_position=tick.position,
            last_position=tick.position,
        )

    open_price, first_position = existing.open, existing.first_position
    if tick.position < first_position:
        open_price, first_position = tick.price, tick.position

    close_price, last_position = existing.close, existing.last_position
    if tick.position >= last_position:
        close_price, last_position = tick.price, tick.position

    return CandleState(
        open=open_price,
        high=max(existing.high, tick.price),
        low=min(existing.low, tick.price),
        close=close_price,
        volume=existing.volume + tick.volume,
        trade_count=existing.trade_count + 1,
        first_position=first_position,
        last_position=last_position,
    )
