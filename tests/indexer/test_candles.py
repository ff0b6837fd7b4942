"""Tests for timeframe bucketing and amount conversion."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from launchpad_indexer.indexer.amounts import multiply, price_per_token, quantize, to_decimal_amount
from launchpad_indexer.indexer.candles import bucket_datetime, bucket_start, timeframe_seconds


class TestTimeframes:
    @pytest.mark.parametrize(
        ("label", "seconds"),
        [("5s", 5), ("1m", 60), ("15m", 900), ("4h", 14_400), ("1d", 86_400), ("1w", 604_800)],
    )
    def test_timeframe_seconds(self, label: str, seconds: int) -> None:
        assert timeframe_seconds(label) == seconds

    @pytest.mark.parametrize("label", ["", "m", "0m", "5x", "1.5h", "-1m"])
    def test_invalid_timeframe(self, label: str) -> None:
        with pytest.raises(ValueError):
            timeframe_seconds(label)

    def test_bucket_start(self) -> None:
        assert bucket_start(1_700_000_123, "1m") == 1_700_000_100
        assert bucket_start(1_700_000_100, "1m") == 1_700_000_100
        assert bucket_start(1_700_000_123, "5s") == 1_700_000_120

    def test_bucket_datetime_is_utc(self) -> None:
        dt = bucket_datetime(90, "1m")
        assert dt == datetime(1970, 1, 1, 0, 1, tzinfo=UTC)
        assert dt.tzinfo is not None


class TestAmounts:
    def test_to_decimal_amount(self) -> None:
        assert to_decimal_amount(1_500_000_000_000_000_000, 18) == Decimal("1.5")
        assert to_decimal_amount(1_500_000, 6) == Decimal("1.5")
        assert to_decimal_amount(0, 18) == Decimal(0)

    def test_to_decimal_amount_keeps_full_uint256(self) -> None:
        raw = 2**256 - 1
        assert to_decimal_amount(raw, 0) == Decimal(raw)

    def test_negative_raw_rejected(self) -> None:
        with pytest.raises(ValueError):
            to_decimal_amount(-1, 18)

    def test_price_per_token(self) -> None:
        assert price_per_token(Decimal("0.001"), Decimal("1")) == Decimal("0.001")
        assert price_per_token(Decimal("3"), Decimal("2")) == Decimal("1.5")

    def test_price_is_none_for_zero_tokens(self) -> None:
        assert price_per_token(Decimal("1"), Decimal("0")) is None

    def test_quantize_to_18_places(self) -> None:
        assert quantize(Decimal(1) / Decimal(3)) == Decimal("0.333333333333333333")

    def test_multiply(self) -> None:
        assert multiply(Decimal("0.0015"), Decimal("1000")) == Decimal("1.5")
