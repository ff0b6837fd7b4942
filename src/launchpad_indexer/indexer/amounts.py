"""Fixed-point conversions for on-chain integer amounts."""

from __future__ import annotations

from decimal import Context, Decimal

# Wide enough for any uint256 without rounding.
_CONTEXT = Context(prec=96)
_SCALE = Decimal(1).scaleb(-18)


def to_decimal_amount(raw: int, decimals: int) -> Decimal:
    """Scale a raw integer amount by `decimals`."""
    if raw < 0:
        raise ValueError("raw amount must be non-negative")
    return _CONTEXT.divide(Decimal(raw), Decimal(10) ** decimals)


def quantize(value: Decimal) -> Decimal:
    """Round to the 18 fractional digits the store keeps."""
    return value.quantize(_SCALE, context=_CONTEXT)


def price_per_token(quote_amount: Decimal, token_amount: Decimal) -> Decimal | None:
    """Quote paid per token, or None for a zero token amount."""
    if token_amount == 0:
        return None
    return quantize(_CONTEXT.divide(quote_amount, token_amount))


def multiply(a: Decimal, b: Decimal) -> Decimal:
    return quantize(_CONTEXT.multiply(a, b))
