"""Fixed-point helpers for rupee amounts."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce ``value`` to a Decimal quantized to paise (half-up)."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        # str() first so floats do not leak binary noise into the ledger
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Any, symbol: str = "Rs.") -> str:
    """Render an amount for ledger notes, dropping a zero fraction (Rs.300, Rs.12.50)."""
    amount = to_money(value)
    if amount == amount.to_integral_value():
        return f"{symbol}{amount.to_integral_value()}"
    return f"{symbol}{amount}"
