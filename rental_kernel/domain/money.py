"""Fixed-point money helpers.

Amounts are ``Decimal`` quantized to cents.  Floats are refused: a float
reaching a money path is a programming error, not a value to round.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Allocation coverage and balance comparisons care about cents, not fractions
MONETARY_TOLERANCE = Decimal("0.01")


def to_decimal(value: Decimal | str | int) -> Decimal:
    """Convert to Decimal without passing through binary floating point."""
    if isinstance(value, float):
        raise TypeError("Use Decimal or str for money, not float")
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary amount")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def to_money(value: Decimal | str | int) -> Decimal:
    """Quantize to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def floor_cents(value: Decimal) -> Decimal:
    """Truncate toward zero at cent precision."""
    return value.quantize(CENT, rounding=ROUND_DOWN)


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal = MONETARY_TOLERANCE) -> bool:
    return abs(a - b) <= tolerance
