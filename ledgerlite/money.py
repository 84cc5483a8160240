from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value, default=None):
    """
    Convert user input or a column value to a Decimal rounded to cents.

    - Accepts None, int, float, str, Decimal
    - Returns ``default`` for None/empty input and raises ValueError when the
      value is not numeric
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is None:
            raise ValueError("Amount is required")
        return Decimal(default).quantize(CENT, rounding=ROUND_HALF_UP)
    if isinstance(value, bool):
        raise ValueError("Amount must be a number")
    try:
        amount = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation:
        raise ValueError("Amount must be a number")
    if not amount.is_finite():
        raise ValueError("Amount must be a number")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money(value):
    """Normalize an amount to a 2-decimal float for JSON responses."""
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def percentage_of(amount, rate):
    """``amount * rate / 100`` rounded half up to cents."""
    return (to_decimal(amount) * Decimal(str(rate)) / Decimal("100")).quantize(
        CENT, rounding=ROUND_HALF_UP
    )
