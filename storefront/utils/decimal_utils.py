# storefront/utils/decimal_utils.py
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    """Convert ints, floats, strings and Decimals to a Decimal without float noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid monetary value: {value!r}")


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def format_currency(value, symbol: str = "R$") -> str:
    amount = quantize_money(value)
    return f"{symbol} {amount:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
