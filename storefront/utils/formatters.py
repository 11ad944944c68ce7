"""
Money formatting helpers.

Used by the JSON responses, the CLI and the discount display text.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union, Optional

CURRENCY_SYMBOLS = {
    'BDT': '৳',
    'USD': '$',
    'EUR': '€',
    'GBP': '£',
    'INR': '₹',
}

Number = Union[int, float, Decimal, str, None]


def _to_decimal(value: Number) -> Optional[Decimal]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        num = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return None
    return num if num.is_finite() else None


def format_price(value: Number) -> str:
    """
    Two-decimal price with thousands separators.

    Examples:
        format_price(1500) -> "1,500.00"
        format_price("12.5") -> "12.50"
        format_price(None) -> "0.00"
    """
    num = _to_decimal(value) or Decimal('0')
    num = num.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    return f"{num:,.2f}"


def currency_symbol(currency: Optional[str] = None) -> str:
    """Symbol for an ISO currency code; unknown codes render as the code itself."""
    code = (currency or 'USD').upper()
    return CURRENCY_SYMBOLS.get(code, code)


def format_price_with_currency(value: Number, currency: Optional[str] = None) -> str:
    """format_price() prefixed with the currency symbol, e.g. "$12.50"."""
    amount = format_price(value)
    if amount.startswith('-'):
        return f"-{currency_symbol(currency)}{amount[1:]}"
    return f"{currency_symbol(currency)}{amount}"


def format_number(value: Number) -> str:
    """Plain number without trailing zeros: 10.00 -> "10", 12.50 -> "12.5"."""
    num = _to_decimal(value)
    if num is None:
        return "0"
    if num == num.to_integral_value():
        return str(num.quantize(Decimal('1')))
    return format(num.normalize(), 'f')
