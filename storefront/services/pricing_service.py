"""
Checkout price calculator.

Pure functions turning a priced cart snapshot into subtotal, shipping, tax
and grand total. No I/O and no hidden state: every result can be re-derived
from the inputs. Final currency amounts are rounded to 2 places.
"""
from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional

CENTS = Decimal('0.01')
ZERO = Decimal('0.00')

DEFAULT_SHIPPING_THRESHOLD = Decimal('50.00')
DEFAULT_SHIPPING_FEE = Decimal('5.00')
DEFAULT_TAX_RATE = Decimal('0.088')


def parse_price(value: Any) -> Decimal:
    """
    Safely parse a price coming from the database or the client.

    Accepts Decimal, int, float and numeric strings. Anything else
    (None, '', 'abc', NaN, infinities, booleans) parses to 0.
    """
    if value is None or isinstance(value, bool):
        return Decimal('0')
    try:
        if isinstance(value, Decimal):
            parsed = value
        elif isinstance(value, (int, float)):
            parsed = Decimal(str(value))
        elif isinstance(value, str):
            parsed = Decimal(value.strip())
        else:
            return Decimal('0')
    except (InvalidOperation, ValueError):
        return Decimal('0')
    if not parsed.is_finite():
        return Decimal('0')
    return parsed


def round_currency(amount: Decimal) -> Decimal:
    """Round a currency amount to cents (half up)."""
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingPolicy:
    """Shipping and tax constants; configuration, not code."""
    shipping_threshold: Decimal = DEFAULT_SHIPPING_THRESHOLD
    shipping_fee: Decimal = DEFAULT_SHIPPING_FEE
    tax_rate: Decimal = DEFAULT_TAX_RATE

    @classmethod
    def from_config(cls, config) -> 'PricingPolicy':
        return cls(
            shipping_threshold=parse_price(config.get('SHIPPING_THRESHOLD', DEFAULT_SHIPPING_THRESHOLD)),
            shipping_fee=parse_price(config.get('SHIPPING_FEE', DEFAULT_SHIPPING_FEE)),
            tax_rate=parse_price(config.get('TAX_RATE', DEFAULT_TAX_RATE)),
        )


def current_policy() -> PricingPolicy:
    """Policy from the active Flask app, or the defaults outside one."""
    from flask import current_app, has_app_context
    if has_app_context():
        return PricingPolicy.from_config(current_app.config)
    return PricingPolicy()


@dataclass(frozen=True)
class Totals:
    """Derived checkout totals."""
    item_count: int
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    discount: Decimal
    grand_total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in asdict(self).items()}


def _field(line: Any, name: str, default: Any = None) -> Any:
    if isinstance(line, dict):
        return line.get(name, default)
    return getattr(line, name, default)


def total_item_count(lines: Iterable[Any]) -> int:
    """Sum of quantities."""
    return sum(int(_field(line, 'quantity', 0) or 0) for line in lines)


def calculate_subtotal(lines: Iterable[Any]) -> Decimal:
    """Sum of unit_price x quantity; unparsable prices count as zero."""
    subtotal = Decimal('0')
    for line in lines:
        price = _field(line, 'unit_price')
        if price is None:
            price = _field(line, 'price')
        subtotal += parse_price(price) * int(_field(line, 'quantity', 0) or 0)
    return round_currency(subtotal)


def calculate_shipping(subtotal: Decimal, policy: Optional[PricingPolicy] = None) -> Decimal:
    """Free above the threshold, flat fee otherwise."""
    policy = policy or current_policy()
    if parse_price(subtotal) > policy.shipping_threshold:
        return ZERO
    return round_currency(policy.shipping_fee)


def calculate_tax(subtotal: Decimal, policy: Optional[PricingPolicy] = None) -> Decimal:
    """Tax on the subtotal only; shipping is not part of the taxable base."""
    policy = policy or current_policy()
    return round_currency(parse_price(subtotal) * policy.tax_rate)


def calculate_grand_total(subtotal: Decimal, shipping: Decimal, tax: Decimal, discount: Decimal) -> Decimal:
    """subtotal + shipping + tax - discount, never below zero."""
    total = parse_price(subtotal) + parse_price(shipping) + parse_price(tax) - parse_price(discount)
    return round_currency(max(total, Decimal('0')))


def compute_totals(lines: Iterable[Any], discount_amount: Any = 0, policy: Optional[PricingPolicy] = None) -> Totals:
    """Compute every checkout total for a set of priced lines."""
    policy = policy or current_policy()
    lines = list(lines)

    subtotal = calculate_subtotal(lines)
    shipping = calculate_shipping(subtotal, policy)
    tax = calculate_tax(subtotal, policy)
    discount = round_currency(max(parse_price(discount_amount), Decimal('0')))

    return Totals(
        item_count=total_item_count(lines),
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        discount=discount,
        grand_total=calculate_grand_total(subtotal, shipping, tax, discount),
    )
