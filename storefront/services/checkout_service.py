"""
Checkout orchestration.

place_order() runs the whole checkout sequence: resolve the cart, price it,
optionally validate a discount code, commit the order, then record the
discount usage. Payment happens afterwards, out of band, against the
returned order id.
"""
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from storefront.exceptions import (
    AvailabilityError, DiscountError, EmptyCartError, StorefrontError, UsageRaceError, ValidationError
)
from storefront.services import cart_service, catalog_service, discount_service, order_service
from storefront.services.cart_resolver import CartLine, resolve_cart_lines
from storefront.services.checkout_validation import normalize_address, validate_email
from storefront.services.pricing_service import Totals, compute_totals

logger = logging.getLogger(__name__)


@dataclass
class CheckoutRequest:
    shipping_address: Optional[Dict[str, Any]]
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    user_id: Optional[str] = None
    guest_session_id: Optional[str] = None
    discount_code: Optional[str] = None
    # Explicit lines; when omitted the owner's persisted cart is used
    lines: Optional[Sequence[Any]] = None

    @property
    def customer_key(self) -> Optional[str]:
        """Identity used for one-per-customer discount bookkeeping."""
        return str(self.user_id) if self.user_id else self.guest_session_id


@dataclass
class CheckoutResult:
    order_id: Optional[int] = None
    totals: Optional[Totals] = None
    order_total: Optional[Decimal] = None
    discount: Optional[discount_service.DiscountValidation] = None
    error: Optional[StorefrontError] = None
    discount_error: Optional[DiscountError] = None
    warnings: List[StorefrontError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None and self.order_id is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return self.error.to_dict()
        data = {
            'status': 'success',
            'order_id': self.order_id,
            'order_total': str(self.order_total),
            'totals': self.totals.to_dict() if self.totals else None,
            'discount': self.discount.to_dict() if self.discount else None,
        }
        if self.discount_error is not None:
            data['discount_error'] = self.discount_error.to_dict()
        if self.warnings:
            data['warnings'] = [w.to_dict() for w in self.warnings]
        return data


def _load_lines(session, request: CheckoutRequest) -> List[CartLine]:
    if request.lines is not None:
        lines = resolve_cart_lines(request.lines)
    else:
        owner = cart_service.CartOwner(user_id=request.user_id, guest_session_id=request.guest_session_id)
        lines = cart_service.get_cart_lines(session, owner)
    if not lines:
        raise EmptyCartError()
    return lines


def _price_from_catalog(session, lines: Sequence[CartLine]) -> List[CartLine]:
    """
    Replace each line's price with the catalog price of record.

    Discounts are sized against these prices, never against what the client
    sent. Lines whose item is gone keep their price; create_order rejects them.
    """
    repriced = []
    for line in lines:
        item = catalog_service.get_item(session, line.product_ref)
        if item is None:
            repriced.append(line)
            continue
        if item.price != line.unit_price:
            logger.info(f"[CHECKOUT] {line.product_ref.label}: client price {line.unit_price} "
                        f"replaced by catalog price {item.price}")
        repriced.append(replace(line, unit_price=item.price, price_source='catalog', needs_revalidation=False))
    return repriced


def preview_totals(session, lines: Sequence[CartLine], discount_code: Optional[str] = None,
                   customer_key: Optional[str] = None):
    """Totals for a cart, with an optional discount applied. Writes nothing."""
    totals = compute_totals(lines)
    validation = None
    if discount_code:
        validation = discount_service.validate_discount_code(session, discount_code, customer_key, totals.subtotal)
        if validation.valid:
            totals = compute_totals(lines, validation.amount)
    return totals, validation


def place_order(session, request: CheckoutRequest) -> CheckoutResult:
    """
    Run checkout end to end.

    Input and cart problems, unavailable products and storage failures
    come back as CheckoutResult.error with nothing written and the cart left
    as it was. A rejected discount code never blocks the order; it is
    reported in discount_error. A discount usage race after commit is
    reported as a warning on an otherwise successful result.
    """
    # 1. Inputs and cart snapshot (no transaction yet)
    try:
        email = validate_email(request.customer_email)
        address = normalize_address(request.shipping_address)
        lines = _price_from_catalog(session, _load_lines(session, request))
        if request.user_id is None and not request.guest_session_id:
            raise ValidationError('A signed-in user or a guest session is required to check out')
    except (ValidationError, AvailabilityError) as e:
        logger.info(f"[CHECKOUT] Checkout blocked: {e.message}")
        return CheckoutResult(error=e)

    # 2. Price it and try the discount
    totals, validation = preview_totals(session, lines, request.discount_code, request.customer_key)
    discount_error = validation.to_error() if validation is not None else None
    discount_amount = validation.amount if validation is not None and validation.valid else Decimal('0')

    # 3. Commit the order
    result = order_service.create_order(session, order_service.OrderRequest(
        customer_email=email,
        customer_name=(request.customer_name or address.get('full_name') or '').strip(),
        shipping_address=address,
        lines=lines,
        user_id=request.user_id,
        guest_session_id=request.guest_session_id,
        is_guest=not request.user_id,
        discount_code_id=validation.discount_code_id if discount_amount > 0 else None,
        discount_amount=discount_amount,
        clear_cart=request.lines is None,
    ))
    if not result.success:
        return CheckoutResult(error=result.error, totals=totals, discount=validation,
                              discount_error=discount_error)

    checkout = CheckoutResult(
        order_id=result.order_id,
        order_total=result.order_total,
        totals=totals,
        discount=validation,
        discount_error=discount_error,
    )

    # 4. Discount bookkeeping; never undoes the order
    if discount_amount > 0:
        usage = discount_service.record_discount_usage(
            session, validation.discount_code_id, request.customer_key,
            result.order_id, result.discount_amount, result.subtotal
        )
        race = usage.to_error()
        if isinstance(race, UsageRaceError):
            logger.warning(f"[CHECKOUT] Order {result.order_id} kept its discount despite usage race: {race.message}")
            checkout.warnings.append(race)
        elif usage.warning:
            logger.warning(f"[CHECKOUT] Order {result.order_id}: {usage.warning}")

    logger.info(f"[CHECKOUT] Order {result.order_id} placed for {email}")
    return checkout
