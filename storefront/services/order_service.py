"""
Order service with transactional logic.

create_order() turns a resolved cart into an immutable, server-priced order:
every line is re-checked against the catalog, the order header and its items
are written in one transaction, and the customer's cart rows are removed in
that same transaction. Either everything is committed or nothing is.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from storefront.blueprints.metrics import order_failures_total, orders_created_total
from storefront.exceptions import (
    AvailabilityError, EmptyCartError, InvalidLineItemError, InvalidStatusTransitionError,
    MissingRequiredFieldError, NotFoundError, ProductUnavailableError, StorefrontError,
    TransactionFailure, ValidationError
)
from storefront.models import (
    CartItem, Order, OrderItem, OrderStatus, ORDER_STATUS_TRANSITIONS,
    ProductVariant, VariantCombination
)
from storefront.services import catalog_service
from storefront.services.cart_resolver import (
    CartLine, CatalogItemRef, CombinationRef, MenuItemRef, VariantRef, resolve_cart_lines
)
from storefront.services.pricing_service import parse_price, round_currency
from storefront.utils.dates import as_utc

logger = logging.getLogger(__name__)


@dataclass
class OrderRequest:
    """Everything create_order() needs; prices on the lines are ignored."""
    customer_email: str
    customer_name: str
    shipping_address: Optional[Dict[str, Any]]
    lines: Sequence[Any]
    user_id: Optional[str] = None
    guest_session_id: Optional[str] = None
    is_guest: Optional[bool] = None
    discount_code_id: Optional[int] = None
    discount_amount: Any = 0
    clear_cart: bool = False

    @property
    def guest(self) -> bool:
        if self.is_guest is None:
            return not self.user_id
        return bool(self.is_guest)


@dataclass
class OrderResult:
    order_id: Optional[int] = None
    subtotal: Optional[Decimal] = None
    order_total: Optional[Decimal] = None
    discount_amount: Decimal = Decimal('0.00')
    error: Optional[StorefrontError] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.order_id is not None


@dataclass
class _PricedLine:
    line: CartLine
    price: Decimal
    index: int = 0
    metadata: Optional[Dict[str, Any]] = field(default=None)


# =====================================================
# PRE-COMMIT VALIDATION
# =====================================================

def _require_text(value: Any, name: str) -> str:
    text = (value or '').strip() if isinstance(value, str) else ''
    if not text:
        raise MissingRequiredFieldError(name)
    return text


def _coerce_lines(lines: Sequence[Any]) -> List[CartLine]:
    """Accept resolved CartLines or raw rows; raw rows go through the resolver."""
    if not lines:
        raise EmptyCartError()
    resolved = []
    for index, line in enumerate(lines):
        if isinstance(line, CartLine):
            resolved.append(line)
        else:
            try:
                resolved.extend(resolve_cart_lines([line]))
            except InvalidLineItemError as e:
                raise InvalidLineItemError(e.reason, index)
    return resolved


def _check_line_shape(line: CartLine, index: int) -> None:
    if not isinstance(line.quantity, int) or isinstance(line.quantity, bool) or line.quantity <= 0:
        raise InvalidLineItemError('quantity must be a positive integer', index)
    if not isinstance(line.product_ref, (CatalogItemRef, MenuItemRef)):
        raise InvalidLineItemError('exactly one of catalog_item_id or menu_item_id is required', index)
    if line.refinement is not None and not isinstance(line.refinement, (VariantRef, CombinationRef)):
        raise InvalidLineItemError('variant_id and combination_id are mutually exclusive', index)


def _check_refinement(session, line: CartLine, index: int) -> None:
    refinement = line.refinement
    if refinement is None:
        return
    if isinstance(line.product_ref, MenuItemRef):
        raise InvalidLineItemError('menu items do not have variants or combinations', index)

    model = ProductVariant if isinstance(refinement, VariantRef) else VariantCombination
    owner_id = catalog_service.refinement_owner(session, model, refinement.id)
    if owner_id is None:
        raise ProductUnavailableError(refinement)
    if owner_id != line.product_ref.id:
        raise InvalidLineItemError(f'{refinement.label} does not belong to {line.product_ref.label}', index)

    if isinstance(refinement, VariantRef):
        available = catalog_service.variant_exists(session, refinement.id, owner_id)
    else:
        available = catalog_service.combination_exists(session, refinement.id, owner_id)
    if not available:
        raise ProductUnavailableError(refinement)


def _price_lines(session, lines: List[CartLine]) -> List[_PricedLine]:
    """Re-read every line from the catalog and attach the price of record."""
    priced = []
    for index, line in enumerate(lines):
        _check_line_shape(line, index)

        item = catalog_service.get_item(session, line.product_ref)
        if item is None or not item.available:
            raise ProductUnavailableError(line.product_ref)

        _check_refinement(session, line, index)

        price = round_currency(parse_price(item.price))
        if price <= 0:
            raise InvalidLineItemError(f'{line.product_ref.label} has no valid price', index)

        priced.append(_PricedLine(line=line, price=price, index=index, metadata=line.variant_metadata))
    return priced


def _validate_request(request: OrderRequest) -> Tuple[str, str, List[CartLine]]:
    email = _require_text(request.customer_email, 'customer_email')
    name = _require_text(request.customer_name, 'customer_name')
    if request.shipping_address is None:
        raise MissingRequiredFieldError('shipping_address')

    lines = _coerce_lines(request.lines)

    if request.guest:
        _require_text(request.guest_session_id, 'guest_session_id')
    elif not request.user_id:
        raise MissingRequiredFieldError('user_id')

    return email, name, lines


# =====================================================
# ORDER CREATION
# =====================================================

def _clear_owner_cart(session, request: OrderRequest) -> int:
    query = session.query(CartItem)
    if request.user_id:
        query = query.filter(CartItem.user_id == str(request.user_id))
    elif request.guest_session_id:
        query = query.filter(CartItem.guest_session_id == request.guest_session_id)
    else:
        return 0
    return query.delete(synchronize_session=False)


def create_order(session, request: OrderRequest) -> OrderResult:
    """
    Create an order and its items in a single transaction.

    Prices are always re-read from the catalog; whatever price the lines carry
    is ignored. Returns an OrderResult whose error is set (and nothing is
    written) when validation, availability or storage fails.
    """
    try:
        email, name, lines = _validate_request(request)

        # 1. Re-check availability and read current prices
        priced = _price_lines(session, lines)

        # 2. Server-side totals
        subtotal = round_currency(sum((p.price * p.line.quantity for p in priced), Decimal('0')))
        discount_amount = round_currency(max(parse_price(request.discount_amount), Decimal('0')))
        order_total = round_currency(max(subtotal - discount_amount, Decimal('0')))

        # 3. Order header
        order = Order(
            user_id=str(request.user_id) if request.user_id else None,
            guest_session_id=request.guest_session_id or None,
            is_guest=request.guest,
            customer_email=email,
            customer_name=name,
            shipping_address=request.shipping_address,
            subtotal=subtotal,
            discount_code_id=request.discount_code_id,
            discount_amount=discount_amount,
            order_total=order_total,
            status=OrderStatus.PENDING.value,
        )
        session.add(order)
        session.flush()

        # 4. Frozen receipt lines
        for p in priced:
            session.add(OrderItem(
                order_id=order.id,
                catalog_item_id=p.line.catalog_item_id,
                menu_item_id=p.line.menu_item_id,
                variant_id=p.line.variant_id,
                combination_id=p.line.combination_id,
                quantity=p.line.quantity,
                price_at_purchase=p.price,
                variant_metadata=p.metadata,
            ))

        # 5. The cart ceases to exist with its order
        if request.clear_cart:
            removed = _clear_owner_cart(session, request)
            logger.debug(f"[ORDER] Removed {removed} cart rows for order {order.id}")

        session.commit()

    except (ValidationError, AvailabilityError) as e:
        session.rollback()
        logger.info(f"[ORDER] Order rejected before commit: {e.message}")
        order_failures_total.labels(code=e.code).inc()
        return OrderResult(error=e)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[ORDER] Transaction failed, nothing was written: {e}")
        failure = TransactionFailure(payload={'detail': e.__class__.__name__})
        order_failures_total.labels(code=failure.code).inc()
        return OrderResult(error=failure)
    except Exception:
        session.rollback()
        order_failures_total.labels(code='internal_error').inc()
        raise

    orders_created_total.inc()
    logger.info(f"[ORDER] Created order {order.id}: subtotal={subtotal} discount={discount_amount} total={order_total}")
    return OrderResult(
        order_id=order.id,
        subtotal=subtotal,
        order_total=order_total,
        discount_amount=discount_amount,
    )


# =====================================================
# ORDER QUERIES
# =====================================================

def get_user_orders(session, user_id: str, status: Optional[str] = None,
                    limit: Optional[int] = None) -> List[Order]:
    """Orders of a signed-in customer, newest first."""
    if not user_id:
        raise MissingRequiredFieldError('user_id')
    query = session.query(Order).filter(Order.user_id == str(user_id))
    if status:
        query = query.filter(Order.status == status)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_guest_orders(session, email: str, guest_session_id: str) -> List[Order]:
    """Guest orders are only visible to the session that placed them."""
    email = _require_text(email, 'customer_email')
    guest_session_id = _require_text(guest_session_id, 'guest_session_id')
    return session.query(Order).filter(
        Order.is_guest.is_(True),
        Order.customer_email == email,
        Order.guest_session_id == guest_session_id
    ).order_by(Order.created_at.desc(), Order.id.desc()).all()


def get_order_by_id(session, order_id: int, user_id: Optional[str] = None,
                    guest_session_id: Optional[str] = None) -> Order:
    """
    Fetch one order. When an owner is given, orders belonging to someone
    else are reported as not found.
    """
    order = session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f'Order {order_id} not found')

    if user_id is not None or guest_session_id is not None:
        owns = (
            (user_id is not None and order.user_id == str(user_id)) or
            (guest_session_id is not None and order.guest_session_id == guest_session_id)
        )
        if not owns:
            raise NotFoundError(f'Order {order_id} not found')
    return order


def list_orders(session, status: Optional[str] = None, user_id: Optional[str] = None,
                start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                limit: int = 50, offset: int = 0) -> Tuple[List[Order], int]:
    """Admin listing with filters. Returns (orders, total matching count)."""
    query = session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if user_id:
        query = query.filter(Order.user_id == str(user_id))
    if start_date:
        query = query.filter(Order.created_at >= as_utc(start_date))
    if end_date:
        query = query.filter(Order.created_at <= as_utc(end_date))

    total = query.count()
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()
    return orders, total


def update_order_status(session, order_id: int, new_status: str) -> Order:
    """Move an order along its lifecycle; only status ever changes after creation."""
    try:
        requested = OrderStatus(new_status)
    except ValueError:
        raise ValidationError(f'Unknown order status "{new_status}"', payload={'status': new_status})

    try:
        order = get_order_by_id(session, order_id)
        current = OrderStatus(order.status)
        if requested not in ORDER_STATUS_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(current.value, requested.value)

        order.status = requested.value
        session.commit()
        logger.info(f"[ORDER] Order {order_id} moved {current.value} -> {requested.value}")
        return order

    except (NotFoundError, InvalidStatusTransitionError) as e:
        session.rollback()
        raise e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[ORDER] Could not update status of order {order_id}: {e}")
        raise TransactionFailure('Could not update the order status. Please try again.')
