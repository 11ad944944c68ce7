"""Cart Service - persistent cart operations for signed-in users and guests."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.exceptions import (
    InvalidLineItemError, MissingRequiredFieldError, NotFoundError, ProductUnavailableError,
    StorefrontError, TransactionFailure
)
from storefront.models import CartItem
from storefront.services import catalog_service
from storefront.services.cart_resolver import (
    CartLine, VariantRef, MenuItemRef, resolve_cart_line, resolve_cart_lines
)
from storefront.utils.dates import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartOwner:
    """Whose cart: a signed-in user id, or else an anonymous guest session id."""
    user_id: Optional[str] = None
    guest_session_id: Optional[str] = None

    def __post_init__(self):
        if not self.user_id and not self.guest_session_id:
            raise MissingRequiredFieldError('user_id or guest_session_id')

    @property
    def key(self) -> str:
        return str(self.user_id) if self.user_id else self.guest_session_id

    @property
    def is_guest(self) -> bool:
        return not self.user_id

    def columns(self) -> Dict[str, Optional[str]]:
        if self.user_id:
            return {'user_id': str(self.user_id), 'guest_session_id': None}
        return {'user_id': None, 'guest_session_id': self.guest_session_id}

    def filter(self, query):
        if self.user_id:
            return query.filter(CartItem.user_id == str(self.user_id))
        return query.filter(CartItem.guest_session_id == self.guest_session_id)


def _owner_query(session: Session, owner: CartOwner):
    return owner.filter(session.query(CartItem))


def find_existing_line(session: Session, owner: CartOwner, line: CartLine) -> Optional[CartItem]:
    """Same owner, same product and same refinement means the same cart line."""
    return _owner_query(session, owner).filter(
        CartItem.catalog_item_id == line.catalog_item_id if line.catalog_item_id else CartItem.catalog_item_id.is_(None),
        CartItem.menu_item_id == line.menu_item_id if line.menu_item_id else CartItem.menu_item_id.is_(None),
        CartItem.variant_id == line.variant_id if line.variant_id else CartItem.variant_id.is_(None),
        CartItem.combination_id == line.combination_id if line.combination_id else CartItem.combination_id.is_(None),
    ).first()


def _check_purchasable(session: Session, line: CartLine):
    item = catalog_service.get_item(session, line.product_ref)
    if item is None or not item.available:
        raise ProductUnavailableError(line.product_ref)

    refinement = line.refinement
    if refinement is not None:
        if isinstance(line.product_ref, MenuItemRef):
            raise InvalidLineItemError('menu items do not have variants or combinations')
        if isinstance(refinement, VariantRef):
            ok = catalog_service.variant_exists(session, refinement.id, item.id)
        else:
            ok = catalog_service.combination_exists(session, refinement.id, item.id)
        if not ok:
            raise ProductUnavailableError(refinement)
    return item


def add_to_cart(session: Session, owner: CartOwner, item: Dict[str, Any]) -> CartItem:
    """
    Add a product to the cart, or bump the quantity of a matching line.

    item holds catalog_item_id or menu_item_id, optional variant_id or
    combination_id, quantity (default 1) and variant_metadata.
    """
    raw = dict(item)
    raw.setdefault('quantity', 1)
    raw.pop('price', None)
    raw.pop('unit_price', None)
    line = resolve_cart_line(raw)

    try:
        product = _check_purchasable(session, line)

        cart_item = find_existing_line(session, owner, line)
        if cart_item:
            cart_item.quantity = cart_item.quantity + line.quantity
            cart_item.unit_price = product.price
            if line.variant_metadata is not None:
                cart_item.variant_metadata = line.variant_metadata
        else:
            cart_item = CartItem(
                catalog_item_id=line.catalog_item_id,
                menu_item_id=line.menu_item_id,
                variant_id=line.variant_id,
                combination_id=line.combination_id,
                quantity=line.quantity,
                unit_price=product.price,
                variant_metadata=line.variant_metadata,
                **owner.columns()
            )
            session.add(cart_item)

        session.commit()
        logger.info(f"[CART] {owner.key} added {line.product_ref.label} x{line.quantity}")
        return cart_item

    except StorefrontError as e:
        session.rollback()
        raise e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[CART] Could not add to cart for {owner.key}: {e}")
        raise TransactionFailure('Could not update your cart. Please try again.')


def _get_owned_line(session: Session, owner: CartOwner, cart_item_id: int) -> CartItem:
    cart_item = _owner_query(session, owner).filter(CartItem.id == cart_item_id).first()
    if not cart_item:
        raise NotFoundError('Item is not in the cart.')
    return cart_item


def update_quantity(session: Session, owner: CartOwner, cart_item_id: int, quantity: int) -> Optional[CartItem]:
    """Set a line's quantity; zero or less removes the line."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidLineItemError('quantity must be an integer')

    try:
        cart_item = _get_owned_line(session, owner, cart_item_id)
        if quantity <= 0:
            session.delete(cart_item)
            cart_item = None
        else:
            cart_item.quantity = quantity
        session.commit()
        return cart_item

    except NotFoundError as e:
        session.rollback()
        raise e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[CART] Could not update cart line {cart_item_id}: {e}")
        raise TransactionFailure('Could not update your cart. Please try again.')


def remove_from_cart(session: Session, owner: CartOwner, cart_item_id: int) -> None:
    """Remove one line from the cart."""
    update_quantity(session, owner, cart_item_id, 0)


def clear_cart(session: Session, owner: CartOwner) -> int:
    """Remove every line of the owner's cart. Returns the number removed."""
    try:
        removed = _owner_query(session, owner).delete(synchronize_session=False)
        session.commit()
        return removed
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[CART] Could not clear cart for {owner.key}: {e}")
        raise TransactionFailure('Could not update your cart. Please try again.')


def get_cart_items(session: Session, owner: CartOwner) -> List[CartItem]:
    return _owner_query(session, owner).order_by(CartItem.created_at, CartItem.id).all()


def get_cart_count(session: Session, owner: CartOwner) -> int:
    """Number of distinct lines."""
    return _owner_query(session, owner).count()


def get_cart_total_quantity(session: Session, owner: CartOwner) -> int:
    return sum(item.quantity for item in get_cart_items(session, owner))


# =====================================================
# SNAPSHOT FOR CHECKOUT
# =====================================================

def _product_snapshot(cart_item: CartItem, fetched_at) -> Optional[Dict[str, Any]]:
    product = cart_item.menu_item if cart_item.menu_item_id else cart_item.catalog_item
    if product is None:
        return None
    return {
        'id': product.id,
        'name': product.name,
        'price': product.price,
        'is_available': product.is_available,
        'fetched_at': fetched_at,
    }


def _variant_display(cart_item: CartItem) -> Optional[str]:
    if cart_item.variant is not None:
        return f'{cart_item.variant.variant_type}: {cart_item.variant.variant_value}'
    if cart_item.combination is not None and cart_item.combination.variant_values:
        return ', '.join(f'{k}: {v}' for k, v in sorted(cart_item.combination.variant_values.items()))
    return None


def cart_rows(session: Session, owner: CartOwner) -> List[Dict[str, Any]]:
    """The owner's cart as raw rows (with a joined product snapshot) for the resolver."""
    fetched_at = utcnow()
    rows = []
    for cart_item in get_cart_items(session, owner):
        rows.append({
            'cart_item_id': cart_item.id,
            'catalog_item_id': cart_item.catalog_item_id,
            'menu_item_id': cart_item.menu_item_id,
            'variant_id': cart_item.variant_id,
            'combination_id': cart_item.combination_id,
            'quantity': cart_item.quantity,
            'unit_price': cart_item.unit_price,
            'variant_metadata': cart_item.variant_metadata,
            'variant_display': _variant_display(cart_item),
            'product': _product_snapshot(cart_item, fetched_at),
        })
    return rows


def get_cart_lines(session: Session, owner: CartOwner) -> List[CartLine]:
    """Resolved, priced snapshot of the owner's cart."""
    return resolve_cart_lines(cart_rows(session, owner))


# =====================================================
# SIGN-IN MERGE
# =====================================================

def merge_guest_cart(session: Session, guest_session_id: str, user_id: str) -> int:
    """
    Move a guest cart into a user's cart when the guest signs in.

    Lines the user already has are summed. Returns the number of guest lines merged.
    """
    guest = CartOwner(guest_session_id=guest_session_id)
    user = CartOwner(user_id=user_id)

    try:
        guest_items = get_cart_items(session, guest)
        for guest_item in guest_items:
            line = resolve_cart_line({
                'catalog_item_id': guest_item.catalog_item_id,
                'menu_item_id': guest_item.menu_item_id,
                'variant_id': guest_item.variant_id,
                'combination_id': guest_item.combination_id,
                'quantity': guest_item.quantity,
            })
            existing = find_existing_line(session, user, line)
            if existing:
                existing.quantity = existing.quantity + guest_item.quantity
                session.delete(guest_item)
            else:
                guest_item.user_id = str(user_id)
                guest_item.guest_session_id = None

        session.commit()
        if guest_items:
            logger.info(f"[CART] Merged {len(guest_items)} guest lines into cart of user {user_id}")
        return len(guest_items)

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[CART] Could not merge guest cart into user {user_id}: {e}")
        raise TransactionFailure('Could not merge your cart. Please try again.')
