"""
Cart item resolver.

Normalizes heterogeneous cart rows (catalog items vs. menu items, each with
an optional variant or combination) into one line-item shape with a resolved
unit price. Pure transformation: the price of record is only re-read by the
order transaction.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Tuple, Union

from storefront.exceptions import CartValidationError
from storefront.services.pricing_service import parse_price, round_currency
from storefront.utils.dates import as_utc, utcnow

DEFAULT_SNAPSHOT_MAX_AGE = 300  # seconds


# =====================================================
# PRODUCT REFERENCES
# =====================================================

@dataclass(frozen=True)
class CatalogItemRef:
    id: int
    kind: ClassVar[str] = 'catalog_item'

    @property
    def label(self) -> str:
        return f'Catalog item {self.id}'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.kind, 'id': self.id}


@dataclass(frozen=True)
class MenuItemRef:
    id: int
    kind: ClassVar[str] = 'menu_item'

    @property
    def label(self) -> str:
        return f'Menu item {self.id}'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.kind, 'id': self.id}


@dataclass(frozen=True)
class VariantRef:
    id: int
    kind: ClassVar[str] = 'variant'

    @property
    def label(self) -> str:
        return f'Variant {self.id}'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.kind, 'id': self.id}


@dataclass(frozen=True)
class CombinationRef:
    id: int
    kind: ClassVar[str] = 'combination'

    @property
    def label(self) -> str:
        return f'Combination {self.id}'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.kind, 'id': self.id}


ProductRef = Union[CatalogItemRef, MenuItemRef]
Refinement = Union[VariantRef, CombinationRef]


@dataclass
class CartLine:
    """One resolved cart entry, ready for pricing or commit."""
    product_ref: ProductRef
    quantity: int
    unit_price: Decimal
    refinement: Optional[Refinement] = None
    variant_metadata: Optional[Dict[str, Any]] = None
    needs_revalidation: bool = False
    price_source: str = 'snapshot'
    cart_item_id: Optional[int] = None

    @property
    def line_total(self) -> Decimal:
        return round_currency(self.unit_price * self.quantity)

    @property
    def catalog_item_id(self) -> Optional[int]:
        return self.product_ref.id if isinstance(self.product_ref, CatalogItemRef) else None

    @property
    def menu_item_id(self) -> Optional[int]:
        return self.product_ref.id if isinstance(self.product_ref, MenuItemRef) else None

    @property
    def variant_id(self) -> Optional[int]:
        return self.refinement.id if isinstance(self.refinement, VariantRef) else None

    @property
    def combination_id(self) -> Optional[int]:
        return self.refinement.id if isinstance(self.refinement, CombinationRef) else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cart_item_id': self.cart_item_id,
            'product': self.product_ref.to_dict(),
            'refinement': self.refinement.to_dict() if self.refinement else None,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'line_total': str(self.line_total),
            'variant_metadata': self.variant_metadata,
            'needs_revalidation': self.needs_revalidation,
        }


# =====================================================
# PRICE FALLBACK CHAIN
# =====================================================

def _snapshot_price(raw: Dict[str, Any], now: datetime, max_age: int) -> Optional[Decimal]:
    """Joined product snapshot, only while it is fresh."""
    snapshot = raw.get('product') or raw.get('resolved_product')
    if not isinstance(snapshot, dict):
        return None
    fetched_at = as_utc(snapshot.get('fetched_at'))
    if fetched_at is None or (now - fetched_at).total_seconds() > max_age:
        return None
    price = parse_price(snapshot.get('price'))
    return price if price > 0 else None


def _stored_price(raw: Dict[str, Any], now: datetime, max_age: int) -> Optional[Decimal]:
    """Raw price captured on the cart line itself."""
    for key in ('unit_price', 'price', 'price_at_purchase'):
        if raw.get(key) is not None:
            price = parse_price(raw[key])
            return price if price > 0 else None
    return None


PRICE_SOURCES: Tuple[Tuple[str, Callable[[Dict[str, Any], datetime, int], Optional[Decimal]]], ...] = (
    ('snapshot', _snapshot_price),
    ('stored', _stored_price),
)


def resolve_unit_price(raw: Dict[str, Any], now: datetime, max_age: int) -> Tuple[Decimal, str, bool]:
    """
    Walk the fallback chain and return (price, source, needs_revalidation).

    joined snapshot -> stored line price -> zero, flagged for re-validation.
    """
    for source, resolver in PRICE_SOURCES:
        price = resolver(raw, now, max_age)
        if price is not None:
            return round_currency(price), source, False
    return Decimal('0.00'), 'unresolved', True


# =====================================================
# FIELD NORMALIZATION
# =====================================================

def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ''):
            return value
    return None


def _parse_id(value: Any, name: str, index: int) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise CartValidationError(f'{name} must be an integer id', index)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise CartValidationError(f'{name} must be an integer id', index)


def _parse_quantity(value: Any, index: int) -> int:
    if isinstance(value, bool) or value is None:
        raise CartValidationError('quantity must be a positive integer', index)
    try:
        quantity = int(value)
    except (TypeError, ValueError, OverflowError):
        raise CartValidationError('quantity must be a positive integer', index)
    if quantity != Decimal(str(value)) or quantity <= 0:
        raise CartValidationError('quantity must be a positive integer', index)
    return quantity


def normalize_variant_metadata(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Accept the shapes carts have historically stored variant details in."""
    metadata = _first(raw, 'variant_metadata', 'variantMetadata', 'variant_snapshot')
    if metadata is None and raw.get('variant_display'):
        return {'display': raw['variant_display']}
    if isinstance(metadata, str):
        try:
            parsed = json.loads(metadata)
        except ValueError:
            return {'display': metadata}
        return parsed if isinstance(parsed, dict) else {'display': metadata}
    if metadata is not None and not isinstance(metadata, dict):
        return {'display': str(metadata)}
    return metadata


def _product_ref(raw: Dict[str, Any], index: int) -> ProductRef:
    catalog_item_id = _parse_id(_first(raw, 'catalog_item_id', 'product_id'), 'catalog_item_id', index)
    menu_item_id = _parse_id(_first(raw, 'menu_item_id'), 'menu_item_id', index)

    if catalog_item_id is None and menu_item_id is None:
        raise CartValidationError('each item needs a catalog_item_id or a menu_item_id', index)
    if catalog_item_id is not None and menu_item_id is not None:
        raise CartValidationError('catalog_item_id and menu_item_id are mutually exclusive', index)

    if menu_item_id is not None:
        return MenuItemRef(menu_item_id)
    return CatalogItemRef(catalog_item_id)


def _refinement(raw: Dict[str, Any], index: int) -> Optional[Refinement]:
    variant_id = _parse_id(_first(raw, 'variant_id', 'variantId'), 'variant_id', index)
    combination_id = _parse_id(_first(raw, 'combination_id', 'combinationId'), 'combination_id', index)

    if variant_id is not None and combination_id is not None:
        raise CartValidationError('variant_id and combination_id are mutually exclusive', index)
    if variant_id is not None:
        return VariantRef(variant_id)
    if combination_id is not None:
        return CombinationRef(combination_id)
    return None


# =====================================================
# PUBLIC API
# =====================================================

def _default_max_age() -> int:
    from flask import current_app, has_app_context
    if has_app_context():
        return int(current_app.config.get('PRICE_SNAPSHOT_MAX_AGE', DEFAULT_SNAPSHOT_MAX_AGE))
    return DEFAULT_SNAPSHOT_MAX_AGE


def resolve_cart_line(raw: Dict[str, Any], index: int = 0, max_snapshot_age: Optional[int] = None,
                      now: Optional[datetime] = None) -> CartLine:
    """Resolve one raw cart row."""
    if not isinstance(raw, dict):
        raise CartValidationError('cart line must be an object', index)

    now = as_utc(now) or utcnow()
    max_age = _default_max_age() if max_snapshot_age is None else max_snapshot_age

    product_ref = _product_ref(raw, index)
    refinement = _refinement(raw, index)
    quantity = _parse_quantity(raw.get('quantity'), index)
    unit_price, source, needs_revalidation = resolve_unit_price(raw, now, max_age)

    return CartLine(
        product_ref=product_ref,
        quantity=quantity,
        unit_price=unit_price,
        refinement=refinement,
        variant_metadata=normalize_variant_metadata(raw),
        needs_revalidation=needs_revalidation,
        price_source=source,
        cart_item_id=raw.get('cart_item_id'),
    )


def resolve_cart_lines(raw_lines: Iterable[Dict[str, Any]], max_snapshot_age: Optional[int] = None,
                       now: Optional[datetime] = None) -> List[CartLine]:
    """
    Resolve every raw cart row into a CartLine.

    Raises CartValidationError for the first malformed row (its index is
    carried in the error payload).
    """
    now = as_utc(now) or utcnow()
    return [
        resolve_cart_line(raw, index, max_snapshot_age, now)
        for index, raw in enumerate(raw_lines or [])
    ]
