"""
Catalog lookups used by the order transaction.

Reads the current availability and price of record for a product
reference. Always goes to the store; nothing here is cached.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from storefront.models import CatalogItem, MenuItem, ProductVariant, VariantCombination
from storefront.services.cart_resolver import CatalogItemRef, MenuItemRef, ProductRef


@dataclass(frozen=True)
class CatalogLookup:
    """Current state of a product in the catalog."""
    id: int
    name: str
    available: bool
    price: Decimal


def get_item(session, ref: ProductRef) -> Optional[CatalogLookup]:
    """Return the item's current availability and price, or None if it no longer exists."""
    if isinstance(ref, MenuItemRef):
        model = MenuItem
    elif isinstance(ref, CatalogItemRef):
        model = CatalogItem
    else:
        raise TypeError(f'Unsupported product reference: {ref!r}')

    item = session.query(model).filter(model.id == ref.id).first()
    if item is None:
        return None
    return CatalogLookup(
        id=item.id,
        name=item.name,
        available=bool(item.is_available),
        price=Decimal(item.price if item.price is not None else 0),
    )


def _refinement_state(session, model, refinement_id: int, item_id: int) -> Optional[bool]:
    row = session.query(model).filter(model.id == refinement_id).first()
    if row is None:
        return None
    return row.catalog_item_id == item_id and bool(row.is_available)


def variant_exists(session, variant_id: int, item_id: int) -> bool:
    """True when the variant exists, belongs to the item and is available."""
    return bool(_refinement_state(session, ProductVariant, variant_id, item_id))


def combination_exists(session, combination_id: int, item_id: int) -> bool:
    """True when the combination exists, belongs to the item and is available."""
    return bool(_refinement_state(session, VariantCombination, combination_id, item_id))


def refinement_owner(session, model, refinement_id: int) -> Optional[int]:
    """Catalog item id owning a variant/combination, or None if it is gone."""
    row = session.query(model.catalog_item_id).filter(model.id == refinement_id).first()
    return row[0] if row else None
