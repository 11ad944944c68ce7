"""Models package - exports all SQLAlchemy models."""
# Catalog (source of truth for availability and price)
from storefront.models.catalog_item import CatalogItem
from storefront.models.menu_item import MenuItem
from storefront.models.product_variant import ProductVariant
from storefront.models.variant_combination import VariantCombination

# Cart
from storefront.models.cart_item import CartItem

# Discounts
from storefront.models.discount_code import DiscountCode, DiscountType, DiscountReason
from storefront.models.discount_usage import DiscountUsage

# Orders
from storefront.models.order import Order, OrderStatus, ORDER_STATUS_TRANSITIONS
from storefront.models.order_item import OrderItem

__all__ = [
    'CatalogItem', 'MenuItem', 'ProductVariant', 'VariantCombination',
    'CartItem',
    'DiscountCode', 'DiscountType', 'DiscountReason', 'DiscountUsage',
    'Order', 'OrderStatus', 'ORDER_STATUS_TRANSITIONS', 'OrderItem',
]
