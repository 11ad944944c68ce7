"""Cart item model for persistent carts (signed-in or guest)."""
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class CartItem(Base):
    """
    Cart Item - one purchasable unit a customer intends to buy.

    Owned either by a signed-in user (user_id) or by an anonymous guest
    session (guest_session_id), never both. References exactly one product
    taxonomy and at most one refinement.
    """

    __tablename__ = 'cart_item'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='cart_item_quantity_positive'),
        CheckConstraint(
            '(catalog_item_id IS NULL) <> (menu_item_id IS NULL)',
            name='cart_item_one_product_ref'
        ),
        CheckConstraint(
            'NOT (variant_id IS NOT NULL AND combination_id IS NOT NULL)',
            name='cart_item_single_refinement'
        ),
        CheckConstraint(
            '(user_id IS NULL) <> (guest_session_id IS NULL)',
            name='cart_item_one_owner'
        ),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=True, index=True)
    guest_session_id = Column(String(128), nullable=True, index=True)

    catalog_item_id = Column(IdType, ForeignKey('catalog_item.id', ondelete='CASCADE'), nullable=True, index=True)
    menu_item_id = Column(IdType, ForeignKey('menu_item.id', ondelete='CASCADE'), nullable=True, index=True)
    variant_id = Column(IdType, ForeignKey('product_variant.id', ondelete='CASCADE'), nullable=True)
    combination_id = Column(IdType, ForeignKey('variant_combination.id', ondelete='CASCADE'), nullable=True)

    quantity = Column(Integer, nullable=False, default=1)
    # Display hint only; the order transaction re-reads the price of record
    unit_price = Column(Numeric(10, 2), nullable=True)
    variant_metadata = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    catalog_item = relationship('CatalogItem')
    menu_item = relationship('MenuItem')
    variant = relationship('ProductVariant')
    combination = relationship('VariantCombination')

    def __repr__(self):
        ref = f"menu_item_id={self.menu_item_id}" if self.menu_item_id else f"catalog_item_id={self.catalog_item_id}"
        return f"<CartItem(id={self.id}, {ref}, quantity={self.quantity})>"
