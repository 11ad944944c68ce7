"""Order item model (frozen receipt line)."""
from sqlalchemy import Column, Integer, Numeric, ForeignKey, JSON, CheckConstraint, event, inspect
from sqlalchemy.orm import relationship
from storefront.database import Base, IdType
from storefront.exceptions import ImmutableFieldError


class OrderItem(Base):
    """
    Order Item - permanent receipt of what was charged.

    price_at_purchase and quantity are frozen at creation, independent of
    later catalog price changes.
    """

    __tablename__ = 'order_item'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='order_item_quantity_positive'),
        CheckConstraint('price_at_purchase > 0', name='order_item_price_positive'),
        CheckConstraint(
            '(catalog_item_id IS NULL) <> (menu_item_id IS NULL)',
            name='order_item_one_product_ref'
        ),
        CheckConstraint(
            'NOT (variant_id IS NOT NULL AND combination_id IS NOT NULL)',
            name='order_item_single_refinement'
        ),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    order_id = Column(IdType, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    # Plain ids: the receipt must outlive catalog deletions
    catalog_item_id = Column(IdType, nullable=True)
    menu_item_id = Column(IdType, nullable=True)
    variant_id = Column(IdType, nullable=True)
    combination_id = Column(IdType, nullable=True)
    quantity = Column(Integer, nullable=False)
    price_at_purchase = Column(Numeric(10, 2), nullable=False)
    variant_metadata = Column(JSON, nullable=True)

    # Relationships
    order = relationship('Order', back_populates='items')

    @property
    def line_total(self):
        return self.price_at_purchase * self.quantity

    def to_dict(self):
        return {
            'id': self.id,
            'catalog_item_id': self.catalog_item_id,
            'menu_item_id': self.menu_item_id,
            'variant_id': self.variant_id,
            'combination_id': self.combination_id,
            'quantity': self.quantity,
            'price_at_purchase': str(self.price_at_purchase),
            'variant_metadata': self.variant_metadata,
        }

    def __repr__(self):
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, qty={self.quantity}, price={self.price_at_purchase})>"


FROZEN_FIELDS = ('quantity', 'price_at_purchase', 'variant_metadata')


@event.listens_for(OrderItem, 'before_update')
def _guard_frozen_fields(mapper, connection, target):
    state = inspect(target)
    for field in FROZEN_FIELDS:
        if state.attrs[field].history.has_changes():
            raise ImmutableFieldError('OrderItem', field)
