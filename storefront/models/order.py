"""Order model."""
import enum
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, ForeignKey, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class OrderStatus(str, enum.Enum):
    """Order lifecycle status."""
    PENDING = 'pending'
    PROCESSING = 'processing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


# Allowed forward moves; everything else is rejected
ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


class Order(Base):
    """
    Order - immutable server-priced record of a checkout.

    Only status changes after creation. order_total is frozen at creation
    as max(0, subtotal - discount_amount) and never recomputed from items.
    """

    __tablename__ = 'orders'
    __table_args__ = (
        CheckConstraint('subtotal >= 0', name='order_subtotal_non_negative'),
        CheckConstraint('discount_amount >= 0', name='order_discount_non_negative'),
        CheckConstraint('order_total >= 0', name='order_total_non_negative'),
        CheckConstraint(
            "user_id IS NOT NULL OR (guest_session_id IS NOT NULL AND guest_session_id <> '')",
            name='order_owner_present'
        ),
        CheckConstraint(
            "status IN ('pending', 'processing', 'shipped', 'delivered', 'cancelled')",
            name='order_status_valid'
        ),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=True, index=True)
    guest_session_id = Column(String(128), nullable=True, index=True)
    is_guest = Column(Boolean, nullable=False, default=False)

    customer_email = Column(String(255), nullable=False, index=True)
    customer_name = Column(String(255), nullable=False)
    shipping_address = Column(JSON, nullable=False)

    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_code_id = Column(IdType, ForeignKey('discount_code.id', ondelete='SET NULL'), nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    order_total = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')
    discount_code = relationship('DiscountCode')

    def to_dict(self, include_items=False):
        data = {
            'id': self.id,
            'status': self.status,
            'customer_email': self.customer_email,
            'customer_name': self.customer_name,
            'shipping_address': self.shipping_address,
            'is_guest': self.is_guest,
            'subtotal': str(self.subtotal),
            'discount_code_id': self.discount_code_id,
            'discount_amount': str(self.discount_amount),
            'order_total': str(self.order_total),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f"<Order(id={self.id}, total={self.order_total}, status={self.status})>"
