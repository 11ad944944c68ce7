"""Discount usage model (join between a code, a customer and an order)."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class DiscountUsage(Base):
    """
    Discount Usage - durable record that a customer consumed a code.

    user_id is the customer identity key: the signed-in user id, or the
    guest session id for guest checkouts. The partial unique index is what
    actually enforces one-per-customer; one_per_customer is copied from the
    code when the row is written.
    """

    __tablename__ = 'discount_usage'
    __table_args__ = (
        Index(
            'uq_discount_usage_code_customer',
            'discount_code_id', 'user_id',
            unique=True,
            postgresql_where=text('one_per_customer'),
            sqlite_where=text('one_per_customer = 1'),
        ),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    discount_code_id = Column(IdType, ForeignKey('discount_code.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    order_id = Column(IdType, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    discount_amount = Column(Numeric(10, 2), nullable=False)
    order_total = Column(Numeric(10, 2), nullable=True)
    one_per_customer = Column(Boolean, nullable=False, default=True)
    used_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    discount_code = relationship('DiscountCode', back_populates='usages')
    order = relationship('Order')

    def __repr__(self):
        return f"<DiscountUsage(id={self.id}, code_id={self.discount_code_id}, user_id='{self.user_id}', order_id={self.order_id})>"
