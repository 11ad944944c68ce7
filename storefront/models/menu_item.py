"""Menu item model (current product taxonomy)."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, Text, CheckConstraint
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class MenuItem(Base):
    """Menu item - a dish on the current menu."""

    __tablename__ = 'menu_item'
    __table_args__ = (
        CheckConstraint('price >= 0', name='menu_item_price_non_negative'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True, server_default='1')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<MenuItem(id={self.id}, name='{self.name}', price={self.price})>"
