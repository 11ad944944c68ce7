"""Product variant model (single-attribute choice)."""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class ProductVariant(Base):
    """Product variant - one value of one attribute (e.g. size=L)."""

    __tablename__ = 'product_variant'

    id = Column(IdType, primary_key=True, autoincrement=True)
    catalog_item_id = Column(IdType, ForeignKey('catalog_item.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_type = Column(String(50), nullable=False)
    variant_value = Column(String(100), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True, server_default='1')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    catalog_item = relationship('CatalogItem', back_populates='variants')

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, {self.variant_type}={self.variant_value})>"
