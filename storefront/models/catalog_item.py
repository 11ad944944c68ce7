"""Catalog item model (legacy product taxonomy)."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class CatalogItem(Base):
    """
    Catalog item - the legacy product taxonomy.

    Catalog items are the only products that carry variants and
    multi-attribute combinations.
    """

    __tablename__ = 'catalog_item'
    __table_args__ = (
        CheckConstraint('price >= 0', name='catalog_item_price_non_negative'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True, server_default='1')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    variants = relationship('ProductVariant', back_populates='catalog_item', cascade='all, delete-orphan')
    combinations = relationship('VariantCombination', back_populates='catalog_item', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<CatalogItem(id={self.id}, name='{self.name}', price={self.price})>"
