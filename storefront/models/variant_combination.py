"""Variant combination model (multi-attribute choice)."""
from sqlalchemy import Column, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class VariantCombination(Base):
    """
    Variant combination - a concrete pick across several attributes.

    variant_values holds the attribute map, e.g. {"size": "L", "color": "red"}.
    """

    __tablename__ = 'variant_combination'

    id = Column(IdType, primary_key=True, autoincrement=True)
    catalog_item_id = Column(IdType, ForeignKey('catalog_item.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_values = Column(JSON, nullable=False, default=dict)
    is_available = Column(Boolean, nullable=False, default=True, server_default='1')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    catalog_item = relationship('CatalogItem', back_populates='combinations')

    def __repr__(self):
        return f"<VariantCombination(id={self.id}, values={self.variant_values})>"
