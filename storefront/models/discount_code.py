"""Discount code model."""
import enum
from sqlalchemy import Column, String, Boolean, Integer, Numeric, DateTime, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, IdType


class DiscountType(str, enum.Enum):
    """How discount_value is interpreted."""
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class DiscountReason(str, enum.Enum):
    """Why a discount code was rejected (validation) or lost a race (recording)."""
    NOT_FOUND = 'not_found'
    EXPIRED = 'expired'
    NOT_STARTED = 'not_started'
    BELOW_MINIMUM = 'below_minimum'
    LIMIT_REACHED = 'limit_reached'
    ALREADY_USED = 'already_used'
    ALREADY_USED_RACE = 'already_used_race'
    LIMIT_REACHED_RACE = 'limit_reached_race'

    @property
    def message(self) -> str:
        return _REASON_MESSAGES[self]


_REASON_MESSAGES = {
    DiscountReason.NOT_FOUND: 'This discount code does not exist or is not active.',
    DiscountReason.EXPIRED: 'This discount code has expired.',
    DiscountReason.NOT_STARTED: 'This discount code is not yet active.',
    DiscountReason.BELOW_MINIMUM: 'Your order does not meet the minimum amount for this code.',
    DiscountReason.LIMIT_REACHED: 'This discount code has reached its usage limit.',
    DiscountReason.ALREADY_USED: 'You have already used this discount code.',
    DiscountReason.ALREADY_USED_RACE: 'You have already used this discount code.',
    DiscountReason.LIMIT_REACHED_RACE: 'This discount code has reached its usage limit.',
}


class DiscountCode(Base):
    """
    Discount Code - a promotional rule.

    usage_count is only ever changed by the usage recorder through a single
    conditional UPDATE; the check constraint below is the durable ceiling.
    """

    __tablename__ = 'discount_code'
    __table_args__ = (
        CheckConstraint(
            'usage_limit IS NULL OR usage_count <= usage_limit',
            name='usage_count_within_limit'
        ),
        CheckConstraint('usage_count >= 0', name='usage_count_non_negative'),
        CheckConstraint('discount_value > 0', name='discount_value_positive'),
        CheckConstraint(
            "discount_type <> 'percentage' OR discount_value <= 100",
            name='percentage_at_most_100'
        ),
        CheckConstraint(
            "discount_type IN ('percentage', 'fixed')",
            name='discount_type_valid'
        ),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    # Stored upper-cased; lookups normalize the same way
    code = Column(String(64), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    min_order_amount = Column(Numeric(10, 2), nullable=True)
    max_discount_amount = Column(Numeric(10, 2), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0, server_default='0')
    one_per_customer = Column(Boolean, nullable=False, default=True, server_default='1')
    is_active = Column(Boolean, nullable=False, default=True, server_default='1')
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    usages = relationship('DiscountUsage', back_populates='discount_code', cascade='all, delete-orphan')

    @property
    def is_percentage(self) -> bool:
        return self.discount_type == DiscountType.PERCENTAGE.value

    @property
    def remaining_uses(self):
        """Uses left before the ceiling, or None when unlimited."""
        if self.usage_limit is None:
            return None
        return max(self.usage_limit - (self.usage_count or 0), 0)

    def __repr__(self):
        return f"<DiscountCode(id={self.id}, code='{self.code}', type={self.discount_type}, value={self.discount_value})>"
