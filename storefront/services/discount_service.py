"""
Discount code validation and usage recording.

Two layers guard a code's limits. validate_discount_code() is an optimistic
read used while the customer is still at checkout; its answer is
provisional. record_discount_usage() runs after the order committed and
relies on storage constraints (the partial unique index on discount_usage
and the usage_count_within_limit CHECK) to settle races.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from storefront.blueprints.metrics import discount_usage_races_total
from storefront.exceptions import DiscountError, UsageRaceError
from storefront.models import DiscountCode, DiscountReason, DiscountUsage
from storefront.services.pricing_service import ZERO, parse_price, round_currency
from storefront.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)


def normalize_code(code: Optional[str]) -> str:
    """Codes are matched trimmed and case-insensitively."""
    return (code or '').strip().upper()


@dataclass
class DiscountValidation:
    """Outcome of validate_discount_code(); provisional until recorded."""
    valid: bool
    amount: Decimal = ZERO
    reason: Optional[DiscountReason] = None
    message: Optional[str] = None
    discount_code_id: Optional[int] = None
    final_total: Optional[Decimal] = None
    code: Optional[str] = None

    @classmethod
    def rejected(cls, reason: DiscountReason, code: Optional[str] = None,
                 discount_code_id: Optional[int] = None) -> 'DiscountValidation':
        return cls(valid=False, reason=reason, message=reason.message,
                   code=code, discount_code_id=discount_code_id)

    def to_error(self) -> Optional[DiscountError]:
        if self.valid or self.reason is None:
            return None
        return DiscountError(self.reason, self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'code': self.code,
            'discount_code_id': self.discount_code_id,
            'discount_amount': str(self.amount),
            'final_total': str(self.final_total) if self.final_total is not None else None,
            'reason': self.reason.value if self.reason else None,
            'message': self.message,
        }


@dataclass
class UsageResult:
    """Outcome of record_discount_usage(); never affects the committed order."""
    success: bool
    reason: Optional[DiscountReason] = None
    message: Optional[str] = None
    warning: Optional[str] = None

    def to_error(self) -> Optional[UsageRaceError]:
        if self.success or self.reason is None:
            return None
        return UsageRaceError(self.reason, self.message)


# =====================================================
# VALIDATION
# =====================================================

def find_active_code(session, code: str) -> Optional[DiscountCode]:
    normalized = normalize_code(code)
    if not normalized:
        return None
    return session.query(DiscountCode).filter(
        DiscountCode.code == normalized,
        DiscountCode.is_active.is_(True)
    ).first()


def calculate_discount_amount(discount: DiscountCode, order_total: Any) -> Decimal:
    """
    Discount for a given base amount.

    Percentage codes take value% of the base, capped by max_discount_amount.
    Fixed codes never exceed the base.
    """
    base = max(parse_price(order_total), Decimal('0'))
    value = parse_price(discount.discount_value)

    if discount.is_percentage:
        amount = base * value / Decimal('100')
        if discount.max_discount_amount is not None:
            amount = min(amount, parse_price(discount.max_discount_amount))
    else:
        amount = min(value, base)

    return round_currency(max(amount, Decimal('0')))


def has_customer_used(session, discount_code_id: int, user_id: str) -> bool:
    return session.query(DiscountUsage.id).filter(
        DiscountUsage.discount_code_id == discount_code_id,
        DiscountUsage.user_id == str(user_id)
    ).first() is not None


def validate_discount_code(session, code: str, user_id: Optional[str], order_total: Any,
                           now: Optional[datetime] = None) -> DiscountValidation:
    """
    Check a code against its activity window, minimum order amount and
    usage limits, and compute the discount for order_total.

    Checks run in a fixed order; the first failure is the reason returned.
    user_id is the customer identity key (user id, or guest session id).
    """
    now = as_utc(now) or utcnow()
    normalized = normalize_code(code)
    total = parse_price(order_total)

    discount = find_active_code(session, normalized)
    if discount is None:
        logger.info(f"[DISCOUNT] Code '{normalized}' not found or inactive")
        return DiscountValidation.rejected(DiscountReason.NOT_FOUND, normalized)

    def reject(reason: DiscountReason) -> DiscountValidation:
        logger.info(f"[DISCOUNT] Code '{normalized}' rejected: {reason.value}")
        return DiscountValidation.rejected(reason, normalized, discount.id)

    expires_at = as_utc(discount.expires_at)
    if expires_at is not None and now > expires_at:
        return reject(DiscountReason.EXPIRED)

    starts_at = as_utc(discount.starts_at)
    if starts_at is not None and now < starts_at:
        return reject(DiscountReason.NOT_STARTED)

    if discount.min_order_amount is not None and total < parse_price(discount.min_order_amount):
        return reject(DiscountReason.BELOW_MINIMUM)

    if discount.usage_limit is not None and (discount.usage_count or 0) >= discount.usage_limit:
        return reject(DiscountReason.LIMIT_REACHED)

    if discount.one_per_customer and user_id and has_customer_used(session, discount.id, user_id):
        return reject(DiscountReason.ALREADY_USED)

    amount = calculate_discount_amount(discount, total)
    return DiscountValidation(
        valid=True,
        amount=amount,
        discount_code_id=discount.id,
        final_total=round_currency(max(total - amount, Decimal('0'))),
        code=discount.code,
    )


# =====================================================
# USAGE RECORDING
# =====================================================

def _increment_usage_count(session, discount_code_id: int) -> int:
    """Single conditional UPDATE; returns the number of rows updated (0 or 1)."""
    stmt = (
        update(DiscountCode)
        .where(DiscountCode.id == discount_code_id)
        .where(or_(
            DiscountCode.usage_limit.is_(None),
            DiscountCode.usage_count < DiscountCode.usage_limit
        ))
        .values(usage_count=DiscountCode.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount


def _race(reason: DiscountReason, discount_code_id: int, user_id: str, order_id: int) -> UsageResult:
    logger.warning(
        f"[DISCOUNT] Usage race on code {discount_code_id} for customer {user_id} "
        f"(order {order_id}): {reason.value}"
    )
    discount_usage_races_total.labels(reason=reason.value).inc()
    return UsageResult(success=False, reason=reason, message=reason.message)


def record_discount_usage(session, discount_code_id: int, user_id: str, order_id: int,
                          amount: Any, order_total: Any = None) -> UsageResult:
    """
    Record that a customer used a code on a committed order.

    1. Insert the usage row. A unique violation means the same customer got
       there first: ALREADY_USED_RACE.
    2. Increment usage_count with a ceiling check. No row updated (or the
       CHECK constraint fires) means the limit was hit concurrently:
       LIMIT_REACHED_RACE, and the usage row is rolled back with it.
    Any other storage failure on the increment keeps the usage row and
    reports success with a warning.

    The order itself is never touched here.
    """
    discount = session.get(DiscountCode, discount_code_id)
    if discount is None:
        logger.warning(f"[DISCOUNT] Code {discount_code_id} vanished before usage was recorded (order {order_id})")
        return UsageResult(success=False, reason=DiscountReason.NOT_FOUND, message=DiscountReason.NOT_FOUND.message)

    usage_values = dict(
        discount_code_id=discount_code_id,
        user_id=str(user_id),
        order_id=order_id,
        discount_amount=round_currency(parse_price(amount)),
        order_total=round_currency(parse_price(order_total)) if order_total is not None else None,
        one_per_customer=bool(discount.one_per_customer),
    )

    # 1. Usage row (partial unique index backstop)
    try:
        session.add(DiscountUsage(**usage_values))
        session.flush()
    except IntegrityError:
        session.rollback()
        return _race(DiscountReason.ALREADY_USED_RACE, discount_code_id, user_id, order_id)

    # 2. Conditional increment (CHECK constraint backstop)
    try:
        updated = _increment_usage_count(session, discount_code_id)
        if updated == 0:
            session.rollback()
            return _race(DiscountReason.LIMIT_REACHED_RACE, discount_code_id, user_id, order_id)
        session.commit()
    except IntegrityError:
        session.rollback()
        return _race(DiscountReason.LIMIT_REACHED_RACE, discount_code_id, user_id, order_id)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[DISCOUNT] Could not increment usage count for code {discount_code_id}: {e}")
        return _record_usage_without_count(session, usage_values)

    logger.info(f"[DISCOUNT] Recorded usage of code {discount_code_id} by {user_id} on order {order_id}")
    return UsageResult(success=True)


def _record_usage_without_count(session, usage_values: Dict[str, Any]) -> UsageResult:
    """Keep the usage row even though the counter could not be bumped."""
    try:
        session.add(DiscountUsage(**usage_values))
        session.commit()
    except IntegrityError:
        session.rollback()
        return _race(DiscountReason.ALREADY_USED_RACE, usage_values['discount_code_id'],
                     usage_values['user_id'], usage_values['order_id'])
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"[DISCOUNT] Usage row for order {usage_values['order_id']} could not be stored: {e}")
        return UsageResult(success=False, message='Discount usage could not be recorded')

    return UsageResult(
        success=True,
        warning='Discount usage recorded but the usage counter was not updated'
    )
