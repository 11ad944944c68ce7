"""Discount code administration (create, edit, deactivate, usage stats)."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from storefront.exceptions import NotFoundError, StorefrontError, TransactionFailure, ValidationError
from storefront.models import DiscountCode, DiscountType, DiscountUsage
from storefront.services.discount_service import normalize_code
from storefront.services.pricing_service import parse_price, round_currency
from storefront.utils.dates import as_utc, utcnow
from storefront.utils.formatters import format_number, format_price_with_currency

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'code', 'description', 'discount_type', 'discount_value', 'min_order_amount',
    'max_discount_amount', 'usage_limit', 'one_per_customer', 'is_active',
    'starts_at', 'expires_at',
)
MONEY_FIELDS = ('discount_value', 'min_order_amount', 'max_discount_amount')
DATE_FIELDS = ('starts_at', 'expires_at')


def _clean(values: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize admin input: upper-cased code, Decimal amounts, UTC dates."""
    cleaned = {}
    for key, value in values.items():
        if key not in EDITABLE_FIELDS:
            raise ValidationError(f'Unknown discount code field "{key}"', payload={'field': key})
        if key == 'code':
            value = normalize_code(value)
            if not value:
                raise ValidationError('Discount code cannot be empty', payload={'field': 'code'})
        elif key == 'discount_type':
            try:
                value = DiscountType(str(value).lower()).value
            except ValueError:
                raise ValidationError('discount_type must be "percentage" or "fixed"', payload={'field': key})
        elif key in MONEY_FIELDS:
            value = round_currency(parse_price(value)) if value not in (None, '') else None
        elif key in DATE_FIELDS:
            value = as_utc(value) if value not in (None, '') else None
        elif key == 'usage_limit':
            value = int(value) if value not in (None, '', 0) else None
        cleaned[key] = value
    return cleaned


def _check_rules(values: Dict[str, Any]) -> None:
    value = values.get('discount_value')
    if value is None or value <= 0:
        raise ValidationError('discount_value must be greater than 0', payload={'field': 'discount_value'})
    if values.get('discount_type') == DiscountType.PERCENTAGE.value and value > 100:
        raise ValidationError('A percentage discount cannot exceed 100', payload={'field': 'discount_value'})
    if values.get('usage_limit') is not None and values['usage_limit'] < 1:
        raise ValidationError('usage_limit must be at least 1', payload={'field': 'usage_limit'})
    starts_at, expires_at = values.get('starts_at'), values.get('expires_at')
    if starts_at and expires_at and expires_at <= starts_at:
        raise ValidationError('expires_at must be after starts_at', payload={'field': 'expires_at'})


def _save(session, discount: DiscountCode, action: str) -> DiscountCode:
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"[DISCOUNT] Could not {action} code '{discount.code}': {e.orig}")
        raise ValidationError(f'Discount code "{discount.code}" already exists or breaks a limit',
                              payload={'field': 'code'})
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[DISCOUNT] Could not {action} code '{discount.code}': {e}")
        raise TransactionFailure('Could not save the discount code. Please try again.')
    logger.info(f"[DISCOUNT] {action.capitalize()}d code '{discount.code}' (id={discount.id})")
    return discount


def create_discount_code(session, created_by: Optional[str] = None, **fields) -> DiscountCode:
    """
    Create a discount code.

    Defaults: one_per_customer and is_active True, starts_at now, no usage limit.
    """
    values = {'one_per_customer': True, 'is_active': True, 'starts_at': utcnow()}
    values.update(_clean(fields))
    if not values.get('code'):
        raise ValidationError('Discount code cannot be empty', payload={'field': 'code'})
    if not values.get('discount_type'):
        raise ValidationError('discount_type is required', payload={'field': 'discount_type'})
    _check_rules(values)

    discount = DiscountCode(usage_count=0, created_by=created_by, **values)
    session.add(discount)
    return _save(session, discount, 'create')


def get_discount_code(session, discount_code_id: int) -> DiscountCode:
    discount = session.get(DiscountCode, discount_code_id)
    if discount is None:
        raise NotFoundError(f'Discount code {discount_code_id} not found')
    return discount


def get_by_code(session, code: str) -> DiscountCode:
    discount = session.query(DiscountCode).filter(DiscountCode.code == normalize_code(code)).first()
    if discount is None:
        raise NotFoundError(f'Discount code "{normalize_code(code)}" not found')
    return discount


def list_discount_codes(session) -> List[DiscountCode]:
    return session.query(DiscountCode).order_by(DiscountCode.created_at.desc(), DiscountCode.id.desc()).all()


def update_discount_code(session, discount_code_id: int, **updates) -> DiscountCode:
    """Edit a code. usage_count is not editable; only usage recording moves it."""
    try:
        discount = get_discount_code(session, discount_code_id)
        values = _clean(updates)

        merged = {key: getattr(discount, key) for key in EDITABLE_FIELDS}
        merged.update(values)
        merged['starts_at'] = as_utc(merged['starts_at'])
        merged['expires_at'] = as_utc(merged['expires_at'])
        _check_rules(merged)

        for key, value in values.items():
            setattr(discount, key, value)
    except StorefrontError as e:
        session.rollback()
        raise e
    return _save(session, discount, 'update')


def deactivate_discount_code(session, discount_code_id: int) -> DiscountCode:
    return update_discount_code(session, discount_code_id, is_active=False)


def delete_discount_code(session, discount_code_id: int) -> None:
    """Delete a code and its usage history. Orders keep their discount_amount."""
    discount = get_discount_code(session, discount_code_id)
    try:
        session.delete(discount)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[DISCOUNT] Could not delete code {discount_code_id}: {e}")
        raise TransactionFailure('Could not delete the discount code. Please try again.')
    logger.info(f"[DISCOUNT] Deleted code {discount_code_id}")


def get_usage_stats(session, discount_code_id: int) -> Dict[str, Any]:
    """Usage count, revenue and total discount given for one code, with history."""
    get_discount_code(session, discount_code_id)
    usages = session.query(DiscountUsage).filter(
        DiscountUsage.discount_code_id == discount_code_id
    ).order_by(DiscountUsage.used_at.desc(), DiscountUsage.id.desc()).all()

    total_revenue = sum((parse_price(u.order_total) for u in usages), Decimal('0'))
    total_discount = sum((parse_price(u.discount_amount) for u in usages), Decimal('0'))
    return {
        'usage_count': len(usages),
        'total_revenue': round_currency(total_revenue),
        'total_discount': round_currency(total_discount),
        'usage_history': usages,
    }


def format_discount_display(discount: Optional[DiscountCode], currency: Optional[str] = None) -> str:
    """
    Short human description of a code.

    Examples: "10% off", "10% off (max $5.00)", "$10.00 off".
    """
    if discount is None:
        return ''
    if discount.discount_type == DiscountType.PERCENTAGE.value:
        text = f'{format_number(discount.discount_value)}% off'
        if discount.max_discount_amount:
            text += f' (max {format_price_with_currency(discount.max_discount_amount, currency)})'
        return text
    if discount.discount_type == DiscountType.FIXED.value:
        return f'{format_price_with_currency(discount.discount_value, currency)} off'
    return ''


def is_discount_code_active(discount: Optional[DiscountCode], now: Optional[datetime] = None) -> bool:
    """Active flag, time window and remaining uses, without touching the store."""
    if discount is None or not discount.is_active:
        return False
    now = as_utc(now) or utcnow()
    starts_at = as_utc(discount.starts_at)
    if starts_at is not None and now < starts_at:
        return False
    expires_at = as_utc(discount.expires_at)
    if expires_at is not None and now > expires_at:
        return False
    if discount.usage_limit is not None and (discount.usage_count or 0) >= discount.usage_limit:
        return False
    return True
