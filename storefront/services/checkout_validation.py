"""Checkout input checks that run before any transaction is opened."""
import re
from typing import Any, Dict, Optional

from storefront.exceptions import MissingRequiredFieldError, ValidationError

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_RE = re.compile(r'^[\d\s\-+()]{8,20}$')

# field -> (label, minimum length)
ADDRESS_FIELDS = (
    ('full_name', 'Full name', 2),
    ('street_address', 'Street address', 5),
    ('city', 'City', 2),
    ('state_province', 'State/Province', 2),
    ('postal_code', 'Postal code', 3),
    ('country', 'Country', 1),
)

ADDRESS_ALIASES = {
    'full_name': ('full_name', 'fullName', 'name'),
    'street_address': ('street_address', 'streetAddress', 'street', 'line1'),
    'city': ('city',),
    'state_province': ('state_province', 'stateProvince', 'state'),
    'postal_code': ('postal_code', 'postalCode', 'zip'),
    'country': ('country',),
    'phone_number': ('phone_number', 'phoneNumber', 'phone'),
}


def validate_email(email: Optional[str]) -> str:
    """Return the trimmed email or raise."""
    email = (email or '').strip()
    if not email:
        raise MissingRequiredFieldError('customer_email')
    if not EMAIL_RE.match(email):
        raise ValidationError('Please enter a valid email address', payload={'field': 'customer_email'})
    return email


def _pick(address: Dict[str, Any], key: str) -> str:
    for alias in ADDRESS_ALIASES[key]:
        value = address.get(alias)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ''


def normalize_address(address: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """
    Validate a shipping address and return it with canonical keys.

    Each field is trimmed and must meet its minimum length; phone is optional
    but, when given, must be 8-20 digits, spaces or + - ( ).
    """
    if not isinstance(address, dict) or not address:
        raise MissingRequiredFieldError('shipping_address')

    normalized = {}
    errors = {}
    for key, label, min_length in ADDRESS_FIELDS:
        value = _pick(address, key)
        if not value:
            errors[key] = f'{label} is required'
        elif len(value) < min_length:
            errors[key] = f'{label} must be at least {min_length} characters'
        normalized[key] = value

    phone = _pick(address, 'phone_number')
    if phone:
        if not PHONE_RE.match(phone):
            errors['phone_number'] = 'Please enter a valid phone number'
        normalized['phone_number'] = phone

    if errors:
        raise ValidationError('Shipping address is incomplete', payload={'fields': errors})
    return normalized
