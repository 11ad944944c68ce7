"""Custom exceptions for the storefront checkout core."""


class StorefrontError(Exception):
    """Base exception for all application errors."""
    code = 'internal_error'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['status'] = 'error'
        return rv


class NotFoundError(StorefrontError):
    """Exception raised when a resource is not found."""
    code = 'not_found'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


# =====================================================
# VALIDATION (bad input shape, never retried)
# =====================================================

class ValidationError(StorefrontError):
    """Request is malformed; the caller must correct it."""
    code = 'validation_error'

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class MissingRequiredFieldError(ValidationError):
    """A required checkout field is absent or blank."""
    code = 'missing_required_field'

    def __init__(self, field):
        self.field = field
        super().__init__(f'{field} is required', payload={'field': field})


class EmptyCartError(ValidationError):
    """Raised when an order is attempted with no lines."""
    code = 'empty_cart'

    def __init__(self, message='Order must contain at least one item'):
        super().__init__(message)


class InvalidLineItemError(ValidationError):
    """One line of the order is malformed (quantity, reference or price)."""
    code = 'invalid_line_item'

    def __init__(self, reason, index=None):
        self.reason = reason
        self.index = index
        payload = {'reason': reason}
        if index is not None:
            payload['line'] = index
        super().__init__(f'Invalid cart item: {reason}', payload=payload)


class CartValidationError(InvalidLineItemError):
    """A raw cart row could not be resolved into a line item."""
    code = 'invalid_cart_line'


class InvalidStatusTransitionError(ValidationError):
    """Order status change not allowed from the current status."""
    code = 'invalid_status_transition'

    def __init__(self, current, requested):
        super().__init__(
            f'Cannot move order from "{current}" to "{requested}"',
            payload={'current': current, 'requested': requested}
        )


# =====================================================
# AVAILABILITY (cart must be reviewed)
# =====================================================

class AvailabilityError(StorefrontError):
    """Something in the cart is no longer purchasable."""
    code = 'availability_error'

    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class ProductUnavailableError(AvailabilityError):
    """Raised when a referenced item, variant or combination is gone or unavailable."""
    code = 'product_unavailable'

    def __init__(self, ref):
        self.ref = ref
        super().__init__(
            f'{ref.label} is no longer available. Please review your cart.',
            payload={'ref': ref.to_dict()}
        )


# =====================================================
# DISCOUNTS
# =====================================================

class DiscountError(StorefrontError):
    """A discount code was rejected; checkout proceeds without it."""
    code = 'discount_error'

    def __init__(self, reason, message=None):
        self.reason = reason
        super().__init__(message or reason.message, 422, payload={'reason': reason.value})


class UsageRaceError(StorefrontError):
    """Discount usage lost a race after the order committed; the order stands."""
    code = 'discount_usage_race'

    def __init__(self, reason, message=None):
        self.reason = reason
        super().__init__(message or reason.message, 409, payload={'reason': reason.value})


# =====================================================
# STORAGE
# =====================================================

class TransactionFailure(StorefrontError):
    """Storage-level abort; nothing was written and checkout may be retried once."""
    code = 'transaction_failure'

    def __init__(self, message='We could not place your order. Please try again.', payload=None):
        super().__init__(message, 503, payload)


class ImmutableFieldError(StorefrontError):
    """Raised when code tries to change a frozen receipt field."""
    code = 'immutable_field'

    def __init__(self, model, field):
        super().__init__(f'{model}.{field} cannot be changed once created', 500)
