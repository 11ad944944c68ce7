"""Checkout blueprint - totals preview, discount check and order placement."""
from flask import Blueprint, request, jsonify, g, current_app

from storefront.database import get_session
from storefront.exceptions import EmptyCartError
from storefront.middleware import require_customer, customer_key
from storefront.services import cart_service, discount_service
from storefront.services.checkout_service import CheckoutRequest, place_order, preview_totals
from storefront.services.pricing_service import compute_totals

checkout_bp = Blueprint('checkout', __name__, url_prefix='/checkout')


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _current_lines(db_session):
    owner = cart_service.CartOwner(user_id=g.user_id, guest_session_id=g.guest_session_id)
    lines = cart_service.get_cart_lines(db_session, owner)
    if not lines:
        raise EmptyCartError('Your cart is empty')
    return lines


@checkout_bp.route('/totals', methods=['POST'])
@require_customer
def totals():
    """Totals for the current cart, previewing an optional discount code."""
    db_session = get_session()
    code = _body().get('discount_code')
    cart_totals, validation = preview_totals(db_session, _current_lines(db_session), code, customer_key())
    return jsonify({
        'status': 'success',
        'totals': cart_totals.to_dict(),
        'discount': validation.to_dict() if validation else None,
    })


@checkout_bp.route('/discount', methods=['POST'])
@require_customer
def check_discount():
    """Validate a discount code against the current cart. Provisional only."""
    db_session = get_session()
    lines = _current_lines(db_session)
    validation = discount_service.validate_discount_code(
        db_session, _body().get('discount_code'), customer_key(), compute_totals(lines).subtotal
    )

    if not validation.valid:
        error = validation.to_error()
        return jsonify(error.to_dict()), error.status_code
    return jsonify({'status': 'success', 'discount': validation.to_dict()})


@checkout_bp.route('/orders', methods=['POST'])
@require_customer
def create_order():
    """Place the order for the current cart."""
    data = _body()
    result = place_order(get_session(), CheckoutRequest(
        shipping_address=data.get('shipping_address'),
        customer_email=data.get('customer_email'),
        customer_name=data.get('customer_name'),
        user_id=g.user_id,
        guest_session_id=g.guest_session_id,
        discount_code=data.get('discount_code'),
    ))

    if not result.success:
        current_app.logger.info(f"[CHECKOUT] Order not placed: {result.error.message}")
        return jsonify(result.error.to_dict()), result.error.status_code
    return jsonify(result.to_dict()), 201
