"""Cart blueprint - JSON cart management for signed-in users and guests."""
from flask import Blueprint, request, jsonify, g

from storefront.database import get_session
from storefront.exceptions import ValidationError
from storefront.middleware import require_customer
from storefront.services import cart_service
from storefront.services.pricing_service import compute_totals

cart_bp = Blueprint('cart', __name__, url_prefix='/cart')


def _current_owner() -> cart_service.CartOwner:
    return cart_service.CartOwner(user_id=g.user_id, guest_session_id=g.guest_session_id)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _cart_payload(db_session, owner):
    lines = cart_service.get_cart_lines(db_session, owner)
    return {
        'status': 'success',
        'items': [line.to_dict() for line in lines],
        'count': len(lines),
        'totals': compute_totals(lines).to_dict(),
    }


@cart_bp.route('/', methods=['GET'])
@require_customer
def view_cart():
    """Resolved cart lines with totals."""
    return jsonify(_cart_payload(get_session(), _current_owner()))


@cart_bp.route('/items', methods=['POST'])
@require_customer
def add_item():
    """Add a product (or bump a matching line)."""
    db_session = get_session()
    owner = _current_owner()
    cart_item = cart_service.add_to_cart(db_session, owner, _json_body())

    payload = _cart_payload(db_session, owner)
    payload['cart_item_id'] = cart_item.id
    return jsonify(payload), 201


@cart_bp.route('/items/<int:cart_item_id>', methods=['PATCH'])
@require_customer
def update_item(cart_item_id):
    """Set a line's quantity; 0 removes it."""
    data = _json_body()
    quantity = data.get('quantity')
    if isinstance(quantity, str) and quantity.strip().lstrip('-').isdigit():
        quantity = int(quantity)

    db_session = get_session()
    owner = _current_owner()
    cart_service.update_quantity(db_session, owner, cart_item_id, quantity)
    return jsonify(_cart_payload(db_session, owner))


@cart_bp.route('/items/<int:cart_item_id>', methods=['DELETE'])
@require_customer
def remove_item(cart_item_id):
    db_session = get_session()
    owner = _current_owner()
    cart_service.remove_from_cart(db_session, owner, cart_item_id)
    return jsonify(_cart_payload(db_session, owner))
