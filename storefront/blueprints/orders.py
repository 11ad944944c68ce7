"""Orders blueprint - a customer's own order history."""
from flask import Blueprint, request, jsonify, g

from storefront.database import get_session
from storefront.exceptions import MissingRequiredFieldError
from storefront.middleware import require_customer
from storefront.services import order_service

orders_bp = Blueprint('orders', __name__, url_prefix='/orders')


@orders_bp.route('/', methods=['GET'])
@require_customer
def list_orders():
    """Signed-in customers see their orders; guests need the email they ordered with."""
    db_session = get_session()
    if g.user_id:
        orders = order_service.get_user_orders(
            db_session, g.user_id,
            status=request.args.get('status') or None,
            limit=request.args.get('limit', type=int)
        )
    else:
        email = request.args.get('email')
        if not email:
            raise MissingRequiredFieldError('email')
        orders = order_service.get_guest_orders(db_session, email, g.guest_session_id)

    return jsonify({'status': 'success', 'orders': [order.to_dict() for order in orders]})


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_customer
def order_detail(order_id):
    order = order_service.get_order_by_id(
        get_session(), order_id,
        user_id=g.user_id,
        guest_session_id=None if g.user_id else g.guest_session_id
    )
    return jsonify({'status': 'success', 'order': order.to_dict(include_items=True)})
