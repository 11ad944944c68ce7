"""Middleware for per-request customer context (signed-in user or guest)."""
from functools import wraps
from flask import session, g, request, current_app, jsonify


def load_customer_context():
    """
    Load the current customer into g (Flask's per-request global).

    Authentication is owned elsewhere; this only READS what it established.
    Sets g.user_id for signed-in customers, otherwise g.guest_session_id from
    the guest session header or the Flask session.
    """
    g.user_id = None
    g.guest_session_id = None

    user_id = session.get('user_id')
    if user_id:
        g.user_id = str(user_id)
        return

    header = current_app.config.get('GUEST_SESSION_HEADER', 'X-Guest-Session-Id')
    guest_session_id = (request.headers.get(header) or session.get('guest_session_id') or '').strip()
    if guest_session_id:
        g.guest_session_id = guest_session_id


def customer_key():
    """Identity used for carts and one-per-customer discounts."""
    return g.get('user_id') or g.get('guest_session_id')


def require_customer(f):
    """
    Decorator: Require a signed-in user or a guest session.

    Returns a JSON 401 when neither is present.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if customer_key() is None:
            return jsonify({
                'status': 'error',
                'code': 'customer_required',
                'message': 'Sign in or start a guest session to continue.'
            }), 401
        return f(*args, **kwargs)
    return decorated_function
