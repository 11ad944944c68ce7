"""
End-to-end checkout tests through the HTTP API and the orchestrator.
"""

import pytest
from decimal import Decimal
from storefront.models import CartItem, DiscountUsage, Order
from storefront.services.cart_service import CartOwner, add_to_cart
from storefront.services.checkout_service import CheckoutRequest, place_order


@pytest.fixture
def guest_client(client, guest_id):
    """Client that sends a guest session header on every request."""
    client.environ_base['HTTP_X_GUEST_SESSION_ID'] = guest_id
    return client


@pytest.fixture
def user_client(client):
    with client.session_transaction() as sess:
        sess['user_id'] = 'user-42'
    return client


class TestCartApi:
    """Tests for the cart endpoints."""

    def test_requires_customer(self, client):
        response = client.get('/cart/')
        assert response.status_code == 401
        assert response.get_json()['code'] == 'customer_required'

    def test_add_and_view(self, guest_client, item_a, item_b):
        a_id, b_id = item_a.id, item_b.id

        response = guest_client.post('/cart/items', json={'catalog_item_id': a_id, 'quantity': 2})
        assert response.status_code == 201
        guest_client.post('/cart/items', json={'catalog_item_id': b_id, 'quantity': 1})

        data = guest_client.get('/cart/').get_json()
        assert data['count'] == 2
        assert data['totals'] == {
            'item_count': 3, 'subtotal': '40.00', 'shipping': '5.00',
            'tax': '3.52', 'discount': '0.00', 'grand_total': '48.52',
        }

    def test_update_and_delete(self, user_client, item_a):
        cart_item_id = user_client.post('/cart/items', json={'catalog_item_id': item_a.id}).get_json()['cart_item_id']

        data = user_client.patch(f'/cart/items/{cart_item_id}', json={'quantity': 3}).get_json()
        assert data['items'][0]['quantity'] == 3

        data = user_client.delete(f'/cart/items/{cart_item_id}').get_json()
        assert data['count'] == 0

    def test_invalid_line_is_400(self, guest_client):
        response = guest_client.post('/cart/items', json={'quantity': 1})
        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'

    def test_unknown_line_is_404(self, guest_client, session):
        response = guest_client.delete('/cart/items/12345')
        assert response.status_code == 404


class TestCheckoutApi:
    """Tests for totals, discount and order placement endpoints."""

    def _fill(self, client, *items):
        for item_id, quantity in items:
            client.post('/cart/items', json={'catalog_item_id': item_id, 'quantity': quantity})

    def test_totals_with_fixed_code(self, guest_client, item_a, item_b, fixed_code):
        self._fill(guest_client, (item_a.id, 2), (item_b.id, 1))

        data = guest_client.post('/checkout/totals', json={'discount_code': 'save10'}).get_json()
        assert data['totals']['grand_total'] == '38.52'
        assert data['discount']['valid'] is True

    def test_discount_rejection(self, guest_client, item_a, discount_factory):
        discount_factory(code='BIG', min_order_amount=Decimal('100'))
        self._fill(guest_client, (item_a.id, 1))

        response = guest_client.post('/checkout/discount', json={'discount_code': 'BIG'})
        assert response.status_code == 422
        assert response.get_json()['reason'] == 'below_minimum'

    def test_empty_cart_blocks_checkout(self, guest_client, shipping_address):
        response = guest_client.post('/checkout/orders', json={
            'customer_email': 'ada@example.com', 'shipping_address': shipping_address,
        })
        assert response.status_code == 400
        assert response.get_json()['code'] == 'empty_cart'

    def test_invalid_email_blocks_checkout(self, guest_client, item_a, shipping_address, session):
        self._fill(guest_client, (item_a.id, 1))
        response = guest_client.post('/checkout/orders', json={
            'customer_email': 'not-an-email', 'shipping_address': shipping_address,
        })

        assert response.status_code == 400
        assert session.query(Order).count() == 0
        assert session.query(CartItem).count() == 1

    def test_place_guest_order(self, guest_client, guest_id, item_a, item_b, fixed_code, shipping_address, session):
        code_id = fixed_code.id
        self._fill(guest_client, (item_a.id, 2), (item_b.id, 1))

        response = guest_client.post('/checkout/orders', json={
            'customer_email': 'ada@example.com',
            'shipping_address': shipping_address,
            'discount_code': 'SAVE10',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['order_total'] == '30.00'
        assert data['totals']['grand_total'] == '38.52'

        order = session.get(Order, data['order_id'])
        assert order.is_guest is True
        assert order.guest_session_id == guest_id
        assert order.customer_name == 'Ada Lovelace'
        assert order.discount_code_id == code_id
        assert session.query(CartItem).count() == 0
        usage = session.query(DiscountUsage).one()
        assert usage.user_id == guest_id

    def test_order_history_and_detail(self, user_client, item_a, shipping_address):
        self._fill(user_client, (item_a.id, 1))
        order_id = user_client.post('/checkout/orders', json={
            'customer_email': 'ada@example.com', 'shipping_address': shipping_address,
        }).get_json()['order_id']

        orders = user_client.get('/orders/').get_json()['orders']
        assert [o['id'] for o in orders] == [order_id]

        detail = user_client.get(f'/orders/{order_id}').get_json()['order']
        assert detail['items'][0]['price_at_purchase'] == '10.00'

    def test_guest_cannot_read_user_order(self, user_client, item_a, shipping_address, app, guest_id):
        self._fill(user_client, (item_a.id, 1))
        order_id = user_client.post('/checkout/orders', json={
            'customer_email': 'ada@example.com', 'shipping_address': shipping_address,
        }).get_json()['order_id']

        other = app.test_client()
        other.environ_base['HTTP_X_GUEST_SESSION_ID'] = guest_id
        assert other.get(f'/orders/{order_id}').status_code == 404

    def test_metrics_endpoint(self, client):
        response = client.get('/metrics')
        assert response.status_code == 200
        assert b'storefront_orders_created_total' in response.data


class TestPlaceOrder:
    """Tests for the checkout orchestrator."""

    def test_limit_reached_code_does_not_block_order(self, session, item_a, discount_factory, shipping_address):
        discount_factory(code='GONE', usage_limit=1, usage_count=1)
        add_to_cart(session, CartOwner(user_id='u1'), {'catalog_item_id': item_a.id, 'quantity': 2})

        result = place_order(session, CheckoutRequest(
            shipping_address=shipping_address,
            customer_email='ada@example.com',
            user_id='u1',
            discount_code='GONE',
        ))

        assert result.success
        assert result.order_total == Decimal('20.00')
        assert result.discount_error.payload['reason'] == 'limit_reached'
        assert session.get(Order, result.order_id).discount_amount == Decimal('0.00')

    def test_unavailable_item_leaves_cart_unchanged(self, session, item_a, shipping_address):
        owner = CartOwner(user_id='u1')
        add_to_cart(session, owner, {'catalog_item_id': item_a.id})
        item_a.is_available = False
        session.commit()

        result = place_order(session, CheckoutRequest(
            shipping_address=shipping_address, customer_email='ada@example.com', user_id='u1'
        ))

        assert not result.success
        assert result.error.code == 'product_unavailable'
        assert session.query(CartItem).count() == 1
        assert session.query(Order).count() == 0

    def test_usage_race_is_a_warning(self, session, item_a, fixed_code, shipping_address, monkeypatch):
        from storefront.services import discount_service

        # The validator saw the code as unused, but another checkout recorded it first
        owner = CartOwner(user_id='u1')
        add_to_cart(session, owner, {'catalog_item_id': item_a.id, 'quantity': 3})
        first = place_order(session, CheckoutRequest(
            shipping_address=shipping_address, customer_email='ada@example.com',
            user_id='u1', discount_code='SAVE10'
        ))
        assert first.success and not first.warnings

        monkeypatch.setattr(discount_service, 'has_customer_used', lambda *args: False)
        add_to_cart(session, owner, {'catalog_item_id': item_a.id, 'quantity': 3})
        second = place_order(session, CheckoutRequest(
            shipping_address=shipping_address, customer_email='ada@example.com',
            user_id='u1', discount_code='SAVE10'
        ))

        assert second.success
        assert second.warnings[0].code == 'discount_usage_race'
        assert session.query(DiscountUsage).count() == 1
        assert session.query(Order).count() == 2

    def test_explicit_lines(self, session, item_a, menu_item, shipping_address, guest_id):
        result = place_order(session, CheckoutRequest(
            shipping_address=shipping_address,
            customer_email='ada@example.com',
            guest_session_id=guest_id,
            lines=[{'catalog_item_id': item_a.id, 'quantity': 1}, {'menu_item_id': menu_item.id, 'quantity': 2}],
        ))

        assert result.success
        assert result.order_total == Decimal('35.00')

    def test_client_prices_do_not_size_the_discount(self, session, item_a, discount_factory, shipping_address):
        discount_factory(code='HALF', discount_type='percentage', discount_value=Decimal('50'))

        result = place_order(session, CheckoutRequest(
            shipping_address=shipping_address, customer_email='ada@example.com', user_id='u1',
            discount_code='HALF', lines=[{'catalog_item_id': item_a.id, 'quantity': 1, 'unit_price': '1000.00'}],
        ))

        assert result.success
        assert result.totals.subtotal == Decimal('10.00')
        assert result.totals.discount == Decimal('5.00')
        assert result.order_total == Decimal('5.00')
        assert session.get(Order, result.order_id).discount_amount == Decimal('5.00')

    def test_client_prices_do_not_meet_the_minimum(self, session, item_a, discount_factory, shipping_address):
        discount_factory(code='BIG', min_order_amount=Decimal('100.00'))

        result = place_order(session, CheckoutRequest(
            shipping_address=shipping_address, customer_email='ada@example.com', user_id='u1',
            discount_code='BIG', lines=[{'catalog_item_id': item_a.id, 'quantity': 1, 'unit_price': '500.00'}],
        ))

        assert result.success
        assert result.discount_error.payload['reason'] == 'below_minimum'
        assert result.order_total == Decimal('10.00')
        assert session.query(DiscountUsage).count() == 0
