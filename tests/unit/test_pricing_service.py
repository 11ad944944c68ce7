"""
Unit tests for the checkout price calculator.
"""

import pytest
from decimal import Decimal
from storefront.services.pricing_service import (
    PricingPolicy, Totals, parse_price, round_currency, total_item_count, calculate_subtotal,
    calculate_shipping, calculate_tax, calculate_grand_total, compute_totals
)

POLICY = PricingPolicy(
    shipping_threshold=Decimal('50.00'),
    shipping_fee=Decimal('5.00'),
    tax_rate=Decimal('0.088'),
)

CART = [
    {'quantity': 2, 'unit_price': Decimal('10.00')},
    {'quantity': 1, 'unit_price': Decimal('20.00')},
]


class TestParsePrice:
    """Tests for lenient price parsing."""

    @pytest.mark.parametrize('value, expected', [
        ('12.50', Decimal('12.50')),
        (' 7 ', Decimal('7')),
        (3, Decimal('3')),
        (2.5, Decimal('2.5')),
        (Decimal('1.10'), Decimal('1.10')),
    ])
    def test_numeric_values(self, value, expected):
        assert parse_price(value) == expected

    @pytest.mark.parametrize('value', [None, '', 'abc', 'NaN', 'Infinity', float('nan'), True, object()])
    def test_garbage_parses_to_zero(self, value):
        assert parse_price(value) == Decimal('0')

    def test_round_half_up(self):
        assert round_currency(Decimal('2.345')) == Decimal('2.35')
        assert round_currency(Decimal('2.344')) == Decimal('2.34')


class TestCalculator:
    """Tests for the individual calculator steps."""

    def test_item_count_and_subtotal(self):
        assert total_item_count(CART) == 3
        assert calculate_subtotal(CART) == Decimal('40.00')

    def test_subtotal_falls_back_to_price_key(self):
        lines = [{'quantity': 3, 'price': '1.50'}]
        assert calculate_subtotal(lines) == Decimal('4.50')

    def test_subtotal_ignores_unparsable_price(self):
        lines = [{'quantity': 2, 'unit_price': 'free'}, {'quantity': 1, 'unit_price': '5'}]
        assert calculate_subtotal(lines) == Decimal('5.00')

    def test_shipping_threshold_is_exclusive(self):
        assert calculate_shipping(Decimal('40.00'), POLICY) == Decimal('5.00')
        assert calculate_shipping(Decimal('50.00'), POLICY) == Decimal('5.00')
        assert calculate_shipping(Decimal('50.01'), POLICY) == Decimal('0.00')

    def test_tax_excludes_shipping(self):
        assert calculate_tax(Decimal('40.00'), POLICY) == Decimal('3.52')

    def test_grand_total_never_negative(self):
        total = calculate_grand_total(Decimal('10'), Decimal('5'), Decimal('0.88'), Decimal('100'))
        assert total == Decimal('0.00')


class TestComputeTotals:
    """Tests for the full totals computation."""

    def test_reference_cart(self):
        totals = compute_totals(CART, policy=POLICY)

        assert totals == Totals(
            item_count=3,
            subtotal=Decimal('40.00'),
            shipping=Decimal('5.00'),
            tax=Decimal('3.52'),
            discount=Decimal('0.00'),
            grand_total=Decimal('48.52'),
        )

    def test_reference_cart_with_fixed_discount(self):
        totals = compute_totals(CART, Decimal('10.00'), policy=POLICY)
        assert totals.grand_total == Decimal('38.52')

    def test_negative_discount_is_ignored(self):
        totals = compute_totals(CART, Decimal('-15'), policy=POLICY)
        assert totals.discount == Decimal('0.00')
        assert totals.grand_total == Decimal('48.52')

    def test_idempotent(self):
        assert compute_totals(CART, 3, policy=POLICY) == compute_totals(CART, 3, policy=POLICY)

    def test_accepts_resolved_lines(self):
        from storefront.services.cart_resolver import resolve_cart_lines
        lines = resolve_cart_lines([
            {'catalog_item_id': 1, 'quantity': 2, 'price': '10'},
            {'menu_item_id': 5, 'quantity': 1, 'price': '20'},
        ])
        assert compute_totals(lines, policy=POLICY).grand_total == Decimal('48.52')

    def test_policy_comes_from_app_config(self, app):
        with app.app_context():
            app.config['SHIPPING_FEE'] = '7.00'
            try:
                totals = compute_totals(CART)
            finally:
                app.config['SHIPPING_FEE'] = '5.00'
        assert totals.shipping == Decimal('7.00')

    def test_to_dict_serializes_money_as_strings(self):
        data = compute_totals(CART, policy=POLICY).to_dict()
        assert data['grand_total'] == '48.52'
        assert data['item_count'] == 3
