"""
Integration tests for discount code administration and the CLI.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from storefront.exceptions import NotFoundError, ValidationError
from storefront.models import DiscountCode
from storefront.services import discount_admin_service as admin
from storefront.services.discount_service import record_discount_usage
from storefront.services.order_service import OrderRequest, create_order


class TestDiscountAdmin:
    """Tests for create/update/deactivate/delete."""

    def test_create_defaults(self, session):
        discount = admin.create_discount_code(session, code='  spring ', discount_type='percentage',
                                              discount_value='15', created_by='admin-1')

        assert discount.code == 'SPRING'
        assert discount.one_per_customer is True
        assert discount.is_active is True
        assert discount.starts_at is not None
        assert discount.usage_count == 0
        assert discount.usage_limit is None

    @pytest.mark.parametrize('fields', [
        {'code': 'X', 'discount_type': 'percentage', 'discount_value': '120'},
        {'code': 'X', 'discount_type': 'fixed', 'discount_value': '0'},
        {'code': 'X', 'discount_type': 'bogus', 'discount_value': '5'},
        {'code': '', 'discount_type': 'fixed', 'discount_value': '5'},
    ])
    def test_create_rejects_bad_rules(self, session, fields):
        with pytest.raises(ValidationError):
            admin.create_discount_code(session, **fields)
        assert session.query(DiscountCode).count() == 0

    def test_duplicate_code(self, session, fixed_code):
        with pytest.raises(ValidationError):
            admin.create_discount_code(session, code='save10', discount_type='fixed', discount_value='5')

    def test_update_and_deactivate(self, session, fixed_code):
        admin.update_discount_code(session, fixed_code.id, discount_value='12.50', code='save-more')
        discount = admin.deactivate_discount_code(session, fixed_code.id)

        assert discount.code == 'SAVE-MORE'
        assert discount.discount_value == Decimal('12.50')
        assert discount.is_active is False

    def test_update_rejects_window_inversion(self, session, fixed_code):
        with pytest.raises(ValidationError):
            admin.update_discount_code(session, fixed_code.id,
                                       expires_at=datetime.now(timezone.utc) - timedelta(days=30))

    def test_usage_count_not_editable(self, session, fixed_code):
        with pytest.raises(ValidationError):
            admin.update_discount_code(session, fixed_code.id, usage_count=0)

    def test_list_newest_first(self, session, fixed_code, percent_code):
        codes = [d.code for d in admin.list_discount_codes(session)]
        assert codes == ['TWENTY', 'SAVE10']

    def test_delete(self, session, fixed_code):
        code_id = fixed_code.id
        admin.delete_discount_code(session, code_id)
        with pytest.raises(NotFoundError):
            admin.get_discount_code(session, code_id)

    def test_usage_stats(self, session, fixed_code, item_a):
        for user_id in ('u1', 'u2'):
            result = create_order(session, OrderRequest(
                customer_email='a@example.com', customer_name='A', shipping_address={},
                lines=[{'catalog_item_id': item_a.id, 'quantity': 3}], user_id=user_id,
                discount_code_id=fixed_code.id, discount_amount=Decimal('10'),
            ))
            record_discount_usage(session, fixed_code.id, user_id, result.order_id, Decimal('10'), result.subtotal)

        stats = admin.get_usage_stats(session, fixed_code.id)

        assert stats['usage_count'] == 2
        assert stats['total_revenue'] == Decimal('60.00')
        assert stats['total_discount'] == Decimal('20.00')


class TestDiscountDisplay:
    """Tests for display text and the activity check."""

    def test_display(self, session, fixed_code, percent_code, discount_factory):
        plain = discount_factory(code='TEN', discount_type='percentage', discount_value=Decimal('10'))

        assert admin.format_discount_display(fixed_code) == '$10.00 off'
        assert admin.format_discount_display(percent_code) == '20% off (max $5.00)'
        assert admin.format_discount_display(plain) == '10% off'
        assert admin.format_discount_display(None) == ''

    def test_is_active(self, session, fixed_code, discount_factory):
        now = datetime.now(timezone.utc)

        assert admin.is_discount_code_active(fixed_code) is True
        assert admin.is_discount_code_active(discount_factory(is_active=False)) is False
        assert admin.is_discount_code_active(discount_factory(expires_at=now - timedelta(minutes=1))) is False
        assert admin.is_discount_code_active(discount_factory(starts_at=now + timedelta(days=1))) is False
        assert admin.is_discount_code_active(discount_factory(usage_limit=2, usage_count=2)) is False


class TestCliCommands:
    """Tests for the flask CLI commands."""

    def test_create_and_deactivate(self, app, session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            'create-discount-code', '--code', 'cli5', '--type', 'fixed', '--value', '5',
            '--usage-limit', '100',
        ])
        assert result.exit_code == 0
        assert 'CLI5' in result.output
        assert '$5.00 off' in result.output

        result = runner.invoke(args=['deactivate-discount-code', 'cli5'])
        assert result.exit_code == 0
        assert session.query(DiscountCode).filter_by(code='CLI5').one().is_active is False

    def test_deactivate_unknown(self, app, session):
        result = app.test_cli_runner().invoke(args=['deactivate-discount-code', 'missing'])
        assert 'not found' in result.output
