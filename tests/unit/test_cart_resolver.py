"""
Unit tests for the cart item resolver.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from storefront.exceptions import CartValidationError, ValidationError
from storefront.services.cart_resolver import (
    CatalogItemRef, MenuItemRef, VariantRef, CombinationRef, resolve_cart_line, resolve_cart_lines
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestReferences:
    """Tests for product reference normalization."""

    def test_catalog_item_with_variant(self):
        line = resolve_cart_line({'catalog_item_id': 4, 'variant_id': 9, 'quantity': 1, 'price': 3}, now=NOW)

        assert line.product_ref == CatalogItemRef(4)
        assert line.refinement == VariantRef(9)
        assert line.catalog_item_id == 4
        assert line.menu_item_id is None
        assert line.variant_id == 9

    def test_menu_item_and_camel_case_aliases(self):
        line = resolve_cart_line({'menu_item_id': '7', 'combinationId': 3, 'quantity': 2}, now=NOW)

        assert line.product_ref == MenuItemRef(7)
        assert line.refinement == CombinationRef(3)

    def test_product_id_alias(self):
        line = resolve_cart_line({'product_id': 11, 'quantity': 1}, now=NOW)
        assert line.product_ref == CatalogItemRef(11)

    def test_missing_reference(self):
        with pytest.raises(CartValidationError):
            resolve_cart_line({'quantity': 1})

    def test_both_references(self):
        with pytest.raises(CartValidationError):
            resolve_cart_line({'catalog_item_id': 1, 'menu_item_id': 2, 'quantity': 1})

    def test_variant_and_combination_are_exclusive(self):
        with pytest.raises(CartValidationError):
            resolve_cart_line({'catalog_item_id': 1, 'variant_id': 2, 'combination_id': 3, 'quantity': 1})

    @pytest.mark.parametrize('quantity', [0, -1, 1.5, '2.5', 'two', None, True, float('inf'), float('nan')])
    def test_invalid_quantity(self, quantity):
        with pytest.raises(CartValidationError):
            resolve_cart_line({'catalog_item_id': 1, 'quantity': quantity})

    def test_error_names_the_offending_line(self):
        with pytest.raises(CartValidationError) as exc_info:
            resolve_cart_lines([
                {'catalog_item_id': 1, 'quantity': 1},
                {'catalog_item_id': 2, 'quantity': 0},
            ])

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.index == 1
        assert exc_info.value.to_dict()['line'] == 1


class TestPriceFallback:
    """Tests for the snapshot -> stored -> zero price chain."""

    def test_fresh_snapshot_wins(self):
        raw = {
            'catalog_item_id': 1, 'quantity': 1, 'price': '9.00',
            'product': {'price': '12.00', 'fetched_at': NOW - timedelta(seconds=30)},
        }
        line = resolve_cart_line(raw, max_snapshot_age=300, now=NOW)

        assert line.unit_price == Decimal('12.00')
        assert line.price_source == 'snapshot'
        assert line.needs_revalidation is False

    def test_stale_snapshot_falls_back_to_stored_price(self):
        raw = {
            'catalog_item_id': 1, 'quantity': 1, 'price': '9.00',
            'product': {'price': '12.00', 'fetched_at': (NOW - timedelta(hours=1)).isoformat()},
        }
        line = resolve_cart_line(raw, max_snapshot_age=300, now=NOW)

        assert line.unit_price == Decimal('9.00')
        assert line.price_source == 'stored'

    def test_snapshot_without_timestamp_is_stale(self):
        raw = {'catalog_item_id': 1, 'quantity': 1, 'price': '9.00', 'product': {'price': '12.00'}}
        assert resolve_cart_line(raw, now=NOW).unit_price == Decimal('9.00')

    def test_no_price_flags_revalidation(self):
        line = resolve_cart_line({'catalog_item_id': 1, 'quantity': 2, 'price': 'n/a'}, now=NOW)

        assert line.unit_price == Decimal('0.00')
        assert line.needs_revalidation is True
        assert line.line_total == Decimal('0.00')


class TestVariantMetadata:
    """Tests for the historical variant metadata shapes."""

    def test_dict_passes_through(self):
        line = resolve_cart_line({'catalog_item_id': 1, 'quantity': 1, 'variant_metadata': {'size': 'L'}})
        assert line.variant_metadata == {'size': 'L'}

    def test_json_string_is_parsed(self):
        line = resolve_cart_line({'catalog_item_id': 1, 'quantity': 1, 'variantMetadata': '{"size": "L"}'})
        assert line.variant_metadata == {'size': 'L'}

    def test_unparsable_string_becomes_display(self):
        line = resolve_cart_line({'catalog_item_id': 1, 'quantity': 1, 'variant_snapshot': 'Large / Red'})
        assert line.variant_metadata == {'display': 'Large / Red'}

    def test_variant_display_alias(self):
        line = resolve_cart_line({'catalog_item_id': 1, 'quantity': 1, 'variant_display': 'size: L'})
        assert line.variant_metadata == {'display': 'size: L'}

    def test_no_metadata(self):
        assert resolve_cart_line({'catalog_item_id': 1, 'quantity': 1}).variant_metadata is None
