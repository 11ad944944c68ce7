import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
import uuid

from storefront import create_app
from storefront.database import db_session, create_all, drop_all
from storefront.models import (
    CatalogItem, MenuItem, ProductVariant, VariantCombination, DiscountCode
)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    app = create_app('config.TestingConfig')
    app.config['TESTING'] = True
    return app


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema and database session for each test."""
    create_all()
    yield db_session
    db_session.rollback()
    db_session.remove()
    drop_all()


@pytest.fixture(scope='function')
def client(app, session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def guest_id():
    return f'guest-{uuid.uuid4()}'


@pytest.fixture(scope='function')
def shipping_address():
    return {
        'full_name': 'Ada Lovelace',
        'street_address': '12 Analytical Row',
        'city': 'London',
        'state_province': 'Greater London',
        'postal_code': 'N1 9GU',
        'country': 'United Kingdom',
        'phone_number': '+44 20 7946 0958',
    }


# =====================================================
# CATALOG
# =====================================================

@pytest.fixture(scope='function')
def item_a(session):
    """Catalog item priced 10.00."""
    item = CatalogItem(name='Item A', price=Decimal('10.00'), is_available=True)
    session.add(item)
    session.commit()
    return item


@pytest.fixture(scope='function')
def item_b(session):
    """Catalog item priced 20.00."""
    item = CatalogItem(name='Item B', price=Decimal('20.00'), is_available=True)
    session.add(item)
    session.commit()
    return item


@pytest.fixture(scope='function')
def menu_item(session):
    item = MenuItem(name='Margherita', category='Pizza', price=Decimal('12.50'), is_available=True)
    session.add(item)
    session.commit()
    return item


@pytest.fixture(scope='function')
def variant(session, item_a):
    variant = ProductVariant(catalog_item_id=item_a.id, variant_type='size', variant_value='L', is_available=True)
    session.add(variant)
    session.commit()
    return variant


@pytest.fixture(scope='function')
def combination(session, item_b):
    combination = VariantCombination(
        catalog_item_id=item_b.id,
        variant_values={'size': 'M', 'color': 'red'},
        is_available=True
    )
    session.add(combination)
    session.commit()
    return combination


# =====================================================
# DISCOUNTS
# =====================================================

def make_discount(session, **overrides):
    """Create a discount code; active, unlimited, started yesterday unless overridden."""
    values = dict(
        code=f'CODE{uuid.uuid4().hex[:8].upper()}',
        discount_type='fixed',
        discount_value=Decimal('10.00'),
        usage_count=0,
        one_per_customer=True,
        is_active=True,
        starts_at=datetime.now(timezone.utc) - timedelta(days=1),
    )
    values.update(overrides)
    discount = DiscountCode(**values)
    session.add(discount)
    session.commit()
    return discount


@pytest.fixture(scope='function')
def discount_factory(session):
    """Build discount codes with per-test overrides."""
    def factory(**overrides):
        return make_discount(session, **overrides)
    return factory


@pytest.fixture(scope='function')
def fixed_code(session):
    """$10 off, one per customer."""
    return make_discount(session, code='SAVE10')


@pytest.fixture(scope='function')
def percent_code(session):
    """20% off capped at $5."""
    return make_discount(
        session, code='TWENTY', discount_type='percentage',
        discount_value=Decimal('20'), max_discount_amount=Decimal('5.00')
    )
