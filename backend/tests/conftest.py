"""
Pytest fixtures for procurement backend tests.

Provides test database setup, organization/buyer/catalog fixtures, and test client.
"""

import pytest

from procure import create_app
from procure.extensions import db
from procure.models import Buyer, Category, CreditTerm, Organization, Product
from procure.models.tenancy import BUYER_STATUS_ACTIVE


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PO_TAX_RATE_BPS': 2000,
        'WORKFLOW_RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org(db_session):
    """Buying organization A."""
    org = Organization(name="Org A - Acme Wholesale", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def other_org(db_session):
    """Buying organization B."""
    org = Organization(name="Org B - Beta Retail", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def buyer(db_session, org):
    """Approved buyer of organization A."""
    buyer = Buyer(
        org_id=org.id,
        full_name="Alice Buyer",
        email="alice@acme.example",
        status=BUYER_STATUS_ACTIVE,
    )
    db_session.add(buyer)
    db_session.commit()
    return buyer


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Hardware")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def make_product(db_session, category):
    """Factory: make_product(sku, price_cents, category_id=<hardware>, is_active=True)."""
    def _make(sku, price_cents, *, category_id="default", is_active=True):
        product = Product(
            sku=sku,
            name=f"Product {sku}",
            price_cents=price_cents,
            category_id=category.id if category_id == "default" else category_id,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Product P: list price 50.00 in the Hardware category."""
    return make_product("P-100", 5000)


@pytest.fixture(scope='function')
def make_credit_term(db_session):
    def _make(org_id, *, limit_cents=None, used_cents=0, is_active=True, name="Net 30"):
        term = CreditTerm(
            org_id=org_id,
            name=name,
            payment_days=30,
            credit_limit_cents=limit_cents,
            used_credit_cents=used_cents,
            is_active=is_active,
        )
        db_session.add(term)
        db_session.commit()
        return term
    return _make
