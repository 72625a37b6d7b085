"""
Pytest fixtures for stockmatrix backend tests.

Provides test database setup, tenant fixtures, and test client.
"""

import pytest
from stockmatrix import create_app
from stockmatrix.extensions import db
from stockmatrix.models import Tenant, Product, ProductVariant, InventoryTransaction


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0.0,
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
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(name="Tenant A - Acme Corp", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Tenant B - Beta Inc", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a):
    """Create a T-shirt product in Tenant A priced at 10.00."""
    product = Product(tenant_id=tenant_a.id, sku="TSHIRT", name="T-Shirt", price_cents=1000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    """Create a product in Tenant B."""
    product = Product(tenant_id=tenant_b.id, sku="MUG", name="Mug", price_cents=800)
    db_session.add(product)
    db_session.commit()
    return product


def make_variant(db_session, product, *, sku: str, stock: int = 0, reserved: int = 0, **extra) -> ProductVariant:
    """Insert a variant directly, bypassing the ledger (fixture data only)."""
    variant = ProductVariant(
        tenant_id=product.tenant_id,
        product_id=product.id,
        sku=sku,
        name=extra.pop("name", sku),
        attributes=extra.pop("attributes", []),
        price_cents=extra.pop("price_cents", product.price_cents),
        stock=stock,
        reserved_stock=reserved,
        **extra,
    )
    db_session.add(variant)
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def variant_a(db_session, product_a):
    """Variant in Tenant A with 10 on hand and nothing reserved."""
    return make_variant(
        db_session,
        product_a,
        sku="TSHIRT-M-RED",
        stock=10,
        attributes=[{"name": "Size", "value": "M"}, {"name": "Color", "value": "Red"}],
    )


@pytest.fixture(scope='function')
def variant_b(db_session, product_b):
    """Variant in Tenant B."""
    return make_variant(db_session, product_b, sku="MUG-WHITE", stock=5)


def ledger_rows(db_session, variant_id: int) -> list[InventoryTransaction]:
    return (
        db_session.query(InventoryTransaction)
        .filter_by(variant_id=variant_id)
        .order_by(InventoryTransaction.id.asc())
        .all()
    )


def tenant_headers(tenant, actor: str | None = None) -> dict:
    """Helper to create tenant context headers."""
    headers = {'X-Tenant-ID': str(tenant.id)}
    if actor:
        headers['X-Actor'] = actor
    return headers
