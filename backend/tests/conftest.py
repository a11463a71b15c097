"""
Pytest fixtures for stockledger backend tests.

Provides test database setup, two tenants with users, and a test client.
"""

import pytest
from app import create_app
from app.extensions import db
from app.models import Company, User, Customer, Supplier, Product, Location


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ALLOW_NEGATIVE_STOCK': False,
        'DB_RETRY_ATTEMPTS': 1,
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
def company_a(db_session):
    """Create Company A (first tenant)."""
    company = Company(name="Company A - Acme Corp", code="ACME", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Create Company B (second tenant)."""
    company = Company(name="Company B - Beta Inc", code="BETA", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def user_a(db_session, company_a):
    user = User(company_id=company_a.id, email="ops@acme.com", first_name="Ada", last_name="Ops")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_b(db_session, company_b):
    user = User(company_id=company_b.id, email="ops@beta.com", first_name="Bo", last_name="Ops")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer_a(db_session, company_a):
    customer = Customer(company_id=company_a.id, name="Customer A", email="buyer@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, company_b):
    customer = Customer(company_id=company_b.id, name="Customer B")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier_a(db_session, company_a):
    supplier = Supplier(company_id=company_a.id, name="Supplier A")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(company, sku, stock=0, cost=...)."""
    def _make(company, sku, stock=0, cost_price_cents=500, selling_price_cents=1000):
        product = Product(
            company_id=company.id,
            sku=sku,
            name=f"Product {sku}",
            cost_price_cents=cost_price_cents,
            selling_price_cents=selling_price_cents,
            current_stock=stock,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product_a(make_product, company_a):
    """Product in Company A with 10 units on hand."""
    return make_product(company_a, "PROD-A-001", stock=10)


@pytest.fixture(scope='function')
def product_b(make_product, company_b):
    """Product in Company B with 10 units on hand."""
    return make_product(company_b, "PROD-B-001", stock=10)


@pytest.fixture(scope='function')
def make_location(db_session):
    """Factory: make_location(company, code, stock=0, capacity=None, parent=None)."""
    def _make(company, code, stock=0, capacity=None, parent=None, type="WAREHOUSE", is_active=True):
        location = Location(
            company_id=company.id,
            name=f"Location {code}",
            code=code,
            type=type,
            current_stock=stock,
            capacity=capacity,
            parent_id=parent.id if parent is not None else None,
            is_active=is_active,
        )
        db_session.add(location)
        db_session.commit()
        return location
    return _make


