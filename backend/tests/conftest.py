"""
Pytest fixtures for Stockpoint backend tests.

Provides an in-memory database, a test client, and catalog/staff fixtures.
"""

import pytest
from stockpoint import create_app
from stockpoint.extensions import db
from stockpoint.models import Customer, Product, User
from stockpoint.services.sales_service import SaleCommitEngine


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TAX_RATE_BPS': 0,
        'COMMIT_RETRY_ATTEMPTS': 1,
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
def cashier(db_session):
    user = User(username="cashier", full_name="Casey Cashier", role="cashier", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager(db_session):
    user = User(username="manager", full_name="Morgan Manager", role="manager", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def product_a(db_session):
    """Product A: 25.00, ten units on hand."""
    product = Product(sku="SKU-A", name="Product A", price=2500, stock_quantity=10, min_stock=2)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session):
    """Product B: 10.00, one unit on hand."""
    product = Product(sku="SKU-B", name="Product B", price=1000, stock_quantity=1, min_stock=5)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session):
    person = Customer(name="Jane Roe", email="jane@example.com", loyalty_points=0)
    db_session.add(person)
    db_session.commit()
    return person


@pytest.fixture(scope='function')
def engine(app, db_session):
    return SaleCommitEngine.from_config(db_session, app.config)


def cashier_headers(user: User) -> dict:
    """Helper to create the identity header for a user."""
    return {'X-Cashier-Id': str(user.id)}


def stock_of(product_id: int) -> int:
    """Read the committed stock counter, bypassing the identity map."""
    return db.session.query(Product.stock_quantity).filter_by(id=product_id).scalar()


def count_rows(model) -> int:
    return db.session.query(model).count()
