"""
Pytest fixtures for POSDesk backend tests.

Provides test database setup, users per role, sale factories, and test client.
"""

from datetime import datetime

import pytest
from posdesk import create_app
from posdesk.extensions import db
from posdesk.models import User, Product, Sale, SaleLine
from posdesk.services.auth_service import create_user, create_default_roles, assign_role
from posdesk.services import permission_service


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
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
def setup_roles(db_session):
    """Setup default roles and permissions."""
    create_default_roles()
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions()
    db_session.commit()


def _make_user(username: str, role: str | None) -> User:
    # Low bcrypt cost keeps the suite fast
    user = create_user(
        username=username,
        email=f"{username}@posdesk.test",
        password=TEST_PASSWORD,
        rounds=4,
    )
    if role:
        assign_role(user.id, role)
    return user


@pytest.fixture(scope='function')
def admin_user(setup_roles):
    return _make_user("admin", "admin")


@pytest.fixture(scope='function')
def manager_user(setup_roles):
    return _make_user("manager", "manager")


@pytest.fixture(scope='function')
def cashier_user(setup_roles):
    return _make_user("cashier", "cashier")


@pytest.fixture(scope='function')
def roleless_user(setup_roles):
    """Active account with no role: authenticates but holds no permissions."""
    return _make_user("visitor", None)


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, manager_user.username))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, cashier_user.username))


@pytest.fixture(scope='function')
def roleless_headers(client, roleless_user):
    return auth_headers(get_auth_token(client, roleless_user.username))


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product("SKU-1", "Name", price_cents=1500)."""
    def _make(sku: str, name: str, price_cents: int = 1000, stock_quantity: int = 0) -> Product:
        product = Product(sku=sku, name=name, price_cents=price_cents, stock_quantity=stock_quantity)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_sale(db_session):
    """
    Factory for completed sales.

    lines: list of (product, quantity, unit_price_cents)
    """
    def _make(lines, sale_id: int | None = None, created_at: datetime | None = None, **fields) -> Sale:
        subtotal = sum(qty * price for _, qty, price in lines)
        sale = Sale(
            id=sale_id,
            created_at=created_at or datetime(2026, 3, 1, 12, 0, 0),
            payment_method=fields.pop("payment_method", "cash"),
            subtotal_cents=subtotal,
            tax_cents=0,
            final_amount_cents=subtotal,
            **fields,
        )
        db_session.add(sale)
        db_session.flush()
        for product, qty, price in lines:
            db_session.add(SaleLine(
                sale_id=sale.id,
                product_id=product.id,
                quantity=qty,
                unit_price_cents=price,
                line_total_cents=qty * price,
            ))
        db_session.commit()
        return sale
    return _make
