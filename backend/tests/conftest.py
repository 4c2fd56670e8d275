"""
Pytest fixtures for Kasir backend tests.

Provides test database setup, two tenants for isolation checks, catalog
fixtures, a product cache driven by a fake clock, and auth helpers.
"""

import pytest

from kasir import create_app
from kasir.extensions import db
from kasir.models import Tenant, User, Brand, Category, Product
from kasir.models.auth import ROLE_ADMIN, ROLE_CASHIER
from kasir.services.auth_service import hash_password
from kasir.services.cache import ProductCache
from kasir.services.session_service import create_session

PASSWORD = "Password123"

# Cheap bcrypt cost keeps the suite fast; production uses 12
TEST_BCRYPT_ROUNDS = 4


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CACHE_ENABLED': True,
        'LOG_LEVEL': 'WARNING',
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
def clock():
    return FakeClock()


@pytest.fixture(scope='function')
def cache(app, clock):
    """Fresh cache per test, registered as the app's product cache."""
    product_cache = ProductCache(product_ttl=600, list_ttl=300, clock=clock)
    app.extensions['product_cache'] = product_cache
    return product_cache


@pytest.fixture(scope='function')
def db_session(app, cache):
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
    tenant = Tenant(name="Toko A - Kopi Kita", code="KOPI", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Toko B - Roti Enak", code="ROTI", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


def make_user(db_session, tenant, username, role):
    user = User(
        tenant_id=tenant.id,
        username=username,
        email=f"{username}@{tenant.code.lower()}.local",
        password_hash=hash_password(PASSWORD, rounds=TEST_BCRYPT_ROUNDS),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_a(db_session, tenant_a):
    return make_user(db_session, tenant_a, "admin_a", ROLE_ADMIN)


@pytest.fixture(scope='function')
def cashier_a(db_session, tenant_a):
    return make_user(db_session, tenant_a, "cashier_a", ROLE_CASHIER)


@pytest.fixture(scope='function')
def cashier_a2(db_session, tenant_a):
    return make_user(db_session, tenant_a, "cashier_a2", ROLE_CASHIER)


@pytest.fixture(scope='function')
def admin_b(db_session, tenant_b):
    return make_user(db_session, tenant_b, "admin_b", ROLE_ADMIN)


@pytest.fixture(scope='function')
def brand_a(db_session, tenant_a):
    brand = Brand(tenant_id=tenant_a.id, name="Kapal Api")
    db_session.add(brand)
    db_session.commit()
    return brand


@pytest.fixture(scope='function')
def category_a(db_session, tenant_a):
    category = Category(tenant_id=tenant_a.id, name="Minuman")
    db_session.add(category)
    db_session.commit()
    return category


def make_product(db_session, tenant, sku, name, price, stock=100, **kwargs):
    product = Product(tenant_id=tenant.id, sku=sku, name=name, price=price, stock=stock, **kwargs)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a, brand_a, category_a):
    """Tracked product in Tenant A priced at 15000."""
    return make_product(
        db_session, tenant_a, "KOPI-001", "Kopi Susu", 15000, stock=20,
        brand_id=brand_a.id, category_id=category_a.id,
    )


@pytest.fixture(scope='function')
def product_a2(db_session, tenant_a):
    """Tracked product in Tenant A priced at 7500."""
    return make_product(db_session, tenant_a, "TEH-001", "Teh Manis", 7500, stock=10)


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    """Product in Tenant B with the same SKU as product_a."""
    return make_product(db_session, tenant_b, "KOPI-001", "Kopi Hitam", 9000, stock=5)


def token_for(user) -> str:
    _, token = create_session(user.id)
    return token


def get_auth_token(client, tenant_code: str, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token through the login endpoint."""
    response = client.post('/api/auth/login', json={
        'tenant_code': tenant_code,
        'username': username,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_a):
    return auth_headers(token_for(admin_a))


@pytest.fixture(scope='function')
def cashier_headers(cashier_a):
    return auth_headers(token_for(cashier_a))
