"""
Pytest fixtures for ComercioPro backend tests.

Provides test database setup, two stores with their admins, a superadmin,
product helpers that go through the stock ledger, and auth helpers for the
Flask test client.
"""

import pytest

from comerciopro import create_app
from comerciopro.config import TestingConfig
from comerciopro.extensions import db
from comerciopro.models import Movement, Product, Store
from comerciopro.models.auth import ROLE_ADMIN, ROLE_SUPERADMIN
from comerciopro.services.auth_service import create_user
from comerciopro.services.products_service import create_product

PASSWORD = "secret123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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
def store_a(db_session):
    """Create Store A."""
    store = Store(name="Loja A", location="Centro")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session):
    """Create Store B."""
    store = Store(name="Loja B", location="Bairro")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def superadmin(db_session):
    """Chain-wide superadmin (no store)."""
    return create_user(
        name="Super Admin",
        email="super@sistema.com",
        password=PASSWORD,
        role=ROLE_SUPERADMIN,
    )


@pytest.fixture(scope='function')
def admin_a(db_session, store_a):
    """Store admin of Store A."""
    return create_user(
        name="Admin A",
        email="admin_a@loja.com",
        password=PASSWORD,
        role=ROLE_ADMIN,
        store_id=store_a.id,
    )


@pytest.fixture(scope='function')
def admin_b(db_session, store_b):
    """Store admin of Store B."""
    return create_user(
        name="Admin B",
        email="admin_b@loja.com",
        password=PASSWORD,
        role=ROLE_ADMIN,
        store_id=store_b.id,
    )


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory: create a product through the products service so that any
    opening stock is backed by an "Initial stock" movement.
    """
    def _make(user, store, name="Produto", stock=0, weight=None, unit="un", category="Geral"):
        patch = {
            "name": name,
            "category": category,
            "unit": unit,
            "weight": weight,
            "stock_quantity": stock,
        }
        return create_product(patch=patch, user=user, store_id=store.id)

    return _make


@pytest.fixture(scope='function')
def product_a(make_product, admin_a, store_a):
    """Product in Store A with 10 units."""
    return make_product(admin_a, store_a, name="Arroz 5kg", stock=10, weight=5, unit="kg")


@pytest.fixture(scope='function')
def product_b(make_product, admin_b, store_b):
    """Product in Store B with 10 units."""
    return make_product(admin_b, store_b, name="Feijao 1kg", stock=10, weight=1, unit="kg")


def fetch_product(product_id: int) -> Product:
    """Reload a product, bypassing the identity map."""
    db.session.expire_all()
    return db.session.get(Product, product_id)


def movement_count(product_id: int | None = None) -> int:
    query = db.session.query(Movement)
    if product_id is not None:
        query = query.filter(Movement.product_id == product_id)
    return query.count()


def get_auth_token(client, email: str, password: str = PASSWORD) -> str | None:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def login_headers(client, user) -> dict:
    token = get_auth_token(client, user.email)
    assert token, f"login failed for {user.email}"
    return auth_headers(token)
