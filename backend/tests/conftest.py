"""
Pytest fixtures for pet shop backend tests.

Provides an in-memory database (wiped before every test), catalog and
customer fixtures, and an authenticated test client.
"""

import pytest

from petshop import create_app
from petshop.extensions import db
from petshop.models import Category, Customer, Supplier
from petshop.services import auth_service, products_service

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """
    Application on a file-backed SQLite database.

    Threads each open their own connection here, so write locks between
    concurrent units of work are real. Tests run inside its app context.
    """
    file_app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'petshop.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with file_app.app_context():
        db.create_all()
        yield file_app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test; the schema is kept."""
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()
    db.session.expunge_all()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return auth_service.create_user("Owner", "owner@petshop.local", TEST_PASSWORD, role="ADMIN")


@pytest.fixture(scope='function')
def clerk_user(db_session):
    return auth_service.create_user("Clerk", "clerk@petshop.local", TEST_PASSWORD, role="USER")


@pytest.fixture(scope='function')
def category(db_session, admin_user):
    """PRODUCT category owned by the admin."""
    category = Category(user_id=admin_user.id, name="Dog food", kind="PRODUCT")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Pet Distribuidora", tax_id="12.345.678/0001-90")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def make_product(db_session, category, supplier, admin_user):
    """Factory: product with opening stock recorded as an INITIAL_STOCK movement."""
    counter = {"n": 0}

    def _make(name=None, *, stock=0, price_cents=1000, cost_cents=600, min_stock=0, unit="UN"):
        counter["n"] += 1
        return products_service.create_product(
            patch={
                "name": name or f"Product {counter['n']}",
                "category_id": category.id,
                "supplier_id": supplier.id,
                "unit": unit,
                "price_cents": price_cents,
                "cost_cents": cost_cents,
                "min_stock": min_stock,
            },
            initial_stock=stock,
            user_id=admin_user.id,
        )

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Premium kibble, 10 units in stock at R$ 25,00."""
    return make_product("Premium kibble 1kg", stock=10, price_cents=2500, cost_cents=1500)


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Maria Silva", phone="11 99999-0000", pet_names="Rex, Mia", debt_cents=0)
    db_session.add(customer)
    db_session.commit()
    return customer


def get_auth_token(client, email: str, password: str) -> str:
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


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email, TEST_PASSWORD))


@pytest.fixture(scope='function')
def clerk_headers(client, clerk_user):
    return auth_headers(get_auth_token(client, clerk_user.email, TEST_PASSWORD))
