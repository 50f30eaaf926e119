"""
Pytest fixtures for kasir backend tests.

The database is a temporary SQLite file rather than :memory: so that
worker threads in the concurrency tests see the same data as the test body.
"""

import pytest

from kasir import create_app
from kasir.config import TestingConfig
from kasir.extensions import db
from kasir.models import User, Product, DailyCounter
from kasir.services.auth_service import hash_password


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    db_file = tmp_path_factory.mktemp("kasir") / "test_kasir.sqlite3"

    class FileTestingConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_file}"

    app = create_app(FileTestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before the test, keep the schema."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


def make_user(username: str, role: str, *, is_active: bool = True) -> User:
    user = User(
        username=username,
        full_name=username.title(),
        password_hash=hash_password(PASSWORD),
        role=role,
        is_active=is_active,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user("admin_test", "admin")


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return make_user("kasir_test", "cashier")


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username, PASSWORD))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, cashier_user.username, PASSWORD))


@pytest.fixture(scope='function')
def product(db_session):
    p = Product(name="Kopi Susu", price=18000, category="Minuman", stock=None)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def stocked_product(db_session):
    p = Product(name="Roti Bakar", price=15000, category="Makanan", stock=5)
    db_session.add(p)
    db_session.commit()
    return p


def set_counter(business_date, last_seq: int) -> None:
    """Pretend last_seq transactions were already numbered on business_date."""
    db.session.merge(DailyCounter(business_date=business_date, last_seq=last_seq))
    db.session.commit()


def sale_payload(**overrides) -> dict:
    """Checkout payload as the POS client sends it: 2 x 2000 + 1 x 5000, cash 10000."""
    payload = {
        "items": [
            {"productId": "p-es-teh", "name": "Es Teh", "price": 2000, "quantity": 2, "subtotal": 4000},
            {"productId": "p-nasi", "name": "Nasi Goreng", "price": 5000, "quantity": 1, "subtotal": 5000},
        ],
        "subtotal": 9000,
        "discount": 0,
        "total": 9000,
        "date": "2025-01-15T10:00:00Z",
        "paymentMethod": "cash",
        "cashReceived": 10000,
        "change": 1000,
    }
    payload.update(overrides)
    return payload


def get_auth_token(client, username: str, password: str) -> str:
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
