"""
Pytest fixtures for RetailPOS backend tests.

Provides the app on in-memory SQLite, a per-test table wipe, model
factories, and bearer-token helpers.
"""

from decimal import Decimal

import bcrypt
import pytest

from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import CashierShift, Customer, Discount, Product, User
from retailpos.services import shift_service

PASSWORD = "Password123"
# Low cost factor keeps fixture setup fast; verify_password accepts any cost
_FAST_HASH = bcrypt.hashpw(PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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


# =============================================================================
# FACTORIES
# =============================================================================

def make_user(username: str, role: str = "cashier", full_name: str | None = None) -> User:
    user = User(
        username=username,
        full_name=full_name or username.title(),
        password_hash=_FAST_HASH,
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def make_product(name: str = "Teh Botol", price="5000", stock: int = 100, **fields) -> Product:
    product = Product(
        name=name,
        price=Decimal(str(price)),
        stock=stock,
        status=fields.pop("status", "ACTIVE"),
        **fields,
    )
    db.session.add(product)
    db.session.commit()
    return product


def make_carton_product(name: str = "Indomie Goreng", price="3000", carton_price="100000",
                        pcs_per_carton: int = 40, stock: int = 200, **fields) -> Product:
    return make_product(
        name=name,
        price=price,
        stock=stock,
        carton_price=Decimal(str(carton_price)),
        pcs_per_carton=pcs_per_carton,
        supports_carton=True,
        **fields,
    )


def make_customer(name: str = "Budi", points: int = 0, spending="0", tier: str = "REGULAR",
                  customer_type: str = "regular", phone: str | None = None) -> Customer:
    customer = Customer(
        name=name,
        phone=phone,
        total_points=points,
        total_spending=Decimal(str(spending)),
        tier_level=tier,
        customer_type=customer_type,
        status="ACTIVE",
    )
    db.session.add(customer)
    db.session.commit()
    return customer


def make_discount(name: str = "Promo", type: str = "fixed", value="500", **fields) -> Discount:
    discount = Discount(
        name=name,
        type=type,
        value=Decimal(str(value)),
        applies_to=fields.pop("applies_to", "product"),
        active=fields.pop("active", True),
        status=fields.pop("status", "ACTIVE"),
        **fields,
    )
    db.session.add(discount)
    db.session.commit()
    return discount


def open_shift_for(user: User, opening_cash="100000", terminal: str | None = None) -> CashierShift:
    return shift_service.open_shift(user.id, Decimal(str(opening_cash)), terminal or f"POS-{user.id}")


@pytest.fixture
def cashier(db_session):
    return make_user("cashier1", "cashier", "Kasir Satu")


@pytest.fixture
def supervisor(db_session):
    return make_user("spv1", "supervisor", "Supervisor Satu")


@pytest.fixture
def admin(db_session):
    return make_user("admin1", "admin", "Admin Satu")


# =============================================================================
# AUTH HELPERS
# =============================================================================

def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
