"""
Pytest fixtures for AgroStock backend tests.

Provides an in-memory application, a per-test table wipe, the usual cast
of users (one per role) and helpers for funding balances.
"""

import pytest
from decimal import Decimal

from agrostock import create_app
from agrostock.extensions import db
from agrostock.models import Supplier, User
from agrostock.services import balance_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADVANCE_DEFAULT_DEADLINE_HOURS': 0,
        'PRIVILEGED_ROLES': ('admin',),
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


def _make_user(db_session, username: str, role: str) -> User:
    user = User(username=username, full_name=username.title(), role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def collector(db_session):
    return _make_user(db_session, "collector", "collector")


@pytest.fixture(scope='function')
def other_collector(db_session):
    return _make_user(db_session, "collector2", "collector")


@pytest.fixture(scope='function')
def vendor(db_session):
    return _make_user(db_session, "vendor", "vendor")


@pytest.fixture(scope='function')
def distiller(db_session):
    return _make_user(db_session, "distiller", "distiller")


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Coop Nord", contact="+261 34 00 000 01")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def other_supplier(db_session):
    supplier = Supplier(name="Coop Sud", contact="+261 34 00 000 02")
    db_session.add(supplier)
    db_session.commit()
    return supplier


def fund(user: User, amount) -> None:
    """Credit a user's balance for test setup."""
    balance_service.credit(user.id, amount)


def balance_of(user: User) -> Decimal:
    return balance_service.get_balance(user.id)


def actor_headers(user: User) -> dict:
    """Helper to create caller identification headers."""
    return {'X-User-Id': str(user.id)}
