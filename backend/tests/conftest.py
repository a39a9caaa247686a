"""
Shared fixtures: an in-memory SQLite database rebuilt for every test,
plus small factories for users, providers and categories.
"""
import os

# Must be set before easyserve.lib.settings is imported anywhere
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("JWT_SECRET", "test-secret")

from decimal import Decimal
from uuid import uuid4

import pytest

import easyserve.models  # noqa: F401
from easyserve.lib.db import SessionLocal, drop_db, init_db
from easyserve.lib.jwt import create_access_token
from easyserve.lib.metrics import get_metrics_collector, reset_metrics
from easyserve.models.categories import Category
from easyserve.models.providers import Provider
from easyserve.models.users import User, UserRole
from easyserve.models.wallets import Wallet
from easyserve.services.actor import Actor
from easyserve.services.auth_service import hash_password


PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(autouse=True)
def database():
    init_db()
    yield
    drop_db()


@pytest.fixture(autouse=True)
def clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def metrics():
    return get_metrics_collector()


@pytest.fixture
def db(database):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def other_session(database):
    """A second session, standing in for a concurrent request."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def category(db):
    category = Category(name="Plumbing", icon="water")
    db.add(category)
    db.commit()
    return category


@pytest.fixture
def make_user(db):
    def _make(name="Alice", role=UserRole.USER, email=None):
        user = User(
            name=name,
            email=email or f"{name.lower()}-{uuid4().hex[:8]}@example.com",
            role=role,
            password_hash=PASSWORD_HASH,
        )
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_provider(db, make_user, category):
    def _make(name="Bob", with_wallet=True, price="500.00"):
        user = make_user(name=name, role=UserRole.PROVIDER)
        db.add(Provider(id=user.id, name=name, category_id=category.id, area="Dhanmondi", price=Decimal(price)))
        if with_wallet:
            db.add(Wallet(user_id=user.id))
        db.commit()
        return user
    return _make


@pytest.fixture
def client_user(make_user):
    return make_user(name="Alice")


@pytest.fixture
def provider_user(make_provider):
    return make_provider(name="Bob")


@pytest.fixture
def actor_for():
    def _actor(user: User) -> Actor:
        return Actor(id=user.id, role=user.role)
    return _actor


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        token = create_access_token(user_id=str(user.id), role=user.role.value)
        return {"Authorization": f"Bearer {token}"}
    return _headers
