"""
Tests for AuthService: signup, login, and password hashing.
"""
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from easyserve.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
)
from easyserve.lib.jwt import verify_token
from easyserve.models.providers import Provider
from easyserve.models.users import UserRole
from easyserve.models.wallets import Wallet
from easyserve.services.auth_service import AuthService, hash_password, verify_password


@pytest.fixture
def auth_service(db):
    return AuthService(db)


@pytest.mark.unit
def test_password_hash_roundtrip():
    stored = hash_password("hunter22")

    assert stored != "hunter22"
    assert verify_password("hunter22", stored)
    assert not verify_password("hunter23", stored)
    assert stored.startswith("$2b$")
    assert hash_password("hunter22") != stored  # fresh salt each time


@pytest.mark.unit
def test_password_over_bcrypt_limit_never_matches():
    stored = hash_password("x" * 72)

    assert verify_password("x" * 72, stored)
    assert not verify_password("x" * 73, stored)


@pytest.mark.unit
def test_signup_client(auth_service, db):
    result = auth_service.signup(name="Alice", email=" Alice@Example.com ", password="secret123")

    user = result["user"]
    assert user.email == "alice@example.com"
    assert user.role == UserRole.USER
    assert verify_token(result["token"])["sub"] == str(user.id)
    assert db.get(Provider, user.id) is None
    assert db.scalar(select(Wallet).where(Wallet.user_id == user.id)) is None


@pytest.mark.unit
def test_signup_provider_opens_profile_and_wallet(auth_service, db, category):
    result = auth_service.signup(
        name="Bob",
        email="bob@example.com",
        password="secret123",
        role=UserRole.PROVIDER,
        category_id=category.id,
        area="Gulshan",
        price=Decimal("800.00"),
    )

    user = result["user"]
    provider = db.get(Provider, user.id)
    assert provider.name == "Bob"
    assert provider.category_id == category.id
    assert provider.area == "Gulshan"
    wallet = db.scalar(select(Wallet).where(Wallet.user_id == user.id))
    assert wallet.balance == Decimal("0.00")
    assert verify_token(result["token"])["role"] == "provider"


@pytest.mark.unit
def test_signup_provider_unknown_category_creates_nothing(auth_service, db):
    with pytest.raises(NotFoundException):
        auth_service.signup(
            name="Bob",
            email="bob@example.com",
            password="secret123",
            role=UserRole.PROVIDER,
            category_id=uuid4(),
        )

    with pytest.raises(NotFoundException):
        auth_service.login("bob@example.com", "secret123")


@pytest.mark.unit
def test_signup_duplicate_email(auth_service):
    auth_service.signup(name="Alice", email="alice@example.com", password="secret123")

    with pytest.raises(ConflictException) as exc_info:
        auth_service.signup(name="Alice Again", email="ALICE@example.com", password="secret456")
    assert exc_info.value.message == "User already exists"


@pytest.mark.unit
@pytest.mark.parametrize(
    "name, email, password",
    [
        ("", "a@example.com", "secret123"),
        ("A", "", "secret123"),
        ("A", "a@example.com", "123"),
        ("A", "a@example.com", "p" * 73),
    ],
)
def test_signup_validation(auth_service, name, email, password):
    with pytest.raises(BadRequestException):
        auth_service.signup(name=name, email=email, password=password)


@pytest.mark.unit
def test_signup_cannot_create_admin(auth_service):
    with pytest.raises(ForbiddenException):
        auth_service.signup(name="Root", email="root@example.com", password="secret123", role=UserRole.ADMIN)


@pytest.mark.unit
def test_login(auth_service):
    created = auth_service.signup(name="Alice", email="alice@example.com", password="secret123")

    result = auth_service.login("alice@example.com", "secret123")
    assert result["user"].id == created["user"].id

    with pytest.raises(UnauthorizedException) as exc_info:
        auth_service.login("alice@example.com", "wrong-password")
    assert exc_info.value.message == "Wrong password"

    with pytest.raises(NotFoundException):
        auth_service.login("nobody@example.com", "secret123")
