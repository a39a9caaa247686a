"""Authentication service for email/password accounts.

Handles the account flow the marketplace needs:
1. Signup: create the user; providers also get a Provider profile and a Wallet
2. Login: check credentials and issue a JWT
3. Lookup: resolve the user behind a token
"""
from decimal import Decimal
from typing import Optional
from uuid import UUID

import bcrypt
from sqlalchemy import select
from sqlalchemy.orm import Session

from easyserve.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
)
from easyserve.lib.db import transaction
from easyserve.lib.jwt import create_access_token
from easyserve.lib.logging import get_logger
from easyserve.models.categories import Category
from easyserve.models.providers import Provider
from easyserve.models.users import User, UserRole
from easyserve.services.wallet_service import WalletService


logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only reads the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """Hash a password with bcrypt (salt and cost are embedded in the result)."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("ascii")


def verify_password(password: str, stored: str) -> bool:
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(encoded, stored.encode("ascii"))


class AuthService:
    """Authentication service for credential login.

    Creates provider profiles and wallets at signup so settlement always
    finds a wallet for a registered provider.
    """

    def __init__(self, session: Session):
        """Initialize auth service with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def signup(
        self,
        name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
        role: UserRole = UserRole.USER,
        category_id: Optional[UUID] = None,
        area: Optional[str] = None,
        price: Optional[Decimal] = None,
    ) -> dict:
        """Register a user and return a token with the public profile.

        Raises:
            BadRequestException: Missing fields, or password too short or too long
            ConflictException: Email already registered
            ForbiddenException: Admin role requested
            NotFoundException: Unknown category for a provider
        """
        if not name or not email or not password:
            raise BadRequestException("All fields required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise BadRequestException(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise BadRequestException(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        if role == UserRole.ADMIN:
            raise ForbiddenException("Admin accounts cannot be created through signup")

        email = email.strip().lower()

        with transaction(self.session):
            existing = self.session.execute(
                select(User.id).where(User.email == email)
            ).first()
            if existing is not None:
                raise ConflictException("User already exists")

            user = User(
                name=name.strip(),
                email=email,
                phone=phone,
                role=role,
                password_hash=hash_password(password),
            )
            self.session.add(user)
            self.session.flush()

            if role == UserRole.PROVIDER:
                if category_id is not None and self.session.get(Category, category_id) is None:
                    raise NotFoundException("Category", str(category_id))
                self.session.add(
                    Provider(
                        id=user.id,
                        name=user.name,
                        category_id=category_id,
                        area=area,
                        price=price,
                    )
                )
                WalletService(self.session).open_wallet(user.id)

        logger.info("User signed up", extra={"context": {"user_id": str(user.id), "role": role.value}})
        return self._session_payload(user)

    def login(self, email: str, password: str) -> dict:
        """Check credentials and issue a token.

        Raises:
            BadRequestException: Missing fields
            NotFoundException: No user with that email
            UnauthorizedException: Wrong password
        """
        if not email or not password:
            raise BadRequestException("All fields required")

        user = self.session.execute(
            select(User).where(User.email == email.strip().lower())
        ).scalar_one_or_none()
        if user is None:
            raise NotFoundException("User")
        if not verify_password(password, user.password_hash):
            raise UnauthorizedException("Wrong password")

        return self._session_payload(user)

    def get_user(self, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundException("User", str(user_id))
        return user

    @staticmethod
    def _session_payload(user: User) -> dict:
        token = create_access_token(user_id=str(user.id), role=user.role.value)
        return {"token": token, "user": user}
