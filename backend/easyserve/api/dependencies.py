"""
API dependencies for FastAPI dependency injection.

Provides common dependencies like database sessions, the authenticated actor,
and service instances bound to the request's session.
"""
from typing import Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from easyserve.api.middleware.error_handler import UnauthorizedException
from easyserve.lib.db import get_db as get_db_session
from easyserve.lib.jwt import InvalidTokenError, verify_token
from easyserve.models.users import User
from easyserve.services.actor import Actor
from easyserve.services.booking_service import BookingService
from easyserve.services.service_request_service import ServiceRequestService
from easyserve.services.wallet_service import WalletService


# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency to get current authenticated user from JWT token.

    Raises:
        UnauthorizedException: 401 if the token is missing, invalid, or names no user
    """
    if credentials is None:
        raise UnauthorizedException("Not authenticated")

    try:
        payload = verify_token(credentials.credentials)
    except InvalidTokenError:
        raise UnauthorizedException("Invalid authentication token") from None

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise UnauthorizedException("Invalid authentication token") from None

    user = db.get(User, user_id)
    if user is None:
        raise UnauthorizedException("User not found")
    return user


def get_current_actor(user: User = Depends(get_current_user)) -> Actor:
    """The authenticated identity, as passed into service operations."""
    return Actor(id=user.id, role=user.role)


def get_service_request_service(db: Session = Depends(get_db)) -> ServiceRequestService:
    return ServiceRequestService(db)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


def get_wallet_service(db: Session = Depends(get_db)) -> WalletService:
    return WalletService(db)
