"""Authentication routes.

Provides credential-based authentication endpoints:
- POST /auth/signup: Create an account and get a JWT token
- POST /auth/login: Check credentials and get a JWT token
- GET /auth/me: The authenticated user
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import Field
from sqlalchemy.orm import Session

from easyserve.api.dependencies import get_current_user, get_db
from easyserve.api.schemas import AmountInput, CamelModel, UserResponse
from easyserve.lib.money import optional_money
from easyserve.models.users import User, UserRole
from easyserve.services.auth_service import AuthService


router = APIRouter(prefix="/auth", tags=["Authentication"])


# Request/Response Models
class SignupRequest(CamelModel):
    """Signup payload. Provider accounts may describe their directory listing."""
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address", examples=["user@example.com"])
    password: str = Field(..., description="Password (min 6 characters)")
    phone: Optional[str] = Field(None, description="Phone number")
    role: UserRole = Field(UserRole.USER, description="user or provider")
    category_id: Optional[UUID] = Field(None, description="Provider's service category")
    area: Optional[str] = Field(None, description="Provider's service area")
    price: Optional[AmountInput] = Field(None, description="Provider's advertised base price")


class LoginRequest(CamelModel):
    email: str
    password: str


class TokenResponse(CamelModel):
    """Token response with the user's public profile."""
    token: str = Field(..., description="JWT access token")
    user: UserResponse


# Dependency to get AuthService
def get_auth_service(
    db: Session = Depends(get_db)
) -> AuthService:
    """Get AuthService instance with database session."""
    return AuthService(db)


# Routes
@router.post(
    "/signup",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
def signup(
    request: SignupRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """
    Create a user account.

    Providers also get a directory profile and an empty wallet.

    Errors:
    - 400: Missing fields or short password
    - 409: Email already registered
    """
    result = auth_service.signup(
        name=request.name,
        email=request.email,
        password=request.password,
        phone=request.phone,
        role=request.role,
        category_id=request.category_id,
        area=request.area,
        price=optional_money(request.price),
    )
    return TokenResponse(token=result["token"], user=UserResponse.model_validate(result["user"]))


@router.post("/login", response_model=TokenResponse, summary="Log in")
def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """
    Check credentials and issue a JWT token.

    Errors:
    - 404: No account for this email
    - 401: Wrong password
    """
    result = auth_service.login(request.email, request.password)
    return TokenResponse(token=result["token"], user=UserResponse.model_validate(result["user"]))


@router.get("/me", response_model=UserResponse, summary="Current user")
def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)
