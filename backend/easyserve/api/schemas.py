"""
Response schemas shared by the marketplace routers.

Field names are snake_case in Python and camelCase on the wire, matching what
the mobile client sends and reads. Inputs accept either spelling.
"""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from easyserve.lib.money import MAX_AMOUNT
from easyserve.models.bids import BidStatus
from easyserve.models.bookings import BookingStatus
from easyserve.models.service_requests import RequestStatus, RequestType
from easyserve.models.users import UserRole
from easyserve.models.wallets import TransactionStatus, TransactionType


def _decimal_to_float(value: Any) -> Any:
    return float(value) if isinstance(value, Decimal) else value


# Numeric(12, 2) columns come back as Decimal; the API speaks plain JSON numbers.
# Stored amounts have two places and at most 12 digits, well inside float precision,
# so the JSON number reads back as the same two-place value. Clients round for display.
Money = Annotated[float, BeforeValidator(_decimal_to_float)]

# Incoming amounts: finite and within what a Numeric(12, 2) column stores.
# Sign rules (positive prices, positive withdrawals) belong to the services.
AmountInput = Annotated[
    float,
    Field(ge=-float(MAX_AMOUNT), le=float(MAX_AMOUNT), allow_inf_nan=False),
]


class CamelModel(BaseModel):
    """Base schema: camelCase aliases, populated from ORM objects or either spelling."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str


class UserResponse(CamelModel):
    id: UUID
    name: str
    email: str
    phone: Optional[str] = None
    role: UserRole


class ProviderResponse(CamelModel):
    id: UUID
    name: str
    category_id: Optional[UUID] = None
    area: Optional[str] = None
    price: Optional[Money] = None
    rating: Optional[Money] = None
    image: Optional[str] = None


class CategoryResponse(CamelModel):
    id: UUID
    name: str
    icon: Optional[str] = None


class ServiceRequestResponse(CamelModel):
    """Service request as returned to clients and providers."""
    id: UUID
    user_id: UUID
    user_name: str
    category_id: UUID
    category_name: str
    description: str
    request_type: RequestType
    fixed_amount: Optional[Money] = None
    min_bid_amount: Optional[Money] = None
    max_bid_amount: Optional[Money] = None
    bidding_end_date: Optional[datetime] = None
    status: RequestStatus
    assigned_provider_id: Optional[UUID] = None
    assigned_provider_name: Optional[str] = None
    final_amount: Optional[Money] = None
    accepted_bid_id: Optional[UUID] = None
    images: List[str] = []
    created_at: datetime


class BidResponse(CamelModel):
    id: UUID
    service_request_id: UUID
    provider_id: UUID
    provider_name: str
    proposed_amount: Money
    note: Optional[str] = None
    estimated_time: Optional[str] = None
    attachments: List[Any] = []
    status: BidStatus
    created_at: datetime


class BookingResponse(CamelModel):
    """Booking with its dual-confirmation flags."""
    id: UUID
    request_id: UUID
    bid_id: Optional[UUID] = None
    user_id: UUID
    user_name: str
    provider_id: UUID
    provider_name: str
    agreed_price: Money
    status: BookingStatus
    completed_by_provider: bool
    completed_by_user: bool
    user_rating: Optional[int] = None
    user_review: Optional[str] = None
    is_paid: bool
    created_at: datetime


class BookingMessageResponse(CamelModel):
    sender_role: str
    sender_id: UUID
    text: str
    created_at: datetime


class WalletTransactionResponse(CamelModel):
    id: int
    type: TransactionType
    amount: Money
    reference: str
    status: TransactionStatus
    booking_id: Optional[UUID] = None
    created_at: datetime


class WalletResponse(CamelModel):
    id: UUID
    user_id: UUID
    balance: Money
    held_balance: Money
    total_earned: Money
    transactions: List[WalletTransactionResponse] = []


class AssignmentResponse(CamelModel):
    """Result of a bid or fixed-request acceptance."""
    message: str
    request: ServiceRequestResponse
    booking: BookingResponse


class BookingActionResponse(CamelModel):
    message: str
    booking: BookingResponse
