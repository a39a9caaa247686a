"""
Booking lifecycle API routes.

A booking moves confirmed -> in-progress -> (provider done) -> payment-released,
with cancellation and dispute as side exits. Releasing payment credits the
provider's wallet.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field

from easyserve.api.dependencies import get_booking_service, get_current_actor
from easyserve.api.schemas import (
    AssignmentResponse,
    BookingActionResponse,
    BookingMessageResponse,
    BookingResponse,
    CamelModel,
    ServiceRequestResponse,
)
from easyserve.models.bookings import BookingStatus
from easyserve.services.actor import Actor
from easyserve.services.booking_service import BookingService


# Pydantic schemas
class CreateBookingRequest(CamelModel):
    """Direct booking. With bidId this accepts the bid; without it, the fixed request."""
    request_id: UUID
    bid_id: Optional[UUID] = None


class UpdateStatusRequest(CamelModel):
    status: str = Field(..., description="confirmed, in-progress, completed, cancelled or disputed")


class ConfirmReleaseRequest(CamelModel):
    rating: int = Field(..., description="Client rating, 1 to 5")
    review: Optional[str] = None


class SendMessageRequest(CamelModel):
    message: str


class MessagesResponse(CamelModel):
    message: str
    messages: List[BookingMessageResponse]


class ReleaseResponse(BookingActionResponse):
    wallet_updated: bool = True


class ProviderStatsResponse(CamelModel):
    provider_id: UUID
    total_bookings: int
    completed_jobs: int
    average_rating: float


def _action(message: str, booking) -> BookingActionResponse:
    return BookingActionResponse(message=message, booking=BookingResponse.model_validate(booking))


# Router
router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("", response_model=List[BookingResponse])
def list_bookings(
    user_id: Optional[UUID] = Query(None, alias="userId"),
    provider_id: Optional[UUID] = Query(None, alias="providerId"),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    """List the caller's bookings, newest first. Admins see every booking."""
    bookings = service.list_bookings(actor, user_id=user_id, provider_id=provider_id, status=status_filter)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.post("", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: CreateBookingRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> AssignmentResponse:
    """
    Create a booking directly.

    Errors:
    - 400: Request already assigned, not fixed-price, or the bid belongs to another request
    - 409: A booking already exists for the bid
    """
    service_request, booking = service.create_booking(actor, request.request_id, request.bid_id)
    return AssignmentResponse(
        message="Booking created successfully",
        request=ServiceRequestResponse.model_validate(service_request),
        booking=BookingResponse.model_validate(booking),
    )


@router.get("/provider/{provider_id}/stats", response_model=ProviderStatsResponse)
def provider_stats(
    provider_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> ProviderStatsResponse:
    """Job count and average rating for a provider."""
    return ProviderStatsResponse.model_validate(service.provider_stats(provider_id))


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    A single booking.

    Errors:
    - 403: Caller is not a party to the booking
    - 404: Unknown booking
    """
    return BookingResponse.model_validate(service.view_booking(actor, booking_id))


@router.put("/{booking_id}/status", response_model=BookingActionResponse)
def update_status(
    booking_id: UUID,
    request: UpdateStatusRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> BookingActionResponse:
    """
    Set a booking's status.

    Errors:
    - 400: Unknown status value or transition not allowed from the current status
    - 403: Caller may not make this change
    """
    booking = service.update_status(actor, booking_id, request.status)
    return _action("Booking status updated", booking)


@router.get("/{booking_id}/messages", response_model=List[BookingMessageResponse])
def get_messages(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> List[BookingMessageResponse]:
    """The booking's message thread, oldest first."""
    return [BookingMessageResponse.model_validate(m) for m in service.get_messages(actor, booking_id)]


@router.post("/{booking_id}/messages", response_model=MessagesResponse)
def send_message(
    booking_id: UUID,
    request: SendMessageRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> MessagesResponse:
    thread = service.send_message(actor, booking_id, request.message)
    return MessagesResponse(
        message="Message sent",
        messages=[BookingMessageResponse.model_validate(m) for m in thread],
    )


@router.post("/{booking_id}/start", response_model=BookingActionResponse)
def start_service(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> BookingActionResponse:
    """Provider starts work on a confirmed booking."""
    return _action("Service started", service.start_service(actor, booking_id))


@router.post("/{booking_id}/provider-complete", response_model=BookingActionResponse)
def provider_complete_service(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> BookingActionResponse:
    """Provider marks the work done; the client still has to confirm."""
    booking = service.provider_complete_service(actor, booking_id)
    return _action("Service marked as completed. Waiting for user confirmation.", booking)


@router.post("/{booking_id}/confirm-release", response_model=ReleaseResponse)
def confirm_release(
    booking_id: UUID,
    request: ConfirmReleaseRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> ReleaseResponse:
    """
    Client confirms completion, rates the provider, and releases payment.

    Errors:
    - 400: Rating outside 1-5, or provider has not completed the service
    - 404: Provider has no wallet (nothing is applied)
    - 409: Booking already confirmed
    """
    booking = service.user_confirm_booking(actor, booking_id, request.rating, request.review)
    return ReleaseResponse(
        message="Payment released to provider",
        booking=BookingResponse.model_validate(booking),
        wallet_updated=True,
    )


@router.post("/{booking_id}/pay", response_model=BookingActionResponse)
def mark_paid(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> BookingActionResponse:
    """Record the client's payment."""
    return _action("Payment recorded", service.mark_paid(actor, booking_id))
