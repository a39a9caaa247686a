"""
Service request and bidding API routes.

Clients post requests; providers bid on bidding requests or take fixed-price
ones directly; the client accepts one bid, which opens a booking.
"""
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field

from easyserve.api.dependencies import get_current_actor, get_service_request_service
from easyserve.api.middleware.error_handler import BadRequestException
from easyserve.api.schemas import (
    AmountInput,
    AssignmentResponse,
    BidResponse,
    BookingResponse,
    CamelModel,
    ServiceRequestResponse,
)
from easyserve.lib.money import optional_money, to_money
from easyserve.models.service_requests import RequestStatus, RequestType
from easyserve.services.actor import Actor
from easyserve.services.service_request_service import ServiceRequestService, build_pricing


# Pydantic schemas
class CreateServiceRequestRequest(CamelModel):
    """New service request. Pricing fields must match requestType."""
    category_id: UUID
    description: str
    request_type: RequestType = RequestType.FIXED
    fixed_amount: Optional[AmountInput] = None
    min_bid_amount: Optional[AmountInput] = None
    max_bid_amount: Optional[AmountInput] = None
    bidding_end_date: Optional[datetime] = None
    images: List[str] = Field(default_factory=list)


class PlaceBidRequest(CamelModel):
    service_request_id: UUID
    proposed_amount: AmountInput
    note: Optional[str] = None
    estimated_time: Optional[str] = None
    attachments: List[Any] = Field(default_factory=list)


class AcceptBidRequest(CamelModel):
    bid_id: UUID


class AcceptFixedRequest(CamelModel):
    request_id: UUID


class ServiceRequestEnvelope(CamelModel):
    message: str
    request: ServiceRequestResponse


class BidEnvelope(CamelModel):
    message: str
    bid: BidResponse


def _parse_statuses(raw: Optional[str]) -> Optional[List[RequestStatus]]:
    """Parse a comma-separated status filter such as "open,bidding"."""
    if not raw:
        return None
    statuses = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            statuses.append(RequestStatus(part))
        except ValueError:
            raise BadRequestException(f"Invalid status filter: {part}") from None
    return statuses or None


def _assignment(message: str, request, booking) -> AssignmentResponse:
    return AssignmentResponse(
        message=message,
        request=ServiceRequestResponse.model_validate(request),
        booking=BookingResponse.model_validate(booking),
    )


# Router
router = APIRouter(prefix="/service-requests", tags=["service-requests"])


@router.post("", response_model=ServiceRequestEnvelope, status_code=status.HTTP_201_CREATED)
def create_service_request(
    request: CreateServiceRequestRequest,
    actor: Actor = Depends(get_current_actor),
    service: ServiceRequestService = Depends(get_service_request_service),
) -> ServiceRequestEnvelope:
    """
    Create a service request.

    Fixed requests need fixedAmount; bidding requests may give
    minBidAmount, maxBidAmount and biddingEndDate.
    """
    pricing = build_pricing(
        request.request_type,
        fixed_amount=optional_money(request.fixed_amount),
        min_bid_amount=optional_money(request.min_bid_amount),
        max_bid_amount=optional_money(request.max_bid_amount),
        bidding_end_date=request.bidding_end_date,
    )
    created = service.create_service_request(
        actor,
        category_id=request.category_id,
        description=request.description,
        pricing=pricing,
        images=request.images,
    )
    return ServiceRequestEnvelope(
        message="Service request created successfully",
        request=ServiceRequestResponse.model_validate(created),
    )


@router.get("", response_model=List[ServiceRequestResponse])
def list_service_requests(
    user_id: Optional[UUID] = Query(None, alias="userId", description="Only this client's requests"),
    status_filter: Optional[str] = Query(
        None, alias="status", description="Comma-separated statuses, e.g. open,bidding"
    ),
    request_type: Optional[RequestType] = Query(None, alias="requestType"),
    category_id: Optional[UUID] = Query(None, alias="categoryId"),
    actor: Actor = Depends(get_current_actor),
    service: ServiceRequestService = Depends(get_service_request_service),
) -> List[ServiceRequestResponse]:
    """List service requests, newest first."""
    requests = service.list_service_requests(
        user_id=user_id,
        statuses=_parse_statuses(status_filter),
        request_type=request_type,
        category_id=category_id,
    )
    return [ServiceRequestResponse.model_validate(r) for r in requests]


@router.post("/bid", response_model=BidEnvelope, status_code=status.HTTP_201_CREATED)
def place_bid(
    request: PlaceBidRequest,
    actor: Actor = Depends(get_current_actor),
    service: ServiceRequestService = Depends(get_service_request_service),
) -> BidEnvelope:
    """
    Place a bid on a bidding request.

    Errors:
    - 400: Not a bidding request, bidding closed, or amount outside the range
    - 403: Caller is not a provider
    - 409: Provider already bid on this request
    """
    bid = service.place_bid(
        actor,
        service_request_id=request.service_request_id,
        proposed_amount=to_money(request.proposed_amount),
        note=request.note,
        estimated_time=request.estimated_time,
        attachments=request.attachments,
    )
    return BidEnvelope(message="Bid placed successfully", bid=BidResponse.model_validate(bid))


@router.post("/accept-bid", response_model=AssignmentResponse)
def accept_bid(
    request: AcceptBidRequest,
    actor: Actor = Depends(get_current_actor),
    service: ServiceRequestService = Depends(get_service_request_service),
) -> AssignmentResponse:
    """
    Accept a bid: assigns the request and opens a confirmed booking.

    Errors:
    - 400: Request already assigned
    - 403: Caller does not own the request
    - 404: Unknown bid
    """
    service_request, booking = service.accept_bid(actor, request.bid_id)
    return _assignment("Bid accepted successfully", service_request, booking)


@router.post("/accept-fixed", response_model=AssignmentResponse)
def accept_fixed_request(
    request: AcceptFixedRequest,
    actor: Actor = Depends(get_current_actor),
    service: ServiceRequestService = Depends(get_service_request_service),
) -> AssignmentResponse:
    """Provider takes a fixed-price request at its fixed amount."""
    service_request, booking = service.accept_fixed_request(actor, request.request_id)
    return _assignment("Request accepted successfully", service_request, booking)


@router.get("/provider-bids/{provider_id}", response_model=List[BidResponse])
def get_provider_bids(
    provider_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ServiceRequestService = Depends(get_service_request_service),
) -> List[BidResponse]:
    """A provider's bids, newest first."""
    return [BidResponse.model_validate(b) for b in service.get_provider_bids(provider_id)]


@router.get("/{request_id}", response_model=ServiceRequestResponse)
def get_service_request(
    request_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ServiceRequestService = Depends(get_service_request_service),
) -> ServiceRequestResponse:
    return ServiceRequestResponse.model_validate(service.get_service_request(request_id))


@router.get("/{request_id}/bids", response_model=List[BidResponse])
def get_bids_by_request(
    request_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ServiceRequestService = Depends(get_service_request_service),
) -> List[BidResponse]:
    """Bids on a request, lowest amount first."""
    return [BidResponse.model_validate(b) for b in service.get_bids_by_request(request_id)]


@router.post("/{request_id}/cancel", response_model=ServiceRequestEnvelope)
def cancel_service_request(
    request_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ServiceRequestService = Depends(get_service_request_service),
) -> ServiceRequestEnvelope:
    """Withdraw an unassigned request. Pending bids are rejected."""
    cancelled = service.cancel_service_request(actor, request_id)
    return ServiceRequestEnvelope(
        message="Service request cancelled",
        request=ServiceRequestResponse.model_validate(cancelled),
    )
