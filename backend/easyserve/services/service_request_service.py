"""Bidding engine: service requests, bids, and assignment.

Handles the path from a client's request to a booking:
1. Create request: fixed price, or open for bids within an optional range
2. Place bid: one per provider per request; first bid flips open → bidding
3. Accept: a bid (client) or a fixed request (provider) assigns the request
   exactly once and opens the booking in the same transaction
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from easyserve.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
)
from easyserve.lib.db import transaction
from easyserve.lib.logging import get_logger, log_with_context
from easyserve.lib.metrics import get_metrics_collector
from easyserve.lib.money import Amount, optional_money, to_money
from easyserve.models.bids import Bid, BidStatus
from easyserve.models.bookings import Booking, BookingStatus
from easyserve.models.categories import Category
from easyserve.models.providers import Provider
from easyserve.models.service_requests import (
    ASSIGNABLE_STATUSES,
    RequestStatus,
    RequestType,
    ServiceRequest,
)
from easyserve.models.users import User
from easyserve.services.actor import Actor


logger = get_logger(__name__)


@dataclass(frozen=True)
class FixedPricing:
    """Client names the price; the first provider to accept gets the job."""
    amount: Decimal


@dataclass(frozen=True)
class BiddingPricing:
    """Providers propose prices, optionally bounded and with a closing date."""
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    end_date: Optional[datetime] = None


Pricing = Union[FixedPricing, BiddingPricing]


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def build_pricing(
    request_type: Union[RequestType, str],
    fixed_amount: Optional[Amount] = None,
    min_bid_amount: Optional[Amount] = None,
    max_bid_amount: Optional[Amount] = None,
    bidding_end_date: Optional[datetime] = None,
) -> Pricing:
    """Validate loosely-typed request input into a pricing variant.

    Raises:
        BadRequestException: If the fields do not match the request type
    """
    try:
        kind = RequestType(request_type)
    except ValueError:
        raise BadRequestException("requestType must be 'fixed' or 'bidding'") from None

    if kind == RequestType.FIXED:
        if fixed_amount is None:
            raise BadRequestException("fixedAmount is required for fixed-price requests")
        if any(v is not None for v in (min_bid_amount, max_bid_amount, bidding_end_date)):
            raise BadRequestException("Bidding fields are not allowed on fixed-price requests")
        amount = to_money(fixed_amount)
        if amount <= 0:
            raise BadRequestException("fixedAmount must be greater than zero")
        return FixedPricing(amount=amount)

    if fixed_amount is not None:
        raise BadRequestException("fixedAmount is not allowed on bidding requests")
    low = optional_money(min_bid_amount)
    high = optional_money(max_bid_amount)
    if low is not None and low < 0:
        raise BadRequestException("minBidAmount cannot be negative")
    if low is not None and high is not None and low > high:
        raise BadRequestException("minBidAmount cannot exceed maxBidAmount")
    if bidding_end_date is not None and _aware(bidding_end_date) <= datetime.now(timezone.utc):
        raise BadRequestException("biddingEndDate must be in the future")
    end_date = _aware(bidding_end_date).astimezone(timezone.utc) if bidding_end_date is not None else None
    return BiddingPricing(min_amount=low, max_amount=high, end_date=end_date)


class ServiceRequestService:
    """Service requests and bidding.

    Every write commits its own unit of work; assignment is a conditional
    UPDATE so concurrent acceptances of the same request cannot both win.
    """

    def __init__(self, session: Session):
        self.session = session
        self.metrics = get_metrics_collector()

    # ===== Requests =====

    def create_service_request(
        self,
        actor: Actor,
        category_id: UUID,
        description: str,
        pricing: Pricing,
        images: Optional[List[str]] = None,
    ) -> ServiceRequest:
        """Create a request in status open.

        Raises:
            ForbiddenException: Actor is a provider
            NotFoundException: Unknown user or category
            BadRequestException: Empty description
        """
        if actor.is_provider:
            raise ForbiddenException("Providers cannot create service requests")
        if not description or not description.strip():
            raise BadRequestException("Description is required")

        with transaction(self.session):
            user = self.session.get(User, actor.id)
            if user is None:
                raise NotFoundException("User", str(actor.id))
            category = self.session.get(Category, category_id)
            if category is None:
                raise NotFoundException("Category", str(category_id))

            request = ServiceRequest(
                user_id=user.id,
                user_name=user.name,
                category_id=category.id,
                category_name=category.name,
                description=description.strip(),
                images=list(images or []),
                status=RequestStatus.OPEN,
            )
            if isinstance(pricing, FixedPricing):
                request.request_type = RequestType.FIXED
                request.fixed_amount = pricing.amount
            else:
                request.request_type = RequestType.BIDDING
                request.min_bid_amount = pricing.min_amount
                request.max_bid_amount = pricing.max_amount
                request.bidding_end_date = pricing.end_date
            self.session.add(request)

        log_with_context(
            logger, "info", "Service request created",
            request_id=str(request.id),
            request_type=request.request_type.value,
            user_id=str(actor.id),
        )
        return request

    def get_service_request(self, request_id: UUID) -> ServiceRequest:
        request = self.session.get(ServiceRequest, request_id, populate_existing=True)
        if request is None:
            raise NotFoundException("Service request", str(request_id))
        return request

    def list_service_requests(
        self,
        user_id: Optional[UUID] = None,
        statuses: Optional[Sequence[RequestStatus]] = None,
        request_type: Optional[RequestType] = None,
        category_id: Optional[UUID] = None,
    ) -> List[ServiceRequest]:
        """Requests matching all given filters, newest first."""
        stmt = select(ServiceRequest)
        if user_id:
            stmt = stmt.where(ServiceRequest.user_id == user_id)
        if statuses:
            stmt = stmt.where(ServiceRequest.status.in_(list(statuses)))
        if request_type:
            stmt = stmt.where(ServiceRequest.request_type == request_type)
        if category_id:
            stmt = stmt.where(ServiceRequest.category_id == category_id)
        stmt = stmt.order_by(ServiceRequest.created_at.desc()).execution_options(populate_existing=True)
        return list(self.session.execute(stmt).scalars().all())

    def cancel_service_request(self, actor: Actor, request_id: UUID) -> ServiceRequest:
        """Withdraw an unassigned request; its pending bids are rejected."""
        with transaction(self.session):
            request = self.get_service_request(request_id)
            self._require_owner(actor, request)

            result = self.session.execute(
                update(ServiceRequest)
                .where(
                    ServiceRequest.id == request.id,
                    ServiceRequest.status.in_(ASSIGNABLE_STATUSES),
                )
                .values(status=RequestStatus.CANCELLED)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateException("Only open requests can be cancelled")
            self._reject_pending_bids(request.id)

        self.session.refresh(request)
        log_with_context(logger, "info", "Service request cancelled", request_id=str(request.id))
        return request

    # ===== Bids =====

    def place_bid(
        self,
        actor: Actor,
        service_request_id: UUID,
        proposed_amount: Amount,
        note: Optional[str] = None,
        estimated_time: Optional[str] = None,
        attachments: Optional[List[dict]] = None,
    ) -> Bid:
        """Place a provider's bid on a bidding request.

        Raises:
            NotFoundException: Unknown request or provider profile
            InvalidStateException: Not a bidding request, or bidding closed
            BadRequestException: Amount not positive or outside the request's range
            ConflictException: Provider already bid on this request
        """
        amount = to_money(proposed_amount)

        with transaction(self.session):
            provider = self._require_provider(actor)
            request = self.get_service_request(service_request_id)

            if request.request_type != RequestType.BIDDING:
                raise InvalidStateException("This request is not open for bidding")
            if request.status not in ASSIGNABLE_STATUSES or self._bidding_expired(request):
                raise InvalidStateException("Bidding is closed for this request")

            if amount <= 0:
                raise BadRequestException("Bid amount must be greater than zero")
            low, high = request.min_bid_amount, request.max_bid_amount
            if (low is not None and amount < low) or (high is not None and amount > high):
                raise BadRequestException(
                    "Bid amount is outside the accepted range",
                    details={"min": _str_or_none(low), "max": _str_or_none(high)},
                )

            existing = self.session.execute(
                select(Bid.id).where(
                    Bid.service_request_id == request.id,
                    Bid.provider_id == provider.id,
                )
            ).first()
            if existing is not None:
                raise ConflictException("You have already placed a bid")

            bid = Bid(
                service_request_id=request.id,
                provider_id=provider.id,
                provider_name=provider.name,
                proposed_amount=amount,
                note=note,
                estimated_time=estimated_time,
                attachments=list(attachments or []),
                status=BidStatus.PENDING,
            )
            self.session.add(bid)
            try:
                self.session.flush()
            except IntegrityError:
                raise ConflictException("You have already placed a bid") from None

            # Bids have started arriving; a no-op once the request is already bidding
            self.session.execute(
                update(ServiceRequest)
                .where(
                    ServiceRequest.id == request.id,
                    ServiceRequest.status == RequestStatus.OPEN,
                )
                .values(status=RequestStatus.BIDDING)
                .execution_options(synchronize_session=False)
            )

        self.session.refresh(request)
        self.metrics.increment_bids_placed()
        log_with_context(
            logger, "info", "Bid placed",
            bid_id=str(bid.id),
            request_id=str(request.id),
            provider_id=str(provider.id),
            amount=str(amount),
        )
        return bid

    def get_bids_by_request(self, request_id: UUID) -> List[Bid]:
        """Bids on a request, lowest amount first."""
        self.get_service_request(request_id)
        stmt = (
            select(Bid)
            .where(Bid.service_request_id == request_id)
            .order_by(Bid.proposed_amount.asc(), Bid.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return list(self.session.execute(stmt).scalars().all())

    def get_provider_bids(self, provider_id: UUID) -> List[Bid]:
        """A provider's bids, newest first."""
        stmt = (
            select(Bid)
            .where(Bid.provider_id == provider_id)
            .order_by(Bid.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(self.session.execute(stmt).scalars().all())

    # ===== Assignment =====

    def accept_bid(self, actor: Actor, bid_id: UUID) -> Tuple[ServiceRequest, Booking]:
        """Assign the bid's request to its provider and open a confirmed booking.

        The winning bid is marked accepted and every other pending bid on the
        request rejected, all in one transaction.

        Raises:
            NotFoundException: Unknown bid, request or provider
            ForbiddenException: Actor does not own the request
            InvalidStateException: Request already assigned or no longer open
        """
        with transaction(self.session):
            bid = self.session.get(Bid, bid_id)
            if bid is None:
                raise NotFoundException("Bid", str(bid_id))
            request = self.get_service_request(bid.service_request_id)
            self._require_owner(actor, request)
            if request.status == RequestStatus.ASSIGNED:
                raise InvalidStateException("Request already assigned")
            provider = self.session.get(Provider, bid.provider_id)
            if provider is None:
                raise NotFoundException("Provider", str(bid.provider_id))

            booking = self._assign(request, provider, bid.proposed_amount, bid)

            self.session.execute(
                update(Bid)
                .where(Bid.id == bid.id)
                .values(status=BidStatus.ACCEPTED)
                .execution_options(synchronize_session=False)
            )
            self._reject_pending_bids(request.id)

        self.session.refresh(request)
        self.session.refresh(bid)
        self.metrics.increment_bookings_created(source="bid")
        log_with_context(
            logger, "info", "Bid accepted",
            bid_id=str(bid.id),
            request_id=str(request.id),
            booking_id=str(booking.id),
            provider_id=str(provider.id),
        )
        return request, booking

    def accept_fixed_request(self, actor: Actor, request_id: UUID) -> Tuple[ServiceRequest, Booking]:
        """A provider takes a fixed-price request at its fixed amount."""
        with transaction(self.session):
            provider = self._require_provider(actor)
            request = self.get_service_request(request_id)
            if request.request_type != RequestType.FIXED:
                raise InvalidStateException("Only fixed-price requests can be accepted directly")
            if request.status == RequestStatus.ASSIGNED:
                raise InvalidStateException("Request already assigned")

            booking = self._assign(request, provider, request.fixed_amount)

        self.session.refresh(request)
        self.metrics.increment_bookings_created(source="fixed")
        log_with_context(
            logger, "info", "Fixed request accepted",
            request_id=str(request.id),
            booking_id=str(booking.id),
            provider_id=str(provider.id),
        )
        return request, booking

    def _assign(
        self,
        request: ServiceRequest,
        provider: Provider,
        amount: Decimal,
        bid: Optional[Bid] = None,
    ) -> Booking:
        """Compare-and-set the request to assigned, then create its booking. Caller commits."""
        result = self.session.execute(
            update(ServiceRequest)
            .where(
                ServiceRequest.id == request.id,
                ServiceRequest.status.in_(ASSIGNABLE_STATUSES),
            )
            .values(
                status=RequestStatus.ASSIGNED,
                assigned_provider_id=provider.id,
                assigned_provider_name=provider.name,
                final_amount=amount,
                accepted_bid_id=bid.id if bid is not None else None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.refresh(request)
            if request.status == RequestStatus.ASSIGNED:
                raise InvalidStateException("Request already assigned")
            raise InvalidStateException("Request is not accepting bids")

        booking = Booking(
            request_id=request.id,
            bid_id=bid.id if bid is not None else None,
            user_id=request.user_id,
            user_name=request.user_name,
            provider_id=provider.id,
            provider_name=provider.name,
            agreed_price=amount,
            status=BookingStatus.CONFIRMED,
        )
        self.session.add(booking)
        try:
            self.session.flush()
        except IntegrityError:
            raise ConflictException("Booking already exists for this request") from None
        return booking

    # ===== Helpers =====

    def _reject_pending_bids(self, request_id: UUID) -> None:
        self.session.execute(
            update(Bid)
            .where(
                Bid.service_request_id == request_id,
                Bid.status == BidStatus.PENDING,
            )
            .values(status=BidStatus.REJECTED)
            .execution_options(synchronize_session=False)
        )

    def _require_owner(self, actor: Actor, request: ServiceRequest) -> None:
        if not actor.is_admin and request.user_id != actor.id:
            raise ForbiddenException("Only the requester can manage this service request")

    def _require_provider(self, actor: Actor) -> Provider:
        if not actor.is_provider:
            raise ForbiddenException("Only providers can do this")
        provider = self.session.get(Provider, actor.id)
        if provider is None:
            raise NotFoundException("Provider", str(actor.id))
        return provider

    @staticmethod
    def _bidding_expired(request: ServiceRequest) -> bool:
        if request.bidding_end_date is None:
            return False
        return _aware(request.bidding_end_date) <= datetime.now(timezone.utc)


def _str_or_none(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)
