"""Booking lifecycle: work states, dual confirmation, payment release, and messages.

State machine:
    confirmed --start--> in-progress --provider complete--> (completed_by_provider)
    in-progress[completed_by_provider] --client confirm--> payment-released (+ wallet credit)
    confirmed --cancel--> cancelled
    confirmed/in-progress/completed --dispute--> disputed

Each transition is a conditional UPDATE guarded on the state it leaves, so a
racing duplicate call matches no row and is reported instead of applied twice.
"""
from typing import Dict, Iterable, List, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy import case, func, or_, select, update
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
from easyserve.models.bids import Bid
from easyserve.models.bookings import Booking, BookingMessage, BookingStatus
from easyserve.models.service_requests import RequestStatus, ServiceRequest
from easyserve.services.actor import Actor
from easyserve.services.service_request_service import ServiceRequestService
from easyserve.services.wallet_service import WalletService


logger = get_logger(__name__)


# Values accepted by the generic status endpoint
SETTABLE_STATUSES = (
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.DISPUTED,
)

# target status -> (statuses it may be entered from, parties allowed to request it)
STATUS_RULES: Dict[BookingStatus, Tuple[Tuple[BookingStatus, ...], Tuple[str, ...]]] = {
    BookingStatus.IN_PROGRESS: ((BookingStatus.CONFIRMED,), ("provider",)),
    BookingStatus.COMPLETED: ((BookingStatus.IN_PROGRESS,), ("provider",)),
    BookingStatus.CANCELLED: ((BookingStatus.CONFIRMED,), ("user", "provider")),
    BookingStatus.DISPUTED: (
        (BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED),
        ("user", "provider"),
    ),
}

# Request status mirrored when a booking enters a status
REQUEST_STATUS_FOR = {
    BookingStatus.IN_PROGRESS: (RequestStatus.ASSIGNED, RequestStatus.IN_PROGRESS),
    BookingStatus.CANCELLED: (RequestStatus.ASSIGNED, RequestStatus.CANCELLED),
    BookingStatus.PAYMENT_RELEASED: (RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED),
}

RELEASABLE_STATUSES = (BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED)


class BookingService:
    """Booking operations for the two parties of a booking."""

    def __init__(self, session: Session):
        self.session = session
        self.wallets = WalletService(session)
        self.metrics = get_metrics_collector()

    # ===== Creation and lookup =====

    def create_booking(
        self,
        actor: Actor,
        request_id: UUID,
        bid_id: Optional[UUID] = None,
    ) -> Tuple[ServiceRequest, Booking]:
        """Open a booking directly: via a bid when given, else by accepting a fixed request.

        Raises:
            BadRequestException: The bid belongs to another request
            ConflictException: A booking already exists for the bid
        """
        requests = ServiceRequestService(self.session)
        if bid_id is None:
            return requests.accept_fixed_request(actor, request_id)

        bid = self.session.get(Bid, bid_id)
        if bid is None:
            raise NotFoundException("Bid", str(bid_id))
        if bid.service_request_id != request_id:
            raise BadRequestException(
                "Bid does not belong to this service request",
                details={"bidId": str(bid_id), "requestId": str(request_id)},
            )

        existing = self.session.execute(
            select(Booking.id).where(Booking.bid_id == bid_id)
        ).first()
        if existing is not None:
            raise ConflictException("Booking already exists for this bid")
        return requests.accept_bid(actor, bid_id)

    def get_booking(self, booking_id: UUID) -> Booking:
        booking = self.session.get(Booking, booking_id, populate_existing=True)
        if booking is None:
            raise NotFoundException("Booking", str(booking_id))
        return booking

    def view_booking(self, actor: Actor, booking_id: UUID) -> Booking:
        """A booking as seen by one of its parties or an admin."""
        booking = self.get_booking(booking_id)
        self._require_party(actor, booking, ("user", "provider"), allow_admin=True)
        return booking

    def list_bookings(
        self,
        actor: Actor,
        user_id: Optional[UUID] = None,
        provider_id: Optional[UUID] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        """Bookings matching the filters, newest first.

        Non-admins only ever see bookings they are a party to, whatever the filters say.
        """
        stmt = select(Booking)
        if not actor.is_admin:
            stmt = stmt.where(or_(Booking.user_id == actor.id, Booking.provider_id == actor.id))
        if user_id:
            stmt = stmt.where(Booking.user_id == user_id)
        if provider_id:
            stmt = stmt.where(Booking.provider_id == provider_id)
        if status:
            stmt = stmt.where(Booking.status == status)
        stmt = stmt.order_by(Booking.created_at.desc()).execution_options(populate_existing=True)
        return list(self.session.execute(stmt).scalars().all())

    # ===== Provider actions =====

    def start_service(self, actor: Actor, booking_id: UUID) -> Booking:
        """Provider begins work on a confirmed booking."""
        return self._move(actor, booking_id, BookingStatus.IN_PROGRESS)

    def provider_complete_service(self, actor: Actor, booking_id: UUID) -> Booking:
        """Provider marks the work done. Status stays in-progress until the client confirms."""
        with transaction(self.session):
            booking = self.get_booking(booking_id)
            self._require_party(actor, booking, ("provider",))
            result = self.session.execute(
                update(Booking)
                .where(Booking.id == booking.id, Booking.status == BookingStatus.IN_PROGRESS)
                .values(completed_by_provider=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateException(
                    "Service must be in progress before it can be completed",
                    details={"status": booking.status.value},
                )

        self.session.refresh(booking)
        log_with_context(
            logger, "info", "Provider completed service",
            booking_id=str(booking.id),
            provider_id=str(booking.provider_id),
        )
        return booking

    # ===== Client confirmation and settlement =====

    def user_confirm_booking(
        self,
        actor: Actor,
        booking_id: UUID,
        rating: int,
        review: Optional[str] = None,
    ) -> Booking:
        """Client confirms completion, rates the work, and releases payment to the provider.

        The booking transition and the wallet credit commit together. If the
        provider has no wallet, nothing is applied and the failure is logged
        for reconciliation.

        Raises:
            BadRequestException: Rating outside 1-5
            NotFoundException: Unknown booking or provider wallet
            ForbiddenException: Actor is not the booking's client
            ConflictException: Booking already confirmed
            InvalidStateException: Provider has not completed the service yet
        """
        if rating is None or not 1 <= rating <= 5:
            raise BadRequestException("Rating must be between 1 and 5")

        with transaction(self.session):
            booking = self.get_booking(booking_id)
            self._require_party(actor, booking, ("user",))

            result = self.session.execute(
                update(Booking)
                .where(
                    Booking.id == booking.id,
                    Booking.completed_by_user.is_(False),
                    Booking.completed_by_provider.is_(True),
                    Booking.status.in_(RELEASABLE_STATUSES),
                )
                .values(
                    completed_by_user=True,
                    user_rating=rating,
                    user_review=review,
                    status=BookingStatus.PAYMENT_RELEASED,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.session.refresh(booking)
                if booking.completed_by_user or booking.status == BookingStatus.PAYMENT_RELEASED:
                    raise ConflictException("Booking already confirmed")
                if not booking.completed_by_provider:
                    raise InvalidStateException("Provider has not completed the service yet")
                raise InvalidStateException(
                    f"Cannot release payment for a {booking.status.value} booking"
                )

            self.session.refresh(booking)
            try:
                self.wallets.credit_for_booking(booking)
            except NotFoundException:
                self.metrics.increment_settlements(outcome="wallet_missing")
                log_with_context(
                    logger, "warning", "Settlement failed, booking confirmation rolled back",
                    booking_id=str(booking.id),
                    provider_id=str(booking.provider_id),
                    amount=str(booking.agreed_price),
                    reconciliation=True,
                )
                raise
            self._mirror_request_status(booking, BookingStatus.PAYMENT_RELEASED)

        self.session.refresh(booking)
        self.metrics.increment_settlements(outcome="released")
        self.metrics.add_credited_amount(booking.agreed_price)
        self.metrics.increment_transitions(BookingStatus.PAYMENT_RELEASED.value)
        log_with_context(
            logger, "info", "Payment released to provider",
            booking_id=str(booking.id),
            provider_id=str(booking.provider_id),
            amount=str(booking.agreed_price),
        )
        return booking

    # ===== Generic status endpoint =====

    def update_status(self, actor: Actor, booking_id: UUID, status: Union[BookingStatus, str]) -> Booking:
        """Move a booking to one of the settable statuses, subject to STATUS_RULES."""
        try:
            target = BookingStatus(status)
        except ValueError:
            raise BadRequestException("Invalid status") from None
        if target not in SETTABLE_STATUSES:
            raise BadRequestException("Invalid status")
        if target == BookingStatus.CONFIRMED:
            raise InvalidStateException("A booking cannot be moved back to confirmed")
        return self._move(actor, booking_id, target)

    def _move(self, actor: Actor, booking_id: UUID, target: BookingStatus) -> Booking:
        from_statuses, parties = STATUS_RULES[target]
        values = {"status": target}
        if target == BookingStatus.COMPLETED:
            values["completed_by_provider"] = True

        with transaction(self.session):
            booking = self.get_booking(booking_id)
            self._require_party(actor, booking, parties)
            result = self.session.execute(
                update(Booking)
                .where(Booking.id == booking.id, Booking.status.in_(from_statuses))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateException(
                    f"Cannot move a {booking.status.value} booking to {target.value}",
                    details={"status": booking.status.value, "target": target.value},
                )
            self._mirror_request_status(booking, target)

        self.session.refresh(booking)
        self.metrics.increment_transitions(target.value)
        log_with_context(
            logger, "info", "Booking status changed",
            booking_id=str(booking.id),
            status=target.value,
            actor_id=str(actor.id),
        )
        return booking

    # ===== Payment stub =====

    def mark_paid(self, actor: Actor, booking_id: UUID) -> Booking:
        """Record the client's payment. There is no gateway; this succeeds immediately."""
        with transaction(self.session):
            booking = self.get_booking(booking_id)
            self._require_party(actor, booking, ("user",))
            if booking.status in (BookingStatus.CANCELLED,):
                raise InvalidStateException("Cannot pay for a cancelled booking")
            booking.is_paid = True

        log_with_context(logger, "info", "Booking marked paid", booking_id=str(booking.id))
        return booking

    # ===== Messages =====

    def send_message(self, actor: Actor, booking_id: UUID, text: Optional[str]) -> List[BookingMessage]:
        """Append a message from one of the booking's parties; returns the whole thread."""
        body = (text or "").strip()
        if not body:
            raise BadRequestException("Message cannot be empty")

        with transaction(self.session):
            booking = self.get_booking(booking_id)
            self._require_party(actor, booking, ("user", "provider"))
            self.session.add(
                BookingMessage(
                    booking_id=booking.id,
                    sender_role=actor.role.value,
                    sender_id=actor.id,
                    text=body,
                )
            )

        return self._thread(booking.id)

    def get_messages(self, actor: Actor, booking_id: UUID) -> List[BookingMessage]:
        booking = self.get_booking(booking_id)
        self._require_party(actor, booking, ("user", "provider"))
        return self._thread(booking.id)

    def _thread(self, booking_id: UUID) -> List[BookingMessage]:
        stmt = (
            select(BookingMessage)
            .where(BookingMessage.booking_id == booking_id)
            .order_by(BookingMessage.id.asc())
        )
        return list(self.session.execute(stmt).scalars().all())

    # ===== Stats =====

    def provider_stats(self, provider_id: UUID) -> dict:
        """Completed job count and average client rating for a provider."""
        done = (BookingStatus.COMPLETED, BookingStatus.PAYMENT_RELEASED)
        total, completed, average = self.session.execute(
            select(
                func.count(Booking.id),
                func.sum(case((Booking.status.in_(done), 1), else_=0)),
                func.avg(Booking.user_rating),
            ).where(Booking.provider_id == provider_id)
        ).one()
        return {
            "providerId": provider_id,
            "totalBookings": total or 0,
            "completedJobs": completed or 0,
            "averageRating": round(float(average), 2) if average is not None else 0,
        }

    # ===== Helpers =====

    def _require_party(
        self,
        actor: Actor,
        booking: Booking,
        parties: Iterable[str],
        allow_admin: bool = False,
    ) -> None:
        # Admins may look at any booking but never act on one
        if allow_admin and actor.is_admin:
            return
        allowed = set(parties)
        if "user" in allowed and actor.id == booking.user_id:
            return
        if "provider" in allowed and actor.id == booking.provider_id:
            return
        if actor.id not in (booking.user_id, booking.provider_id):
            raise ForbiddenException("You are not a party to this booking")
        raise ForbiddenException("This action is not available to you on this booking")

    def _mirror_request_status(self, booking: Booking, target: BookingStatus) -> None:
        if target not in REQUEST_STATUS_FOR:
            return
        expected, new_status = REQUEST_STATUS_FOR[target]
        self.session.execute(
            update(ServiceRequest)
            .where(ServiceRequest.id == booking.request_id, ServiceRequest.status == expected)
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
