"""Booking lifecycle: reservation, guests, payment, confirmation, cancellation, expiry."""

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.dependencies import CurrentUser
from ..core.exceptions import (
    BookingExpiredError,
    GatewayFailureError,
    InvalidStateError,
    NotFoundError,
    OwnershipError,
    RefundFailedError,
)
from ..core.observability import metrics_collector
from ..models.booking import HOLDING_STATUSES, Booking, BookingStatus, Guest
from ..models.hotel import Hotel, Room
from ..schemas.booking import GuestInput, InitBookingRequest
from .checkout import CheckoutGateway
from .hotel_service import parse_uuid
from .inventory_ledger import LockArena, booking_arena
from .pricing import PricingPipeline
from .reservation_engine import ReservationEngine

logger = logging.getLogger(__name__)


class BookingAction(str, Enum):
    """Actions that move a booking between statuses."""
    ADD_GUESTS = "ADD_GUESTS"
    INITIATE_PAYMENT = "INITIATE_PAYMENT"
    CONFIRM = "CONFIRM"
    CANCEL = "CANCEL"
    EXPIRE = "EXPIRE"


TRANSITIONS: dict[tuple[BookingStatus, BookingAction], BookingStatus] = {
    (BookingStatus.RESERVED, BookingAction.ADD_GUESTS): BookingStatus.GUESTS_ADDED,
    (BookingStatus.RESERVED, BookingAction.INITIATE_PAYMENT): BookingStatus.PAYMENTS_PENDING,
    (BookingStatus.GUESTS_ADDED, BookingAction.INITIATE_PAYMENT): BookingStatus.PAYMENTS_PENDING,
    # A fresh session may be requested while the first one is still unpaid
    (BookingStatus.PAYMENTS_PENDING, BookingAction.INITIATE_PAYMENT): BookingStatus.PAYMENTS_PENDING,
    (BookingStatus.PAYMENTS_PENDING, BookingAction.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.CONFIRMED, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.RESERVED, BookingAction.EXPIRE): BookingStatus.EXPIRED,
    (BookingStatus.GUESTS_ADDED, BookingAction.EXPIRE): BookingStatus.EXPIRED,
    (BookingStatus.PAYMENTS_PENDING, BookingAction.EXPIRE): BookingStatus.EXPIRED,
}


def next_status(booking: Booking, action: BookingAction) -> BookingStatus:
    """
    Status the booking moves to under action.

    Raises:
        InvalidStateError: If the transition table has no entry for the pair
    """
    current = BookingStatus(booking.status)
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidStateError(str(booking.id), current.value, action.value)


def parse_booking_id(booking_id) -> UUID:
    return parse_uuid(booking_id, "booking_id")


class BookingLifecycleManager:
    """
    Drives a booking through its state machine.

    Every operation takes the caller identity explicitly and serialises on a
    per-booking lock; ledger locks are only ever taken inside it, and neither
    is held across a checkout gateway call.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[CheckoutGateway] = None,
        pricing: Optional[PricingPipeline] = None,
        arena: Optional[LockArena] = None,
        booking_locks: Optional[LockArena] = None,
        clock: Callable[[], datetime] = utcnow,
        hold_window: Optional[timedelta] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.engine = ReservationEngine(db, pricing, arena)
        self.booking_locks = booking_locks or booking_arena
        self.clock = clock
        self.hold_window = hold_window or timedelta(minutes=settings.hold_window_minutes)

    # Guards

    def expires_at(self, booking: Booking) -> datetime:
        return booking.created_at + self.hold_window

    def has_expired(self, booking: Booking) -> bool:
        """True when an unpaid booking has outlived its hold window."""
        return (
            BookingStatus(booking.status) in HOLDING_STATUSES
            and self.expires_at(booking) < self.clock()
        )

    def _check_owner(self, booking: Booking, user: CurrentUser) -> None:
        if booking.user_id != user.id:
            logger.warning(
                "Booking accessed by non-owner",
                extra={"booking_id": str(booking.id), "user_id": user.id}
            )
            raise OwnershipError("booking", str(booking.id), user.id)

    async def _expire(self, booking: Booking, trigger: str) -> None:
        """Mark the booking EXPIRED and give its units back in one commit."""
        booking.status = next_status(booking, BookingAction.EXPIRE)
        await self.engine.release_range(
            booking.room_id,
            booking.check_in_date,
            booking.check_out_date,
            booking.rooms_count,
        )
        metrics_collector.record_booking_expired(trigger)
        logger.info(
            "Booking expired",
            extra={
                "booking_id": str(booking.id),
                "trigger": trigger,
                "expired_at": self.expires_at(booking).isoformat(),
            }
        )

    async def _ensure_not_expired(self, booking: Booking) -> None:
        """
        Raises:
            BookingExpiredError: If the booking is, or has just become, EXPIRED
        """
        if BookingStatus(booking.status) == BookingStatus.EXPIRED:
            raise BookingExpiredError(str(booking.id), self.expires_at(booking))
        if self.has_expired(booking):
            await self._expire(booking, trigger="lazy")
            raise BookingExpiredError(str(booking.id), self.expires_at(booking))

    async def _load(self, booking_id: UUID, for_update: bool = True) -> Booking:
        query = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        booking = (await self.db.execute(query)).scalar_one_or_none()
        if not booking:
            raise NotFoundError("booking", str(booking_id))
        return booking

    async def _load_guarded(self, user: CurrentUser, booking_id: UUID) -> Booking:
        """Load for update and apply the ownership then expiry guards."""
        booking = await self._load(booking_id)
        self._check_owner(booking, user)
        await self._ensure_not_expired(booking)
        return booking

    # Operations

    async def initiate(self, user: CurrentUser, request: InitBookingRequest) -> Booking:
        """
        Reserve the requested range and persist a RESERVED booking priced for the stay.

        Raises:
            NotFoundError: If the hotel or room does not exist, or the room is not in the hotel
            RangeUnavailableError, IncompleteAvailabilityError, InsufficientCapacityError:
                If the range cannot be reserved
        """
        hotel_id = parse_uuid(request.hotel_id, "hotel_id")
        room_id = parse_uuid(request.room_id, "room_id")

        hotel = await self.db.get(Hotel, hotel_id)
        if not hotel:
            raise NotFoundError("hotel", request.hotel_id)
        room = await self.db.get(Room, room_id)
        if not room:
            raise NotFoundError("room", request.room_id)
        if room.hotel_id != hotel.id:
            raise NotFoundError(
                "room",
                request.room_id,
                detail=f"Room {request.room_id} does not belong to hotel {request.hotel_id}",
            )

        reservation = await self.engine.reserve_range(
            room, request.check_in_date, request.check_out_date, request.rooms_count
        )

        booking = Booking(
            hotel_id=hotel_id,
            room_id=room_id,
            user_id=user.id,
            check_in_date=request.check_in_date,
            check_out_date=request.check_out_date,
            rooms_count=request.rooms_count,
            status=BookingStatus.RESERVED,
            amount=reservation.total_amount,
            created_at=self.clock(),
            guests=[],
        )
        self.db.add(booking)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(
                "Booking save failed, releasing reserved range",
                extra={"room_id": str(room_id), "user_id": user.id}
            )
            await self.engine.release_range(
                room_id, request.check_in_date, request.check_out_date, request.rooms_count
            )
            raise

        metrics_collector.record_booking_reserved(str(hotel_id))
        logger.info(
            "Booking reserved",
            extra={
                "booking_id": str(booking.id),
                "hotel_id": str(hotel_id),
                "room_id": str(room_id),
                "user_id": user.id,
                "check_in_date": request.check_in_date.isoformat(),
                "check_out_date": request.check_out_date.isoformat(),
                "rooms_count": request.rooms_count,
                "amount": str(booking.amount),
            }
        )
        return booking

    async def add_guests(self, user: CurrentUser, booking_id, guests: Sequence[GuestInput]) -> Booking:
        """
        Attach guests to a RESERVED booking and move it to GUESTS_ADDED.

        Raises:
            OwnershipError, BookingExpiredError, InvalidStateError
        """
        booking_id = parse_booking_id(booking_id)
        async with self.booking_locks.hold([booking_id]):
            booking = await self._load_guarded(user, booking_id)
            status = next_status(booking, BookingAction.ADD_GUESTS)

            for guest in guests:
                booking.guests.append(Guest(name=guest.name, age=guest.age, gender=guest.gender))
            booking.status = status
            await self.db.commit()

        logger.info(
            "Guests added to booking",
            extra={"booking_id": str(booking_id), "guests": len(guests)}
        )
        return booking

    async def initiate_payment(self, user: CurrentUser, booking_id) -> str:
        """
        Open a checkout session for the booking and move it to PAYMENTS_PENDING.

        The gateway is called with no lock held; the transition is re-validated
        afterwards in case the booking moved on meanwhile.

        Returns:
            URL of the hosted payment page

        Raises:
            OwnershipError, BookingExpiredError, InvalidStateError
            GatewayFailureError: If the session could not be created; the booking is unchanged
        """
        booking_id = parse_booking_id(booking_id)

        async with self.booking_locks.hold([booking_id]):
            booking = await self._load_guarded(user, booking_id)
            next_status(booking, BookingAction.INITIATE_PAYMENT)
            # End the transaction so no row lock outlives this block
            await self.db.commit()

        description = await self._describe(booking)
        success_url = f"{settings.frontend_url}/payments/{booking_id}/status"
        failure_url = f"{settings.frontend_url}/payments/{booking_id}/status"
        try:
            session = await self.gateway.create_session(
                booking,
                success_url,
                failure_url,
                description=description,
                customer_email=user.email,
            )
        except GatewayFailureError:
            logger.error("Checkout session creation failed", extra={"booking_id": str(booking_id)})
            raise

        async with self.booking_locks.hold([booking_id]):
            try:
                booking = await self._load_guarded(user, booking_id)
            except BookingExpiredError:
                # The session stays open; a payment on it is matched through its booking reference
                logger.warning(
                    "Hold lapsed while the checkout session was created",
                    extra={"booking_id": str(booking_id), "session_id": session.id}
                )
                raise
            booking.status = next_status(booking, BookingAction.INITIATE_PAYMENT)
            booking.payment_session_id = session.id
            await self.db.commit()

        logger.info(
            "Payment initiated",
            extra={"booking_id": str(booking_id), "session_id": session.id}
        )
        return session.url

    async def _find_paid_booking(self, session_id: str) -> UUID:
        """
        Booking a paid session belongs to: the one storing it, else the one the gateway names.

        Raises:
            NotFoundError: If neither resolves to a booking id
        """
        found = (await self.db.execute(
            select(Booking.id).where(Booking.payment_session_id == session_id)
        )).scalar_one_or_none()
        if found is not None:
            return found

        # Superseded sessions, and sessions opened while the hold lapsed, are not stored
        booking_ref = await self.gateway.session_booking_ref(session_id)
        if booking_ref:
            try:
                return UUID(booking_ref)
            except ValueError:
                logger.warning(
                    "Payment session carries a malformed booking reference",
                    extra={"session_id": session_id, "booking_ref": booking_ref}
                )
        raise NotFoundError("booking", detail=f"No booking for payment session '{session_id}'")

    async def confirm_payment(self, session_id: str) -> Booking:
        """
        Apply a payment-success signal: book the held units and mark the booking CONFIRMED.

        Repeated signals for a CONFIRMED booking are no-ops. A payment that
        arrives after the hold lapsed is refunded before the expiry is reported.
        A payment on a session other than the stored one confirms a booking
        still awaiting payment; otherwise it is refunded.

        Raises:
            NotFoundError: If no booking carries or owns the session id
            BookingExpiredError: If the hold lapsed before the signal arrived
            RefundFailedError: If a payment that cannot be honoured could not be refunded
            InvalidStateError: If the booking is not awaiting payment
        """
        found = await self._find_paid_booking(session_id)

        late_payment: Optional[BookingExpiredError] = None
        unwanted_payment = False
        async with self.booking_locks.hold([found]):
            booking = await self._load(found)
            status = BookingStatus(booking.status)
            superseded = booking.payment_session_id != session_id
            if status == BookingStatus.CONFIRMED and not superseded:
                await self.db.commit()
                logger.info("Duplicate payment confirmation ignored", extra={"booking_id": str(found)})
                return booking

            try:
                await self._ensure_not_expired(booking)
            except BookingExpiredError as e:
                late_payment = e
            else:
                if status == BookingStatus.PAYMENTS_PENDING:
                    if superseded:
                        logger.info(
                            "Payment completed on an earlier session",
                            extra={
                                "booking_id": str(found),
                                "session_id": session_id,
                                "replaced_session_id": booking.payment_session_id,
                            }
                        )
                        booking.payment_session_id = session_id
                    booking.status = next_status(booking, BookingAction.CONFIRM)
                    await self.engine.confirm_range(
                        booking.room_id,
                        booking.check_in_date,
                        booking.check_out_date,
                        booking.rooms_count,
                    )
                elif superseded:
                    await self.db.commit()
                    unwanted_payment = True
                else:
                    next_status(booking, BookingAction.CONFIRM)

        if late_payment is not None:
            logger.warning(
                "Payment received after hold expired, refunding",
                extra={"booking_id": str(found), "session_id": session_id}
            )
            await self._refund(booking, session_id)
            raise late_payment

        if unwanted_payment:
            logger.warning(
                "Payment received on a session the booking no longer awaits, refunding",
                extra={"booking_id": str(found), "session_id": session_id, "booking_status": status.value}
            )
            await self._refund(booking, session_id)
            if status != BookingStatus.CONFIRMED:
                raise InvalidStateError(str(found), status.value, BookingAction.CONFIRM.value)
            return booking

        metrics_collector.record_booking_confirmed(str(booking.hotel_id))
        logger.info(
            "Booking confirmed",
            extra={"booking_id": str(found), "session_id": session_id}
        )
        return booking

    async def cancel(self, user: CurrentUser, booking_id) -> Booking:
        """
        Cancel a CONFIRMED booking, give its units back, then refund the payment.

        The cancellation is committed before the refund is requested.

        Raises:
            OwnershipError, InvalidStateError
            RefundFailedError: If the refund failed; the booking stays CANCELLED
        """
        booking_id = parse_booking_id(booking_id)

        async with self.booking_locks.hold([booking_id]):
            booking = await self._load_guarded(user, booking_id)
            booking.status = next_status(booking, BookingAction.CANCEL)
            await self.engine.release_range(
                booking.room_id,
                booking.check_in_date,
                booking.check_out_date,
                booking.rooms_count,
                confirmed=True,
            )

        metrics_collector.record_booking_cancelled()
        logger.info("Booking cancelled", extra={"booking_id": str(booking_id), "user_id": user.id})

        await self._refund(booking)
        return booking

    async def _refund(self, booking: Booking, session_id: Optional[str] = None) -> Optional[str]:
        """
        Refund a payment for the booking in full, by default the one on its stored session.
        Runs with no lock held.

        Raises:
            RefundFailedError: If the gateway could not refund
        """
        session_id = session_id or booking.payment_session_id
        if not session_id:
            logger.warning("Booking has no payment session to refund", extra={"booking_id": str(booking.id)})
            return None

        try:
            payment_intent = await self.gateway.retrieve_session(session_id)
            refund_id = await self.gateway.refund(payment_intent)
        except GatewayFailureError as e:
            metrics_collector.record_refund_failure()
            logger.error(
                "Refund failed",
                extra={
                    "booking_id": str(booking.id),
                    "booking_status": BookingStatus(booking.status).value,
                    "session_id": session_id,
                    "reason": e.reason,
                }
            )
            raise RefundFailedError(str(booking.id), e.reason, BookingStatus(booking.status).value) from e

        logger.info(
            "Booking refunded",
            extra={"booking_id": str(booking.id), "session_id": session_id, "refund_id": refund_id}
        )
        return refund_id

    async def get_status(self, user: CurrentUser, booking_id) -> Booking:
        """
        Owner-checked read; an unpaid booking past its hold window is expired first.
        """
        booking_id = parse_booking_id(booking_id)
        async with self.booking_locks.hold([booking_id]):
            booking = await self._load(booking_id)
            self._check_owner(booking, user)
            if self.has_expired(booking):
                await self._expire(booking, trigger="lazy")
            else:
                await self.db.commit()
        return booking

    async def expire_stale_bookings(self, batch_size: int = 100) -> int:
        """
        Expire unpaid bookings whose hold window has elapsed.

        Returns:
            Number of bookings expired
        """
        cutoff = self.clock() - self.hold_window
        result = await self.db.execute(
            select(Booking.id)
            .where(
                Booking.status.in_([status.value for status in HOLDING_STATUSES]),
                Booking.created_at < cutoff,
            )
            .order_by(Booking.created_at)
            .limit(batch_size)
        )
        candidates = list(result.scalars().all())

        expired = 0
        for booking_id in candidates:
            try:
                async with self.booking_locks.hold([booking_id]):
                    booking = await self._load(booking_id)
                    if not self.has_expired(booking):
                        await self.db.commit()
                        continue
                    await self._expire(booking, trigger="sweep")
                    expired += 1
            except Exception:
                await self.db.rollback()
                logger.exception("Failed to expire booking", extra={"booking_id": str(booking_id)})

        if candidates:
            logger.info(
                "Expired stale bookings",
                extra={"candidates": len(candidates), "expired": expired}
            )
        return expired

    async def _describe(self, booking: Booking) -> str:
        """Product line shown on the payment page."""
        hotel = await self.db.get(Hotel, booking.hotel_id)
        room = await self.db.get(Room, booking.room_id)
        if hotel and room:
            return f"{hotel.name} : {room.type}"
        return f"Booking {booking.id}"
