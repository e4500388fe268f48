"""
Idempotency resolver: decides what an incoming payment event means.

State machine, keyed by payment id:

  NO_BOOKING_DATA      metadata carries no booking flag -> irrelevant, no-op
  UPDATE_TO_CONFIRMED  bookings exist and at least one is Pending
  ALREADY_CONFIRMED    bookings exist, all Confirmed -> no-op
  ALREADY_FINALIZED    bookings exist in some other state (Cancelled,
                       Refunded, ...) owned by other workflows -> no-op
  FALLBACK_CREATE      no booking for this payment yet -> materialize

The lookup is a plain read. The only write decided here (Pending ->
Confirmed) is applied as a conditional update per booking, so two
deliveries racing through the same decision still confirm each booking
exactly once.
"""

import enum
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.core.logging import get_logger
from reconciler.models.booking import Booking, BookingStatus
from reconciler.schemas.payment_event import PaymentEvent, PaymentMetadata
from reconciler.services import booking_service

logger = get_logger(__name__)


class ResolverState(str, enum.Enum):
    NO_BOOKING_DATA = "no_booking_data"
    UPDATE_TO_CONFIRMED = "update_to_confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    ALREADY_FINALIZED = "already_finalized"
    FALLBACK_CREATE = "fallback_create"


@dataclass
class Resolution:
    state: ResolverState
    bookings: list[Booking] = field(default_factory=list)

    @property
    def pending(self) -> list[Booking]:
        return [b for b in self.bookings if b.status == BookingStatus.PENDING.value]


def classify(bookings: list[Booking]) -> ResolverState:
    if not bookings:
        return ResolverState.FALLBACK_CREATE
    statuses = {booking.status for booking in bookings}
    if BookingStatus.PENDING.value in statuses:
        return ResolverState.UPDATE_TO_CONFIRMED
    if statuses == {BookingStatus.CONFIRMED.value}:
        return ResolverState.ALREADY_CONFIRMED
    return ResolverState.ALREADY_FINALIZED


async def resolve(db: AsyncSession, event: PaymentEvent, metadata: PaymentMetadata) -> Resolution:
    if not metadata.has_booking_data:
        logger.info("resolver_no_booking_data", payment_id=event.payment_id)
        return Resolution(ResolverState.NO_BOOKING_DATA)

    bookings = await booking_service.get_bookings_by_payment_id(db, event.payment_id)
    state = classify(bookings)
    logger.info(
        "resolver_decided",
        payment_id=event.payment_id,
        state=state.value,
        existing=len(bookings),
        statuses=sorted({b.status for b in bookings}),
    )
    return Resolution(state, bookings)


async def confirm_pending(db: AsyncSession, resolution: Resolution) -> list[Booking]:
    """
    Confirm every Pending booking of the resolution.

    Returns the bookings this run actually flipped; an empty list means a
    concurrent delivery got there first.
    """
    confirmed = []
    for booking in resolution.pending:
        if await booking_service.confirm_pending_booking(db, booking.id):
            confirmed.append(booking)
            logger.info(
                "booking_confirmed",
                booking_reference=booking.booking_reference,
                payment_id=booking.payment_id,
            )
    return confirmed
