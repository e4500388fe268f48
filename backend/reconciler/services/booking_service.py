"""
Booking storage operations shared by the reconciliation paths.

CONCURRENCY STRATEGY: Deterministic Identity + Unique Constraint
================================================================

Problem:
  Two independent writers may create the booking for the same paid cart
  line: the synchronous checkout flow (status Pending) and this engine
  (status Confirmed, fallback path). The payment provider also redelivers
  the same event, sometimes concurrently with itself.

Solution:
  Both writers derive the same booking_reference from
  (payment_id, item_index). The bookings table has UNIQUE indexes on
  booking_reference and on (payment_id, item_index).

  1. INSERT the booking and commit
  2. On IntegrityError the row already exists -> roll back this insert
  3. Re-read the winner's row and adopt it ("reused")

  Whoever lands first wins; the loser converges on the same row. No row
  locks, no distributed lock, no transaction spanning the two writers.

  Pending -> Confirmed uses a conditional UPDATE ... WHERE status = 'Pending'
  so that when two deliveries race, exactly one observes rowcount == 1 and
  sends the customer confirmation.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from reconciler.core.exceptions import LineMaterializationError
from reconciler.core.logging import get_logger
from reconciler.models.booking import Booking, BookingStatus

logger = get_logger(__name__)


async def get_bookings_by_payment_id(db: AsyncSession, payment_id: str) -> list[Booking]:
    """All sibling bookings of one payment, in cart order, with tour and customer loaded."""
    result = await db.execute(
        select(Booking)
        .options(selectinload(Booking.tour), selectinload(Booking.customer))
        .where(Booking.payment_id == payment_id)
        .order_by(Booking.item_index.asc())
    )
    return list(result.scalars().all())


async def get_booking_by_reference(db: AsyncSession, reference: str) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .options(selectinload(Booking.tour), selectinload(Booking.customer))
        .where(Booking.booking_reference == reference)
    )
    return result.scalar_one_or_none()


async def get_booking_by_payment_item(db: AsyncSession, payment_id: str, item_index: int) -> Optional[Booking]:
    result = await db.execute(
        select(Booking).where(
            Booking.payment_id == payment_id,
            Booking.item_index == item_index,
        )
    )
    return result.scalar_one_or_none()


async def get_bookings_by_references(db: AsyncSession, references: list[str]) -> list[Booking]:
    """Fresh load of the given bookings, ordered by item index."""
    if not references:
        return []
    result = await db.execute(
        select(Booking)
        .options(selectinload(Booking.tour), selectinload(Booking.customer))
        .where(Booking.booking_reference.in_(references))
        .order_by(Booking.item_index.asc())
    )
    return list(result.scalars().all())


async def insert_booking(db: AsyncSession, booking: Booking) -> tuple[Booking, bool]:
    """
    Insert a booking, converging on the existing row when another writer won.

    Returns (booking, created). created is False when the row already
    existed and the winner's record was re-read instead.
    Commits on success: each booking line is durable on its own.
    """
    reference = booking.booking_reference
    payment_id, item_index = booking.payment_id, booking.item_index
    db.add(booking)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        existing = await get_booking_by_reference(db, reference)
        if existing is None:
            existing = await get_booking_by_payment_item(db, payment_id, item_index)
        if existing is None:
            # Not a duplicate: some other constraint rejected the row.
            logger.error(
                "booking_insert_rejected",
                booking_reference=reference,
                payment_id=payment_id,
                error=str(e.orig),
            )
            raise LineMaterializationError(
                f"insert of {reference} rejected: {e.orig}",
                reason="insert_rejected",
            ) from e

        logger.info(
            "booking_insert_conflict",
            booking_reference=reference,
            existing_reference=existing.booking_reference,
            existing_status=existing.status,
            payment_id=payment_id,
        )
        return existing, False

    logger.info(
        "booking_inserted",
        booking_reference=reference,
        payment_id=payment_id,
        item_index=item_index,
        status=booking.status,
    )
    return booking, True


async def confirm_pending_booking(db: AsyncSession, booking_id: int) -> bool:
    """
    Flip one booking from Pending to Confirmed.

    Returns True only for the caller whose UPDATE changed the row; a
    concurrent run that already confirmed it (or an out-of-scope status
    change) yields False.
    """
    update_result = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.status == BookingStatus.PENDING.value,
        )
        .values(status=BookingStatus.CONFIRMED.value)
    )
    await db.commit()

    confirmed = update_result.rowcount == 1
    logger.info("booking_confirm_attempt", booking_id=booking_id, confirmed=confirmed)
    return confirmed
