"""
Booking lookup endpoints used to verify reconciliation results.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.db.session import get_db
from reconciler.models.booking import BookingStatus
from reconciler.schemas.booking import BookingResponse, BookingVerification
from reconciler.services import booking_service

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("/", response_model=list[BookingResponse])
async def list_payment_bookings(
    payment_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    """All bookings materialized for one payment, in cart order."""
    return await booking_service.get_bookings_by_payment_id(db, payment_id)


@router.get("/{reference}", response_model=BookingResponse)
async def get_booking(reference: str, db: AsyncSession = Depends(get_db)):
    booking = await booking_service.get_booking_by_reference(db, reference)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Booking {reference} not found",
        )
    return booking


@router.get("/{reference}/verify", response_model=BookingVerification)
async def verify_booking(reference: str, db: AsyncSession = Depends(get_db)):
    """Whether a reference belongs to a booking that is currently honoured."""
    booking = await booking_service.get_booking_by_reference(db, reference)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Booking {reference} not found",
        )
    return BookingVerification(
        booking_reference=booking.booking_reference,
        status=booking.status,
        valid=booking.status in (BookingStatus.CONFIRMED.value, BookingStatus.PENDING.value),
    )
