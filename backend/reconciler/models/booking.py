"""
Booking model: one durable record per paid cart line.

Key design decisions:
- booking_reference is derived deterministically from (payment_id, item_index)
  and is UNIQUE, so two writers creating the same line collide instead of
  double-booking
- (payment_id, item_index) is UNIQUE as well; sibling bookings of one
  payment share payment_id but never an item index
- Prices are pinned at creation and never recomputed
- Status field allows cancellation/refund without deleting records
"""

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    Numeric,
    JSON,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from reconciler.db.base import Base, TimestampMixin


class BookingStatus(str, enum.Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"
    PARTIAL_REFUND = "PartialRefund"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_reference = Column(String(40), nullable=False, unique=True, index=True)
    payment_id = Column(String(255), nullable=False, index=True)
    item_index = Column(Integer, nullable=False, default=0)

    tour_id = Column(String(64), ForeignKey("tours.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)

    date = Column(Date, nullable=False)
    time = Column(String(10), nullable=False)
    adult_guests = Column(Integer, nullable=False, default=1)
    child_guests = Column(Integer, nullable=False, default=0)
    infant_guests = Column(Integer, nullable=False, default=0)

    # Pinned pricing
    subtotal = Column(Numeric(10, 2), nullable=True)
    service_fee = Column(Numeric(10, 2), nullable=True)
    tax = Column(Numeric(10, 2), nullable=True)
    total_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    discount_code = Column(String(64), nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    payment_method = Column(String(20), nullable=False, default="card")

    selected_option = Column(JSON, nullable=True)  # {id, title, price}
    add_on_selections = Column(JSON, nullable=True)  # {add_on_id: {id, title, price, per_guest, quantity}}

    hotel_pickup_details = Column(String(1000), nullable=True)
    hotel_pickup_location = Column(JSON, nullable=True)  # {lat, lng, name?, address?}
    special_requests = Column(String(1000), nullable=True)

    # Relationships
    tour = relationship("Tour", back_populates="bookings")
    customer = relationship("Customer", back_populates="bookings")

    __table_args__ = (
        UniqueConstraint("payment_id", "item_index", name="uq_booking_payment_item"),
        CheckConstraint("adult_guests >= 0", name="check_booking_adults_non_negative"),
        CheckConstraint("child_guests >= 0", name="check_booking_children_non_negative"),
        CheckConstraint("infant_guests >= 0", name="check_booking_infants_non_negative"),
        CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        CheckConstraint(
            "status IN ('Pending', 'Confirmed', 'Cancelled', 'Refunded', 'PartialRefund')",
            name="check_booking_status",
        ),
        Index("ix_bookings_tour_date", "tour_id", "date"),
    )

    @property
    def total_guests(self) -> int:
        return (self.adult_guests or 0) + (self.child_guests or 0) + (self.infant_guests or 0)

    def __repr__(self) -> str:
        return (
            f"<Booking(reference={self.booking_reference}, payment={self.payment_id}, "
            f"item={self.item_index}, status={self.status})>"
        )
