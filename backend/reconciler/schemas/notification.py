"""
Aggregated booking summary handed to the notification boundary, and the
outbound requests built from it for the external email collaborator.
"""

import datetime as dt
import enum
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from reconciler.schemas.payment_event import PickupLocation


class NotificationKind(str, enum.Enum):
    CUSTOMER_CONFIRMATION = "customer_confirmation"
    ADMIN_ALERT = "admin_alert"


class CustomerContact(BaseModel):
    name: str
    email: str
    phone: str = ""


class NotificationLine(BaseModel):
    booking_reference: str
    tour_title: str
    tour_image: Optional[str] = None
    meeting_point: Optional[str] = None
    date: dt.date
    time: str
    adults: int
    children: int = 0
    infants: int = 0
    option_title: Optional[str] = None
    option_price: Decimal = Decimal("0")
    add_on_titles: list[str] = Field(default_factory=list)
    total_price: Decimal

    @property
    def participants(self) -> int:
        return self.adults + self.children + self.infants


class PricingSummary(BaseModel):
    subtotal: Decimal
    service_fee: Decimal
    tax: Decimal
    discount: Decimal = Decimal("0")
    total: Decimal
    currency: str = "USD"


class BookingNotification(BaseModel):
    order_reference: str
    payment_id: str
    customer: CustomerContact
    lines: list[NotificationLine]
    pricing: PricingSummary
    discount_code: Optional[str] = None
    hotel_pickup_details: Optional[str] = None
    hotel_pickup_location: Optional[PickupLocation] = None
    special_requests: Optional[str] = None

    @property
    def booking_references(self) -> list[str]:
        return [line.booking_reference for line in self.lines]


class OutboundEmail(BaseModel):
    kind: NotificationKind
    to: str
    subject: str
    template: str
    context: dict[str, Any] = Field(default_factory=dict)
