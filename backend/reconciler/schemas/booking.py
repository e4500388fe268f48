"""
Pydantic schemas for booking responses.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel


class BookingResponse(BaseModel):
    booking_reference: str
    payment_id: str
    item_index: int
    tour_id: str
    customer_id: int
    date: dt.date
    time: str
    adult_guests: int
    child_guests: int
    infant_guests: int
    total_price: Decimal
    currency: str
    status: str
    discount_code: Optional[str] = None
    discount_amount: Optional[Decimal] = None
    created_at: dt.datetime

    model_config = {"from_attributes": True}


class BookingVerification(BaseModel):
    booking_reference: str
    status: str
    valid: bool
