"""
Result of reconciling one payment event.
"""

import enum
from typing import Optional

from pydantic import BaseModel, Field


class ReconcileOutcome(str, enum.Enum):
    NO_BOOKING_DATA = "no_booking_data"
    UPDATED = "updated"
    ALREADY_CONFIRMED = "already_confirmed"
    ALREADY_FINALIZED = "already_finalized"
    CREATED = "created"
    INVALID_CART_DATA = "invalid_cart_data"
    INVALID_METADATA = "invalid_metadata"
    MISSING_CUSTOMER_DATA = "missing_customer_data"
    CUSTOMER_RESOLUTION_FAILED = "customer_resolution_failed"
    NO_BOOKINGS_CREATED = "no_bookings_created"


# Outcomes that every redelivery of the same event would reproduce.
SETTLED_OUTCOMES = frozenset({
    ReconcileOutcome.UPDATED,
    ReconcileOutcome.ALREADY_CONFIRMED,
    ReconcileOutcome.ALREADY_FINALIZED,
    ReconcileOutcome.CREATED,
    ReconcileOutcome.INVALID_CART_DATA,
    ReconcileOutcome.INVALID_METADATA,
})


class LineFailure(BaseModel):
    item_index: int
    reason: str
    detail: Optional[str] = None


class ReconcileResult(BaseModel):
    payment_id: str
    outcome: ReconcileOutcome
    booking_id: Optional[str] = None  # order-level reference quoted to the customer
    count: int = 0
    booking_references: list[str] = Field(default_factory=list)
    created_references: list[str] = Field(default_factory=list)
    reused_references: list[str] = Field(default_factory=list)
    failed_lines: list[LineFailure] = Field(default_factory=list)
    notified: bool = False
    cached: bool = False

    @property
    def created(self) -> bool:
        return self.outcome == ReconcileOutcome.CREATED

    @property
    def is_alert(self) -> bool:
        """Money was captured but no booking exists for it."""
        return self.outcome == ReconcileOutcome.NO_BOOKINGS_CREATED

    @property
    def is_settled(self) -> bool:
        return self.outcome in SETTLED_OUTCOMES
