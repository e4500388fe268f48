"""
Pricing value objects. Immutable so a computed breakdown can be pinned as-is.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class DiscountContext(BaseModel):
    """Event-level discount facts shared by every line of one cart."""

    model_config = ConfigDict(frozen=True)

    total_discount: Decimal = Decimal("0")
    total_subtotal: Decimal = Decimal("0")
    line_count: int = 1


class PricingBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    add_on_subtotal: Decimal
    subtotal: Decimal
    service_fee: Decimal
    tax: Decimal
    pre_discount_total: Decimal
    discount_share: Decimal
    total: Decimal
