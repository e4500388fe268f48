"""
Pydantic schemas for inbound payment events.

The payment provider attaches a flat string->string metadata bag to each
payment. PaymentMetadata is the single typed decode step for that bag:
nothing past this module reads the raw mapping.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reconciler.core.exceptions import InvalidMetadataError


def parse_amount(value: Any) -> Decimal:
    """Lenient numeric parse for metadata values; anything unparsable is 0."""
    if value is None or value == "":
        return Decimal("0")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not amount.is_finite():
        return Decimal("0")
    return amount


class PickupLocation(BaseModel):
    lat: float
    lng: float
    name: Optional[str] = None
    address: Optional[str] = None


def parse_pickup_location(value: Any) -> Optional[PickupLocation]:
    """Pickup location from a JSON string or a stored mapping; None when unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, PickupLocation):
        return value
    if not isinstance(value, dict):
        try:
            value = json.loads(value)
        except (TypeError, ValueError):
            return None
    if not isinstance(value, dict):
        return None
    try:
        return PickupLocation.model_validate(value)
    except ValidationError:
        return None


class PaymentMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    has_booking_data: bool = False

    customer_email: Optional[str] = None
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    customer_phone: str = ""

    hotel_pickup_details: Optional[str] = None
    hotel_pickup_location: Optional[PickupLocation] = None
    special_requests: Optional[str] = None

    discount_code: Optional[str] = None
    pricing_discount: Decimal = Decimal("0")
    pricing_subtotal: Decimal = Decimal("0")
    pricing_total: Decimal = Decimal("0")
    pricing_service_fee: Decimal = Decimal("0")
    pricing_tax: Decimal = Decimal("0")
    pricing_currency: Optional[str] = None

    # Cart payload split across two fields by the transport's per-value size limit
    cart_data: str = ""
    cart_data_2: str = ""

    @field_validator("has_booking_data", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() == "true"

    @field_validator(
        "pricing_discount", "pricing_subtotal", "pricing_total",
        "pricing_service_fee", "pricing_tax",
        mode="before",
    )
    @classmethod
    def _amount(cls, value: Any) -> Decimal:
        return parse_amount(value)

    @field_validator(
        "customer_email", "customer_first_name", "customer_last_name",
        "hotel_pickup_details", "special_requests", "pricing_currency",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("customer_phone", "cart_data", "cart_data_2", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("discount_code", mode="before")
    @classmethod
    def _discount_code(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        code = str(value).strip()
        if not code or code.lower() == "none":
            return None
        return code.upper()

    @field_validator("hotel_pickup_location", mode="before")
    @classmethod
    def _pickup_location(cls, value: Any) -> Optional[PickupLocation]:
        return parse_pickup_location(value)

    @property
    def customer_name(self) -> str:
        return f"{self.customer_first_name or ''} {self.customer_last_name or ''}".strip()

    @property
    def has_customer_data(self) -> bool:
        return bool(self.customer_email and self.customer_first_name and self.customer_last_name)

    @property
    def cart_payload(self) -> str:
        return self.cart_data + self.cart_data_2


class PaymentEvent(BaseModel):
    """A "payment succeeded" notification. Received at least once, possibly concurrently."""

    payment_id: str = Field(..., min_length=1)
    metadata: dict[str, str] = Field(default_factory=dict)
    amount: int = 0  # minor units, as charged
    currency: Optional[str] = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("metadata", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> dict[str, str]:
        if not value:
            return {}
        return {str(k): "" if v is None else str(v) for k, v in dict(value).items()}

    def decoded_metadata(self) -> PaymentMetadata:
        try:
            return PaymentMetadata.model_validate(self.metadata)
        except ValidationError as e:
            raise InvalidMetadataError(f"payment {self.payment_id} metadata rejected: {e}") from e


class WebhookObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    amount: int = 0
    currency: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebhookData(BaseModel):
    object: WebhookObject


class WebhookEnvelope(BaseModel):
    """Provider event envelope, delivered after its signature was verified upstream."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    type: str
    data: WebhookData

    def to_payment_event(self) -> PaymentEvent:
        obj = self.data.object
        return PaymentEvent(
            payment_id=obj.id,
            metadata=obj.metadata,
            amount=obj.amount,
            currency=obj.currency,
        )
