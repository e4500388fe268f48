from reconciler.schemas.payment_event import PaymentEvent, PaymentMetadata, PickupLocation, WebhookEnvelope
from reconciler.schemas.cart import CartLineSnapshot, AddOnSnapshot, SelectedOption
from reconciler.schemas.pricing import DiscountContext, PricingBreakdown
from reconciler.schemas.reconciliation import ReconcileOutcome, ReconcileResult, LineFailure
from reconciler.schemas.booking import BookingResponse, BookingVerification
from reconciler.schemas.notification import (
    BookingNotification, CustomerContact, NotificationKind, NotificationLine, OutboundEmail, PricingSummary,
)

__all__ = [
    "PaymentEvent", "PaymentMetadata", "PickupLocation", "WebhookEnvelope",
    "CartLineSnapshot", "AddOnSnapshot", "SelectedOption",
    "DiscountContext", "PricingBreakdown",
    "ReconcileOutcome", "ReconcileResult", "LineFailure",
    "BookingResponse", "BookingVerification",
    "BookingNotification", "CustomerContact", "NotificationKind", "NotificationLine",
    "OutboundEmail", "PricingSummary",
]
