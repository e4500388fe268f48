"""
Domain errors raised while reconciling a payment event.

Every error carries a machine-readable ``reason`` which is reported as the
outcome of the run (or of the failed cart line) instead of a stack trace.
"""

from typing import Optional


class ReconciliationError(Exception):
    reason = "reconciliation_error"

    def __init__(self, message: str = "", reason: Optional[str] = None):
        super().__init__(message or self.reason)
        if reason is not None:
            self.reason = reason


class DecodeError(ReconciliationError):
    """Cart payload could not be decoded. Redelivery reproduces the same bytes."""

    reason = "invalid_cart_data"


class InvalidMetadataError(DecodeError):
    """Payment metadata failed the typed decode step."""

    reason = "invalid_metadata"


class MissingCustomerDataError(ReconciliationError):
    reason = "missing_customer_data"


class CustomerResolutionError(ReconciliationError):
    reason = "customer_resolution_failed"


class LineMaterializationError(ReconciliationError):
    """A single cart line could not be turned into a booking."""

    reason = "line_failed"


class TourNotFoundError(LineMaterializationError):
    reason = "tour_not_found"


class InvalidCartLineError(LineMaterializationError):
    reason = "invalid_cart_line"


class NotificationError(ReconciliationError):
    reason = "notification_failed"
