"""
Deterministic booking references.

A reference is a pure function of (payment id, item index). Checkout and
reconciliation derive the same value for the same paid cart line, which is
what turns the unique index on bookings.booking_reference into the
idempotency key for the whole engine. Nothing here may depend on time,
randomness or process state.

Format: BKG-<last 6 alphanumerics of payment id>-<1-based item>-<sha256[:8]>
"""

import hashlib
import re

REFERENCE_PREFIX = "BKG"
ORDER_PREFIX = "MULTI"

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def _payment_tail(payment_id: str) -> str:
    normalized = _NON_ALNUM.sub("", payment_id or "").upper()
    return normalized[-6:].rjust(6, "X")


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:8].upper()


def generate_booking_reference(payment_id: str, item_index: int) -> str:
    index = item_index if isinstance(item_index, int) and item_index >= 0 else 0
    item_token = str(index + 1).zfill(2)
    # The hash covers the full payment id so ids sharing a tail still differ.
    return f"{REFERENCE_PREFIX}-{_payment_tail(payment_id)}-{item_token}-{_digest(f'{payment_id}:{index}')}"


def generate_order_reference(payment_id: str, references: list[str]) -> str:
    """Reference quoted to the customer: the line's own for one line, an order-level one otherwise."""
    if len(references) == 1:
        return references[0]
    return f"{ORDER_PREFIX}-{_payment_tail(payment_id)}-{_digest(f'{payment_id}:order')}"
