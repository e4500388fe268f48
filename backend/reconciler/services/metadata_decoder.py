"""
Decodes the cart snapshot carried in payment metadata.

The provider caps each metadata value in size, so checkout splits the JSON
cart across ``cart_data`` and ``cart_data_2``. The two halves are joined in
order and parsed once. A payload that does not parse is a permanent
condition: redelivery carries the exact same bytes, so callers must skip
the event rather than retry it.
"""

import json
from decimal import Decimal

from pydantic import ValidationError

from reconciler.core.exceptions import DecodeError
from reconciler.core.logging import get_logger
from reconciler.schemas.cart import CartLineSnapshot
from reconciler.schemas.payment_event import PaymentMetadata

logger = get_logger(__name__)

CART_FIELDS = ("cart_data", "cart_data_2")


def join_cart_payload(fragments: dict[str, str]) -> str:
    """Concatenate the cart fragments in field order; missing fragments are empty."""
    return "".join(fragments.get(field) or "" for field in CART_FIELDS)


def decode_cart_payload(payload: str) -> list[CartLineSnapshot]:
    """
    Parse a joined cart payload into ordered line snapshots.

    Lines without an explicit index get their array position. Lines are
    returned sorted by item index so materialization order is stable.
    Raises DecodeError on anything that is not a JSON array of objects.
    """
    if not payload:
        raise DecodeError("cart payload is empty")

    try:
        # Decimal keeps prices exact; float would leak binary rounding into totals.
        raw = json.loads(payload, parse_float=Decimal)
    except ValueError as e:
        raise DecodeError(f"cart payload is not valid JSON: {e}") from e

    if not isinstance(raw, list):
        raise DecodeError(f"cart payload must be a list, got {type(raw).__name__}")

    lines = []
    for position, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise DecodeError(f"cart entry {position} is not an object")
        try:
            line = CartLineSnapshot.model_validate(entry)
        except ValidationError as e:
            raise DecodeError(f"cart entry {position} is malformed: {e.error_count()} error(s)") from e
        if line.item_index is None or line.item_index < 0:
            line = line.model_copy(update={"item_index": position})
        lines.append(line)

    indexes = [line.item_index for line in lines]
    if len(set(indexes)) != len(indexes):
        raise DecodeError("cart payload repeats an item index")

    return sorted(lines, key=lambda line: line.item_index)


def decode_cart(metadata: PaymentMetadata) -> list[CartLineSnapshot]:
    lines = decode_cart_payload(metadata.cart_payload)
    logger.debug("cart_decoded", lines=len(lines), payload_bytes=len(metadata.cart_payload))
    return lines
