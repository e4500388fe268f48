"""
Deterministic per-line pricing.

All arithmetic is done in Decimal and every rounding step is explicit, so
the same snapshot and discount context always produce the same breakdown.
The breakdown is pinned on the booking at creation time and never
recomputed.

Multi-line discount allocation rounds each line's proportional share on its
own. The shares are not re-balanced against the event total, so they may
drift from it by a cent or so; historical totals depend on this rule.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from reconciler.schemas.cart import CartLineSnapshot
from reconciler.schemas.payment_event import PaymentMetadata
from reconciler.schemas.pricing import DiscountContext, PricingBreakdown

CENT = Decimal("0.01")
ZERO = Decimal("0")
SERVICE_FEE_RATE = Decimal("0.03")
TAX_RATE = Decimal("0.05")
CHILD_PRICE_FACTOR = Decimal("0.5")


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def add_on_subtotal(line: CartLineSnapshot) -> Decimal:
    total = ZERO
    for add_on in line.active_add_ons:
        multiplier = line.priced_guests if add_on.per_guest else 1
        total += add_on.price * add_on.quantity * multiplier
    return total


def line_subtotal(line: CartLineSnapshot) -> Decimal:
    adults = line.base_price * line.adult_count
    children = line.base_price * CHILD_PRICE_FACTOR * line.child_count
    return round2(adults + children + add_on_subtotal(line))


def discount_share(subtotal: Decimal, context: DiscountContext) -> Decimal:
    if context.total_discount <= ZERO:
        return ZERO
    if context.line_count == 1:
        return context.total_discount
    if context.total_subtotal <= ZERO:
        return ZERO
    return round2(subtotal / context.total_subtotal * context.total_discount)


def calculate_line_pricing(line: CartLineSnapshot, context: DiscountContext) -> PricingBreakdown:
    addons = add_on_subtotal(line)
    subtotal = line_subtotal(line)
    service_fee = round2(subtotal * SERVICE_FEE_RATE)
    tax = round2(subtotal * TAX_RATE)
    pre_discount = subtotal + service_fee + tax
    share = discount_share(subtotal, context)
    return PricingBreakdown(
        add_on_subtotal=round2(addons),
        subtotal=subtotal,
        service_fee=service_fee,
        tax=tax,
        pre_discount_total=pre_discount,
        discount_share=share,
        total=max(ZERO, pre_discount - share),
    )


def build_discount_context(lines: Iterable[CartLineSnapshot], metadata: PaymentMetadata) -> DiscountContext:
    """
    Event-level discount facts. The checkout-quoted subtotal wins; when it is
    missing the computed line subtotals are summed instead.
    """
    lines = list(lines)
    total_subtotal = metadata.pricing_subtotal
    if total_subtotal <= ZERO:
        total_subtotal = sum((line_subtotal(line) for line in lines), ZERO)
    return DiscountContext(
        total_discount=max(ZERO, metadata.pricing_discount),
        total_subtotal=total_subtotal,
        line_count=len(lines),
    )


def breakdown_from_total(total: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    """
    Approximate (subtotal, service fee, tax) for a booking whose breakdown
    was never pinned, by removing the 3% fee and 5% tax from the total.
    """
    subtotal = round2(total / (1 + SERVICE_FEE_RATE + TAX_RATE))
    return subtotal, round2(subtotal * SERVICE_FEE_RATE), round2(subtotal * TAX_RATE)
