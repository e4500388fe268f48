"""
Tests for the deterministic line pricing calculator.
"""

from decimal import Decimal

from reconciler.schemas.cart import CartLineSnapshot
from reconciler.schemas.payment_event import PaymentMetadata
from reconciler.schemas.pricing import DiscountContext
from reconciler.services.pricing import (
    breakdown_from_total,
    build_discount_context,
    calculate_line_pricing,
    line_subtotal,
)

NO_DISCOUNT = DiscountContext(total_discount=Decimal("0"), total_subtotal=Decimal("0"), line_count=1)


def make_line(**fields) -> CartLineSnapshot:
    fields.setdefault("t", "tour_pyramids")
    fields.setdefault("d", "2026-11-02")
    return CartLineSnapshot.model_validate(fields)


def test_adults_children_and_per_guest_add_on():
    line = make_line(bp=Decimal("100"), a=2, c=1, n=1, ao=[{"id": "lunch", "t": "Lunch", "p": 10, "pg": True, "q": 1}])

    pricing = calculate_line_pricing(line, NO_DISCOUNT)

    # 2 x 100 + 1 x 50 + 10 per paying guest (infant excluded)
    assert pricing.add_on_subtotal == Decimal("30.00")
    assert pricing.subtotal == Decimal("280.00")
    assert pricing.service_fee == Decimal("8.40")
    assert pricing.tax == Decimal("14.00")
    assert pricing.pre_discount_total == Decimal("302.40")
    assert pricing.discount_share == Decimal("0")
    assert pricing.total == Decimal("302.40")


def test_flat_add_on_ignores_guest_count():
    line = make_line(bp=Decimal("20"), a=3, ao=[{"id": "photos", "t": "Photos", "p": 15, "pg": False, "q": 2}])
    assert line_subtotal(line) == Decimal("90.00")


def test_unselected_add_ons_are_free():
    line = make_line(bp=Decimal("20"), a=1, ao=[{"id": "photos", "p": 15, "q": 0}])
    assert line_subtotal(line) == Decimal("20.00")


def test_half_cent_rounds_up():
    line = make_line(bp=Decimal("25.55"), a=1, c=1)

    pricing = calculate_line_pricing(line, NO_DISCOUNT)

    assert pricing.subtotal == Decimal("38.33")
    assert pricing.service_fee == Decimal("1.15")
    assert pricing.tax == Decimal("1.92")
    assert pricing.total == Decimal("41.40")


def test_single_line_gets_whole_discount():
    line = make_line(bp=Decimal("100"), a=2, c=1, ao=[{"id": "lunch", "p": 10, "pg": True, "q": 1}])
    context = DiscountContext(total_discount=Decimal("10.00"), total_subtotal=Decimal("280.00"), line_count=1)

    pricing = calculate_line_pricing(line, context)

    assert pricing.discount_share == Decimal("10.00")
    assert pricing.total == Decimal("292.40")


def test_discount_split_proportionally():
    first = make_line(i=0, bp=Decimal("60"), a=1)
    second = make_line(i=1, bp=Decimal("40"), a=1)
    context = DiscountContext(total_discount=Decimal("10.00"), total_subtotal=Decimal("100.00"), line_count=2)

    assert calculate_line_pricing(first, context).discount_share == Decimal("6.00")
    assert calculate_line_pricing(second, context).discount_share == Decimal("4.00")


def test_rounded_shares_are_not_rebalanced():
    lines = [make_line(i=i, bp=Decimal("10"), a=1) for i in range(3)]
    context = DiscountContext(total_discount=Decimal("10.00"), total_subtotal=Decimal("30.00"), line_count=3)

    shares = [calculate_line_pricing(line, context).discount_share for line in lines]

    assert shares == [Decimal("3.33")] * 3
    assert sum(shares) == Decimal("9.99")


def test_total_never_negative():
    line = make_line(bp=Decimal("10"), a=1)
    context = DiscountContext(total_discount=Decimal("1000"), total_subtotal=Decimal("10"), line_count=1)
    assert calculate_line_pricing(line, context).total == Decimal("0")


def test_same_inputs_same_breakdown():
    line = make_line(bp=Decimal("33.33"), a=2, c=3, ao=[{"id": "x", "p": "7.77", "pg": True, "q": 2}])
    context = DiscountContext(total_discount=Decimal("12.34"), total_subtotal=Decimal("500"), line_count=2)

    first = calculate_line_pricing(line, context)
    second = calculate_line_pricing(line, context)

    assert first == second
    assert first.model_dump_json() == second.model_dump_json()


def test_discount_context_prefers_quoted_subtotal():
    lines = [make_line(i=0, bp=Decimal("60"), a=1), make_line(i=1, bp=Decimal("40"), a=1)]
    metadata = PaymentMetadata.model_validate({"pricing_discount": "10", "pricing_subtotal": "120.00"})

    context = build_discount_context(lines, metadata)

    assert context.total_subtotal == Decimal("120.00")
    assert context.total_discount == Decimal("10")
    assert context.line_count == 2


def test_discount_context_falls_back_to_line_subtotals():
    lines = [make_line(i=0, bp=Decimal("60"), a=1), make_line(i=1, bp=Decimal("40"), a=1)]
    metadata = PaymentMetadata.model_validate({"pricing_discount": "10", "pricing_subtotal": "n/a"})

    context = build_discount_context(lines, metadata)

    assert context.total_subtotal == Decimal("100.00")
    assert calculate_line_pricing(lines[0], context).discount_share == Decimal("6.00")


def test_negative_discount_is_ignored():
    metadata = PaymentMetadata.model_validate({"pricing_discount": "-5"})
    context = build_discount_context([make_line(bp=Decimal("10"))], metadata)
    assert context.total_discount == Decimal("0")


def test_breakdown_from_total():
    assert breakdown_from_total(Decimal("108.00")) == (Decimal("100.00"), Decimal("3.00"), Decimal("5.00"))
