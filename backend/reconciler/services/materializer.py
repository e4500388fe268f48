"""
Booking materializer: the fallback path that creates bookings straight
from a payment event when checkout has not (yet) written them.

Steps:
  1. Decode the cart snapshot (terminal skip when undecodable)
  2. Resolve the customer by email, creating a guest account if needed
  3. Per cart line, in index order: price it, derive its reference and
     insert a Confirmed booking. A uniqueness conflict means another
     writer created the line first; its row is adopted as "reused" and,
     when checkout left it Pending, confirmed.
     Any other line error skips that line only.
  4. No booking at all for a captured payment is an alert-worthy failure
  5. Otherwise one aggregated notification covers every line

Each line is committed on its own, so a partially materialized cart is
durable and a later redelivery converges on it line by line.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.core.config import get_settings
from reconciler.core.exceptions import (
    DecodeError,
    InvalidCartLineError,
    LineMaterializationError,
    MissingCustomerDataError,
    ReconciliationError,
    TourNotFoundError,
)
from reconciler.core.logging import get_logger
from reconciler.core.metrics import record_booking_line
from reconciler.models.booking import Booking, BookingStatus
from reconciler.models.tour import Tour
from reconciler.schemas.cart import CartLineSnapshot
from reconciler.schemas.notification import CustomerContact, PricingSummary
from reconciler.schemas.payment_event import PaymentEvent, PaymentMetadata
from reconciler.schemas.pricing import DiscountContext
from reconciler.schemas.reconciliation import LineFailure, ReconcileOutcome, ReconcileResult
from reconciler.services import booking_service, customer_service
from reconciler.services.booking_reference import generate_booking_reference, generate_order_reference
from reconciler.services.metadata_decoder import decode_cart
from reconciler.services.notification_service import (
    NotificationDispatcher,
    build_notification,
    pricing_from_bookings,
)
from reconciler.services.pricing import ZERO, build_discount_context, calculate_line_pricing

logger = get_logger(__name__)


@dataclass
class MaterializedLine:
    item_index: int
    booking_reference: str
    reused: bool
    confirmed_pending: bool = False


@dataclass
class MaterializationReport:
    lines: list[MaterializedLine] = field(default_factory=list)
    failures: list[LineFailure] = field(default_factory=list)

    @property
    def references(self) -> list[str]:
        return [line.booking_reference for line in self.lines]

    @property
    def created_references(self) -> list[str]:
        return [line.booking_reference for line in self.lines if not line.reused]

    @property
    def reused_references(self) -> list[str]:
        return [line.booking_reference for line in self.lines if line.reused]


def booking_currency(event: PaymentEvent, metadata: PaymentMetadata) -> str:
    return (metadata.pricing_currency or event.currency or get_settings().DEFAULT_CURRENCY).upper()


def _add_on_selections(line: CartLineSnapshot) -> Optional[dict]:
    selections = {}
    for add_on in line.active_add_ons:
        if not add_on.id:
            continue
        selections[add_on.id] = {
            "id": add_on.id,
            "title": add_on.title,
            "price": str(add_on.price),
            "per_guest": add_on.per_guest,
            "quantity": add_on.quantity,
        }
    return selections or None


def build_booking(
    *,
    event: PaymentEvent,
    metadata: PaymentMetadata,
    line: CartLineSnapshot,
    context: DiscountContext,
    customer_id: int,
    currency: str,
) -> Booking:
    """Confirmed booking for one cart line with its pricing pinned."""
    pricing = calculate_line_pricing(line, context)
    option = line.selected_option
    return Booking(
        booking_reference=generate_booking_reference(event.payment_id, line.item_index),
        payment_id=event.payment_id,
        item_index=line.item_index,
        tour_id=line.tour_id,
        customer_id=customer_id,
        date=line.date or event.received_at.date(),
        time=line.time or get_settings().DEFAULT_TOUR_TIME,
        adult_guests=line.adult_count,
        child_guests=line.child_count,
        infant_guests=line.infant_count,
        subtotal=pricing.subtotal,
        service_fee=pricing.service_fee,
        tax=pricing.tax,
        total_price=pricing.total,
        currency=currency,
        discount_code=metadata.discount_code,
        discount_amount=pricing.discount_share if pricing.discount_share > 0 else None,
        status=BookingStatus.CONFIRMED.value,
        payment_method="card",
        selected_option=option.model_dump(mode="json") if option else None,
        add_on_selections=_add_on_selections(line),
        hotel_pickup_details=metadata.hotel_pickup_details,
        hotel_pickup_location=(
            metadata.hotel_pickup_location.model_dump() if metadata.hotel_pickup_location else None
        ),
        special_requests=metadata.special_requests,
    )


async def materialize_line(
    db: AsyncSession,
    *,
    event: PaymentEvent,
    metadata: PaymentMetadata,
    line: CartLineSnapshot,
    context: DiscountContext,
    customer_id: int,
    currency: str,
) -> MaterializedLine:
    if not line.tour_id:
        raise InvalidCartLineError("cart line has no tour id", reason="missing_tour_id")
    if line.date is None:
        # A paid line is never dropped over its date; the admin alert shows the one used.
        logger.warning(
            "booking_line_date_defaulted",
            payment_id=event.payment_id,
            item_index=line.item_index,
            date=event.received_at.date().isoformat(),
        )

    tour = await db.get(Tour, line.tour_id)
    if tour is None:
        raise TourNotFoundError(f"tour {line.tour_id} not found")

    booking = build_booking(
        event=event,
        metadata=metadata,
        line=line,
        context=context,
        customer_id=customer_id,
        currency=currency,
    )
    stored, created = await booking_service.insert_booking(db, booking)
    materialized = MaterializedLine(
        item_index=line.item_index,
        booking_reference=stored.booking_reference,
        reused=not created,
    )
    if not created and stored.status == BookingStatus.PENDING.value:
        # Checkout won the insert; the payment is captured, so its row is confirmed here.
        materialized.confirmed_pending = await booking_service.confirm_pending_booking(db, stored.id)
    return materialized


async def materialize_lines(
    db: AsyncSession,
    *,
    event: PaymentEvent,
    metadata: PaymentMetadata,
    lines: list[CartLineSnapshot],
    customer_id: int,
) -> MaterializationReport:
    report = MaterializationReport()
    context = build_discount_context(lines, metadata)
    currency = booking_currency(event, metadata)

    for line in lines:
        try:
            materialized = await materialize_line(
                db,
                event=event,
                metadata=metadata,
                line=line,
                context=context,
                customer_id=customer_id,
                currency=currency,
            )
        except LineMaterializationError as e:
            logger.error(
                "booking_line_failed",
                payment_id=event.payment_id,
                item_index=line.item_index,
                tour_id=line.tour_id,
                reason=e.reason,
                error=str(e),
            )
            record_booking_line("failed")
            report.failures.append(LineFailure(item_index=line.item_index, reason=e.reason, detail=str(e)))
            continue

        record_booking_line("reused" if materialized.reused else "created")
        logger.info(
            "booking_line_reused" if materialized.reused else "booking_line_created",
            payment_id=event.payment_id,
            item_index=line.item_index,
            booking_reference=materialized.booking_reference,
            confirmed_pending=materialized.confirmed_pending,
        )
        report.lines.append(materialized)

    return report


async def resolve_customer(db: AsyncSession, metadata: PaymentMetadata) -> int:
    if not metadata.has_customer_data:
        raise MissingCustomerDataError("customer email, first name and last name are required")
    customer = await customer_service.find_or_create_customer(
        db,
        email=metadata.customer_email,
        first_name=metadata.customer_first_name,
        last_name=metadata.customer_last_name,
        phone=metadata.customer_phone,
    )
    # Plain id: a rolled-back line insert expires every loaded instance.
    return customer.id


def quoted_pricing(event: PaymentEvent, metadata: PaymentMetadata, bookings: list[Booking]) -> PricingSummary:
    """
    Event-level pricing for the notification. Figures quoted by checkout win;
    anything checkout did not quote comes from the pinned booking breakdowns.
    """
    pinned = pricing_from_bookings(bookings, booking_currency(event, metadata))
    quoted_total = metadata.pricing_total
    if quoted_total <= ZERO and event.amount:
        quoted_total = Decimal(event.amount) / 100
    return PricingSummary(
        subtotal=metadata.pricing_subtotal if metadata.pricing_subtotal > ZERO else pinned.subtotal,
        service_fee=metadata.pricing_service_fee if metadata.pricing_service_fee > ZERO else pinned.service_fee,
        tax=metadata.pricing_tax if metadata.pricing_tax > ZERO else pinned.tax,
        discount=metadata.pricing_discount if metadata.pricing_discount > ZERO else pinned.discount,
        total=quoted_total if quoted_total > ZERO else pinned.total,
        currency=pinned.currency,
    )


async def materialize(
    db: AsyncSession,
    event: PaymentEvent,
    metadata: PaymentMetadata,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> ReconcileResult:
    payment_id = event.payment_id
    logger.info("fallback_materialization_started", payment_id=payment_id)

    try:
        lines = decode_cart(metadata)
    except DecodeError as e:
        logger.error("cart_decode_failed", payment_id=payment_id, error=str(e))
        return ReconcileResult(payment_id=payment_id, outcome=ReconcileOutcome.INVALID_CART_DATA)

    try:
        customer_id = await resolve_customer(db, metadata)
    except ReconciliationError as e:
        logger.error("customer_resolution_failed", payment_id=payment_id, reason=e.reason, error=str(e))
        return ReconcileResult(payment_id=payment_id, outcome=ReconcileOutcome(e.reason))

    report = await materialize_lines(
        db, event=event, metadata=metadata, lines=lines, customer_id=customer_id
    )

    if not report.lines:
        logger.critical(
            "reconcile_no_bookings_created",
            payment_id=payment_id,
            amount=event.amount,
            failed_lines=[f.item_index for f in report.failures],
        )
        return ReconcileResult(
            payment_id=payment_id,
            outcome=ReconcileOutcome.NO_BOOKINGS_CREATED,
            failed_lines=report.failures,
        )

    references = report.references
    order_reference = generate_order_reference(payment_id, references)
    result = ReconcileResult(
        payment_id=payment_id,
        outcome=ReconcileOutcome.CREATED,
        booking_id=order_reference,
        count=len(references),
        booking_references=references,
        created_references=report.created_references,
        reused_references=report.reused_references,
        failed_lines=report.failures,
    )

    if dispatcher is not None:
        result.notified = await notify_materialized(
            db, dispatcher, event=event, metadata=metadata,
            order_reference=order_reference, references=references,
        )

    logger.info(
        "fallback_materialization_completed",
        payment_id=payment_id,
        created=len(result.created_references),
        reused=len(result.reused_references),
        failed=len(result.failed_lines),
    )
    return result


async def notify_materialized(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    *,
    event: PaymentEvent,
    metadata: PaymentMetadata,
    order_reference: str,
    references: list[str],
) -> bool:
    try:
        bookings = await booking_service.get_bookings_by_references(db, references)
        summary = build_notification(
            payment_id=event.payment_id,
            order_reference=order_reference,
            customer=CustomerContact(
                name=metadata.customer_name,
                email=metadata.customer_email,
                phone=metadata.customer_phone,
            ),
            bookings=bookings,
            metadata=metadata,
            pricing=quoted_pricing(event, metadata, bookings),
        )
    except Exception as e:
        logger.error("notification_summary_failed", payment_id=event.payment_id, error=str(e))
        return False
    return await dispatcher.dispatch(summary)
