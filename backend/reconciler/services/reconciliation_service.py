"""
Payment-to-booking reconciliation entry point.

Event -> idempotency resolver -> fast path (confirm Pending / no-op)
                              -> slow path (materializer)

Every path is safe to run any number of times, in any order, concurrently
with itself and with the checkout writer: correctness comes from the
deterministic booking references and the storage uniqueness constraints,
not from anything held in this process.
"""

import time
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.core.exceptions import InvalidMetadataError
from reconciler.core.logging import get_logger
from reconciler.core.metrics import reconciliation_latency, record_notification, record_reconciliation
from reconciler.models.booking import Booking
from reconciler.schemas.notification import CustomerContact, NotificationKind
from reconciler.schemas.payment_event import PaymentEvent, PaymentMetadata
from reconciler.schemas.reconciliation import ReconcileOutcome, ReconcileResult
from reconciler.services import delivery_cache
from reconciler.services.booking_reference import generate_order_reference
from reconciler.services.idempotency import Resolution, ResolverState, confirm_pending, resolve
from reconciler.services.materializer import materialize
from reconciler.services.notification_service import NotificationDispatcher, build_notification
from reconciler.services.sender_factory import get_email_sender

logger = get_logger(__name__)


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(get_email_sender())


async def _confirm_existing(
    db: AsyncSession,
    event: PaymentEvent,
    metadata: PaymentMetadata,
    resolution: Resolution,
    dispatcher: Optional[NotificationDispatcher],
) -> ReconcileResult:
    confirmed = await confirm_pending(db, resolution)
    references = [b.booking_reference for b in resolution.bookings]
    order_reference = generate_order_reference(event.payment_id, references)

    if not confirmed:
        # A concurrent delivery flipped them between our read and our update.
        logger.info("pending_already_confirmed_concurrently", payment_id=event.payment_id)
        return ReconcileResult(
            payment_id=event.payment_id,
            outcome=ReconcileOutcome.ALREADY_CONFIRMED,
            booking_id=order_reference,
            count=len(references),
            booking_references=references,
        )

    result = ReconcileResult(
        payment_id=event.payment_id,
        outcome=ReconcileOutcome.UPDATED,
        booking_id=order_reference,
        count=len(references),
        booking_references=references,
    )
    if dispatcher is not None:
        # Exactly one customer confirmation per flip; the internal alert was
        # already raised by checkout when it wrote the Pending booking.
        result.notified = await _notify_confirmed(dispatcher, event, metadata, confirmed)
    return result


async def _notify_confirmed(
    dispatcher: NotificationDispatcher,
    event: PaymentEvent,
    metadata: PaymentMetadata,
    confirmed: list[Booking],
) -> bool:
    # The flips are already committed: nothing here may change the outcome.
    try:
        customer = confirmed[0].customer
        summary = build_notification(
            payment_id=event.payment_id,
            order_reference=generate_order_reference(
                event.payment_id, [b.booking_reference for b in confirmed]
            ),
            customer=CustomerContact(
                name=customer.full_name,
                email=customer.email,
                phone=metadata.customer_phone or customer.phone or "",
            ),
            bookings=confirmed,
        )
    except Exception as e:
        logger.error("notification_summary_failed", payment_id=event.payment_id, error=str(e))
        record_notification(NotificationKind.CUSTOMER_CONFIRMATION.value, sent=False)
        return False
    return await dispatcher.send_customer_confirmation(summary)


def _no_op_result(event: PaymentEvent, resolution: Resolution) -> ReconcileResult:
    references = [b.booking_reference for b in resolution.bookings]
    outcome = (
        ReconcileOutcome.ALREADY_CONFIRMED
        if resolution.state == ResolverState.ALREADY_CONFIRMED
        else ReconcileOutcome.ALREADY_FINALIZED
    )
    return ReconcileResult(
        payment_id=event.payment_id,
        outcome=outcome,
        booking_id=generate_order_reference(event.payment_id, references),
        count=len(references),
        booking_references=references,
    )


async def _reconcile(
    db: AsyncSession,
    event: PaymentEvent,
    metadata: PaymentMetadata,
    dispatcher: Optional[NotificationDispatcher],
) -> ReconcileResult:
    resolution = await resolve(db, event, metadata)

    if resolution.state == ResolverState.NO_BOOKING_DATA:
        return ReconcileResult(payment_id=event.payment_id, outcome=ReconcileOutcome.NO_BOOKING_DATA)
    if resolution.state == ResolverState.UPDATE_TO_CONFIRMED:
        return await _confirm_existing(db, event, metadata, resolution, dispatcher)
    if resolution.state == ResolverState.FALLBACK_CREATE:
        return await materialize(db, event, metadata, dispatcher)
    return _no_op_result(event, resolution)


async def reconcile_payment(
    db: AsyncSession,
    event: PaymentEvent,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> ReconcileResult:
    """
    Reconcile one "payment succeeded" event into durable bookings.

    Domain failures are reported through the result outcome. Infrastructure
    errors (database unavailable, ...) propagate so the deliverer retries.
    """
    structlog.contextvars.bind_contextvars(payment_id=event.payment_id)
    start_time = time.perf_counter()
    try:
        metadata = event.decoded_metadata()
    except InvalidMetadataError as e:
        logger.error("reconcile_skipped_invalid_metadata", error=str(e))
        result = ReconcileResult(payment_id=event.payment_id, outcome=ReconcileOutcome(e.reason))
        record_reconciliation(result.outcome.value)
        await delivery_cache.mark_settled(result)
        return result

    if not metadata.has_booking_data:
        logger.info("reconcile_skipped_no_booking_data")
        record_reconciliation(ReconcileOutcome.NO_BOOKING_DATA.value)
        return ReconcileResult(payment_id=event.payment_id, outcome=ReconcileOutcome.NO_BOOKING_DATA)

    cached = await delivery_cache.get_settled_result(event.payment_id)
    if cached is not None:
        logger.info("reconcile_settled_cache_hit", outcome=cached.outcome.value)
        record_reconciliation(cached.outcome.value)
        return cached

    logger.info("reconcile_started", amount=event.amount, currency=event.currency)
    with reconciliation_latency.time():
        result = await _reconcile(db, event, metadata, dispatcher)

    record_reconciliation(result.outcome.value)
    await delivery_cache.mark_settled(result)

    log = logger.error if result.is_alert else logger.info
    log(
        "reconcile_completed",
        outcome=result.outcome.value,
        count=result.count,
        failed_lines=[f.item_index for f in result.failed_lines],
        duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )
    return result
