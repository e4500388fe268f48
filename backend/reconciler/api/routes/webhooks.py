"""
Payment event delivery endpoint.

Events reach this endpoint only after the provider signature has been
verified upstream. Delivery is at-least-once and unordered, so the
response contract is:
  - 200 for anything that should not be redelivered: handled events,
    irrelevant event types, and non-retryable data problems
  - 5xx (unhandled exception) for infrastructure failures, so the
    provider retries; every reconciliation step is idempotent
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from reconciler.db.session import get_db
from reconciler.schemas.payment_event import WebhookEnvelope
from reconciler.schemas.reconciliation import ReconcileResult
from reconciler.services.notification_service import NotificationDispatcher
from reconciler.services.reconciliation_service import get_dispatcher, reconcile_payment
from reconciler.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
ACKNOWLEDGED_EVENTS = {
    "payment_intent.payment_failed",
    "charge.succeeded",
    "charge.refunded",
}


@router.post("/payments")
async def receive_payment_event(
    envelope: WebhookEnvelope,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Receive one provider event.

    Only payment_intent.succeeded is reconciled. Refund and failure events
    belong to other workflows and are only acknowledged.
    """
    structlog.contextvars.bind_contextvars(event_type=envelope.type, event_id=envelope.id)

    if envelope.type != PAYMENT_SUCCEEDED:
        if envelope.type in ACKNOWLEDGED_EVENTS:
            logger.info("payment_event_acknowledged", object_id=envelope.data.object.id)
        else:
            logger.info("payment_event_unhandled", object_id=envelope.data.object.id)
        return {"received": True}

    result: ReconcileResult = await reconcile_payment(db, envelope.to_payment_event(), dispatcher)
    return {"received": True, "result": result.model_dump(mode="json")}
