"""
Stripe webhook endpoint.

Only a failed signature check gets a 400. Once an event is verified the
response is always ``{"received": true}``: handler failures are logged here
rather than surfaced, otherwise Stripe's retries would pile onto whatever
internal fault caused them.
"""
import structlog
from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from consult_payments import reconciler, refunds, stripe_service
from consult_payments.config import get_webhook_secret
from consult_payments.database import SessionLocal
from consult_payments.errors import ValidationError
from consult_payments.schemas import ChargePayload, IntentPayload, WebhookEvent

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def verify_event(raw_body: bytes, signature: str) -> WebhookEvent:
    """Check the signature over the exact request bytes and build the event."""
    secret = get_webhook_secret()
    if not secret:
        raise ValidationError("STRIPE_WEBHOOK_SECRET is not configured")

    try:
        event = stripe_service.construct_event(raw_body, signature, secret)
    except Exception as e:
        raise ValidationError(f"Invalid webhook signature: {e}") from e

    return WebhookEvent(
        id=event.get("id"),
        type=event.get("type") or "",
        payload=(event.get("data") or {}).get("object") or {},
    )


def _handlers():
    return {
        "payment_intent.succeeded": (IntentPayload, reconciler.handle_succeeded),
        "payment_intent.payment_failed": (IntentPayload, reconciler.handle_failed),
        "charge.refunded": (ChargePayload, refunds.handle_external_refund_notice),
    }


def route_event(db: Session, event: WebhookEvent) -> None:
    handler = _handlers().get(event.type)
    if handler is None:
        logger.info("webhook_event_ignored", event_id=event.id, event_type=event.type)
        return

    payload_model, handle = handler
    try:
        handle(db, payload_model.model_validate(event.payload))
    except Exception as e:
        db.rollback()
        logger.error(
            "webhook_handler_failed",
            event_id=event.id,
            event_type=event.type,
            error=str(e),
            exc_info=True,
        )


def _process(event: WebhookEvent) -> None:
    db = SessionLocal()
    try:
        route_event(db, event)
    finally:
        db.close()


@router.post("/stripe")
async def stripe_webhook(request: Request, stripe_signature: str = Header(None)):
    # The signature covers the raw bytes, so the body must not be parsed first
    payload = await request.body()

    if not stripe_signature:
        logger.warning("webhook_missing_signature")
        return JSONResponse(status_code=400, content={"error": "Missing webhook signature"})

    try:
        event = verify_event(payload, stripe_signature)
    except ValidationError as e:
        logger.error("webhook_verification_failed", error=e.message)
        return JSONResponse(status_code=400, content={"error": "Webhook error"})

    logger.info("webhook_received", event_id=event.id, event_type=event.type)
    await run_in_threadpool(_process, event)
    return {"received": True}
