"""
Refunds, either requested by the payment owner or reported by the processor.
"""
from decimal import Decimal
from functools import partial
from typing import Tuple

import structlog
from sqlalchemy.orm import Session

from consult_payments import ledger, notifications, stripe_service
from consult_payments.errors import NotFoundError, PaymentError
from consult_payments.models import PAYMENT_COMPLETED
from consult_payments.money import to_major_units
from consult_payments.notifications import NotificationAction
from consult_payments.schemas import ChargePayload

logger = structlog.get_logger(__name__)


def refund(db: Session, payment_id: str, caller_id: str) -> Tuple[str, Decimal]:
    """Refund a completed payment owned by the caller. Returns ``(refund_id, amount)``."""
    payment = ledger.get_payment(db, payment_id)
    if payment is None:
        raise NotFoundError("Payment")

    if payment.user_id != caller_id:
        raise PaymentError("You are not authorized to refund this payment")

    if payment.status != PAYMENT_COMPLETED:
        raise PaymentError("Only completed payments can be refunded")

    if not payment.stripe_payment_id:
        raise PaymentError("This payment has no valid Stripe reference")

    try:
        stripe_refund = stripe_service.refund_payment(
            payment.stripe_payment_id,
            idempotency_key=f"refund-{payment.id}",
        )
    except Exception as e:
        logger.error("refund_create_failed", payment_id=payment_id, error=str(e))
        raise PaymentError("Could not process the refund") from e

    amount = to_major_units(stripe_refund.amount)
    if not ledger.mark_refunded(db, payment_id, amount):
        # charge.refunded got here first
        logger.warning("refund_already_recorded", payment_id=payment_id, refund_id=stripe_refund.id)

    logger.info("refund_created", refund_id=stripe_refund.id, payment_id=payment_id, user_id=caller_id, amount=str(amount))
    return stripe_refund.id, amount


def handle_external_refund_notice(db: Session, charge: ChargePayload) -> None:
    """Apply a ``charge.refunded`` event. Never raises."""
    try:
        if not isinstance(charge.payment_intent, str):
            logger.info("charge_refund_without_intent_reference", charge_id=charge.id)
            return

        payment = ledger.find_by_stripe_id(db, charge.payment_intent)
        if payment is None:
            logger.info("charge_refund_unknown_payment", charge_id=charge.id, payment_intent_id=charge.payment_intent)
            return

        refunded_amount = to_major_units(charge.amount_refunded)
        ledger.mark_refunded(db, payment.id, refunded_amount, only_if_completed=False)
        logger.info(
            "payment_marked_refunded",
            payment_id=payment.id,
            charge_id=charge.id,
            refunded_amount=str(refunded_amount),
        )

        email, client_name = notifications.resolve_recipient(db, payment.user_id, charge.receipt_email)
        if not email:
            logger.info("notifications_skipped_no_email", payment_id=payment.id)
            return

        notifications.run_isolated(NotificationAction(
            "refund_confirmation",
            partial(notifications.send_refund_confirmation_email,
                    email, client_name, refunded_amount, charge.currency),
            {"payment_id": payment.id, "charge_id": charge.id},
        ))
    except Exception as e:
        db.rollback()
        logger.error("charge_refund_processing_failed", charge_id=charge.id, error=str(e))
