"""
Turns processor payment events into ledger rows.

A succeeded intent produces exactly one ``completed`` payment no matter how
many times the event is delivered, or whether the client's confirmation call
got there first. Failed intents are never written to the ledger.
"""
from functools import partial
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from consult_payments import ledger, notifications
from consult_payments.config import DEFAULT_CATEGORY, DEFAULT_CONSULTATION_SUMMARY
from consult_payments.models import Payment
from consult_payments.money import to_major_units
from consult_payments.notifications import NotificationAction
from consult_payments.schemas import IntentPayload

logger = structlog.get_logger(__name__)


def _consultation_id(intent: IntentPayload) -> Optional[str]:
    value = intent.metadata.get("consultationId")
    # create_intent stores "new" when no consultation existed yet
    if not value or value == "new":
        return None
    return value


def record_payment(db: Session, intent: IntentPayload, consultation_id: Optional[str] = None) -> Optional[Payment]:
    """
    Create the ledger row for a succeeded intent.

    Returns ``None`` if the intent is already recorded, whether that is seen
    by the lookup or by the unique constraint on insert.
    """
    if ledger.find_by_stripe_id(db, intent.id) is not None:
        logger.info("payment_duplicate_ignored", payment_intent_id=intent.id)
        return None

    payment = ledger.create_completed_payment(
        db,
        user_id=intent.user_id,
        stripe_payment_id=intent.id,
        amount=to_major_units(intent.amount),
        currency=intent.currency,
        consultation_id=consultation_id or _consultation_id(intent),
        consultation_summary=intent.metadata.get("consultationSummary") or DEFAULT_CONSULTATION_SUMMARY,
        category=intent.metadata.get("category") or DEFAULT_CATEGORY,
    )
    if payment is None:
        logger.info("payment_duplicate_ignored", payment_intent_id=intent.id)
        return None

    logger.info(
        "payment_recorded",
        payment_id=payment.id,
        payment_intent_id=intent.id,
        user_id=payment.user_id,
        amount=str(payment.amount),
    )
    return payment


def handle_succeeded(db: Session, intent: IntentPayload) -> None:
    if not intent.user_id:
        logger.warning("payment_intent_missing_user", payment_intent_id=intent.id)
        return

    payment = record_payment(db, intent)
    if payment is None:
        return

    notify_payment_completed(db, payment, intent)


def notify_payment_completed(db: Session, payment: Payment, intent: IntentPayload) -> None:
    """
    Send the confirmation, lawyer notice and invoice for a new ledger row.

    Called by whichever path created the row, so each payment is announced
    once whether the webhook or the client's confirmation got there first.
    """
    email, client_name = notifications.resolve_recipient(
        db, payment.user_id, intent.receipt_email, intent.metadata.get("clientName")
    )
    if not email:
        logger.info("notifications_skipped_no_email", payment_id=payment.id)
        return

    amount = payment.amount
    currency = payment.currency
    category = payment.category
    summary = payment.consultation_summary
    context = {"payment_id": payment.id, "payment_intent_id": intent.id}

    notifications.dispatch([
        NotificationAction(
            "payment_confirmation",
            partial(notifications.send_payment_confirmation_email,
                    email, client_name, amount, currency, category, summary, payment.id),
            context,
        ),
        NotificationAction(
            "lawyer_notification",
            partial(notifications.send_lawyer_notification_email,
                    client_name, email, amount, currency, category, summary, payment.id),
            context,
        ),
        NotificationAction(
            "invoice",
            partial(notifications.send_invoice_email,
                    email, client_name, amount, currency, category, payment.id),
            context,
        ),
    ])


def handle_failed(db: Session, intent: IntentPayload) -> None:
    logger.warning(
        "payment_failed",
        payment_intent_id=intent.id,
        user_id=intent.user_id,
        last_payment_error=intent.failure_message,
    )

    email, client_name = notifications.resolve_recipient(
        db, intent.user_id, intent.receipt_email, intent.metadata.get("clientName")
    )
    if not email:
        logger.info("notifications_skipped_no_email", payment_intent_id=intent.id)
        return

    notifications.run_isolated(NotificationAction(
        "payment_failed",
        partial(notifications.send_payment_failed_email,
                email, client_name, to_major_units(intent.amount), intent.currency, intent.failure_message),
        {"payment_intent_id": intent.id},
    ))
