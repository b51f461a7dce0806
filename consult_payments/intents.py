"""
Payment intent creation and client-side confirmation.

Amounts arrive in major units and are converted to minor units only when the
processor is called. Processor errors are logged and replaced with a generic
``PaymentError`` so no Stripe detail reaches the client.
"""
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from consult_payments import reconciler, stripe_service
from consult_payments.config import DEFAULT_DESCRIPTION, MIN_PAYMENT_AMOUNT
from consult_payments.errors import PaymentError, ValidationError
from consult_payments.money import to_major_units, to_minor_units
from consult_payments.schemas import IntentPayload

logger = structlog.get_logger(__name__)

SUCCEEDED = "succeeded"


def create_intent(
    amount,
    currency: str,
    consultation_id: Optional[str],
    description: Optional[str],
    caller_id: str,
) -> Tuple[str, str]:
    """Create a PaymentIntent and return ``(payment_intent_id, client_secret)``."""
    try:
        amount = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError("Invalid payment data", {"amount": "Amount must be a number"})

    if amount < MIN_PAYMENT_AMOUNT:
        raise ValidationError(
            "Invalid payment data",
            {"amount": f"Minimum amount is {MIN_PAYMENT_AMOUNT} {currency.upper()}"},
        )

    try:
        intent = stripe_service.create_payment(
            to_minor_units(amount),
            currency.lower(),
            description or DEFAULT_DESCRIPTION,
            {"userId": caller_id, "consultationId": consultation_id or "new"},
        )
    except Exception as e:
        logger.error("payment_intent_create_failed", user_id=caller_id, error=str(e))
        raise PaymentError("Could not create the payment intent") from e

    logger.info(
        "payment_intent_created",
        payment_intent_id=intent.id,
        user_id=caller_id,
        amount=str(amount),
    )
    return intent.id, intent.client_secret


def confirm_payment(
    db: Session,
    payment_intent_id: str,
    caller_id: str,
    consultation_id: Optional[str] = None,
) -> Decimal:
    """
    Check with the processor that an intent owned by the caller succeeded.

    The webhook may not have arrived yet, so when the client names a
    consultation the ledger row is written here as well. That write is best
    effort: the money has moved, so a ledger failure is logged and the
    confirmation still succeeds. A row created here sends the payment
    notifications, since the webhook will then see it as a duplicate.
    """
    try:
        intent = IntentPayload.model_validate(stripe_service.retrieve_payment(payment_intent_id))
    except Exception as e:
        logger.error("payment_intent_retrieve_failed", payment_intent_id=payment_intent_id, error=str(e))
        raise PaymentError("Could not confirm the payment") from e

    if intent.user_id != caller_id:
        logger.warning("payment_confirm_wrong_owner", payment_intent_id=payment_intent_id, user_id=caller_id)
        raise PaymentError("This payment does not belong to your account")

    if intent.status != SUCCEEDED:
        raise PaymentError(f"Invalid payment status: {intent.status}. Please try again.")

    amount = to_major_units(intent.amount)
    logger.info("payment_confirmed_by_client", payment_intent_id=payment_intent_id, user_id=caller_id, amount=str(amount))

    if consultation_id:
        try:
            payment = reconciler.record_payment(db, intent, consultation_id)
        except Exception as e:
            db.rollback()
            logger.error("payment_confirm_ledger_write_failed", payment_intent_id=payment_intent_id, error=str(e))
        else:
            if payment is not None:
                try:
                    reconciler.notify_payment_completed(db, payment, intent)
                except Exception as e:
                    logger.error("payment_confirm_notifications_failed", payment_id=payment.id, error=str(e))

    return amount
