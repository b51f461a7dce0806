"""
Ledger reads and writes for the ``payments`` table.

The unique constraint on ``stripe_payment_id`` is what makes reconciliation
exactly-once: ``create_completed_payment`` treats a constraint violation as
"someone else already recorded this intent" and returns ``None``.
"""
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from consult_payments.config import HISTORY_LIMIT
from consult_payments.models import Payment, User, PAYMENT_COMPLETED, PAYMENT_REFUNDED

logger = structlog.get_logger(__name__)


def find_by_stripe_id(db: Session, stripe_payment_id: str) -> Optional[Payment]:
    return db.query(Payment).filter_by(stripe_payment_id=stripe_payment_id).first()


def get_payment(db: Session, payment_id: str) -> Optional[Payment]:
    return db.get(Payment, payment_id)


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.get(User, user_id)


def list_payments_for_user(db: Session, user_id: str, limit: int = HISTORY_LIMIT) -> List[Payment]:
    return (
        db.query(Payment)
        .filter_by(user_id=user_id)
        .order_by(Payment.created_at.desc())
        .limit(limit)
        .all()
    )


def create_completed_payment(
    db: Session,
    user_id: str,
    stripe_payment_id: str,
    amount: Decimal,
    currency: str,
    consultation_id: Optional[str] = None,
    consultation_summary: Optional[str] = None,
    category: Optional[str] = None,
) -> Optional[Payment]:
    payment = Payment(
        user_id=user_id,
        stripe_payment_id=stripe_payment_id,
        amount=amount,
        currency=currency,
        status=PAYMENT_COMPLETED,
        consultation_id=consultation_id,
        consultation_summary=consultation_summary,
        category=category,
    )
    db.add(payment)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("payment_insert_conflict", payment_intent_id=stripe_payment_id)
        return None

    db.refresh(payment)
    return payment


def mark_refunded(
    db: Session,
    payment_id: str,
    refunded_amount: Optional[Decimal] = None,
    only_if_completed: bool = True,
) -> bool:
    """
    Move a payment to ``refunded``.

    With ``only_if_completed`` the update is conditional on the row still being
    ``completed``, so two concurrent refunds cannot both transition it.
    Returns whether a row changed.
    """
    stmt = update(Payment).where(Payment.id == payment_id)
    if only_if_completed:
        stmt = stmt.where(Payment.status == PAYMENT_COMPLETED)
    values = {"status": PAYMENT_REFUNDED}
    if refunded_amount is not None:
        values["refunded_amount"] = refunded_amount
    result = db.execute(stmt.values(**values))
    db.commit()
    return result.rowcount > 0
