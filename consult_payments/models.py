import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Numeric, DateTime, Text
from consult_payments.database import Base

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_REFUNDED = "refunded"
PAYMENT_FAILED = "failed"


def _utcnow():
    return datetime.now(timezone.utc)


def _new_id():
    return str(uuid.uuid4())


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False, index=True)
    # Stripe PaymentIntent ID, one ledger row per intent
    stripe_payment_id = Column(String, unique=True, index=True, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)           # major units
    currency = Column(String, nullable=False, default="usd")
    status = Column(String, nullable=False, default=PAYMENT_PENDING)  # pending | completed | refunded | failed
    consultation_id = Column(String, nullable=True)
    consultation_summary = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    refunded_amount = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False)
    name = Column(String, nullable=True)
