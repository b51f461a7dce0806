from decimal import Decimal
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from consult_payments.config import DEFAULT_CURRENCY


class CreatePaymentIntentRequest(BaseModel):
    amount: Decimal
    currency: str = DEFAULT_CURRENCY
    consultationId: Optional[str] = None
    description: Optional[str] = None


class ConfirmPaymentRequest(BaseModel):
    paymentIntentId: str
    consultationId: Optional[str] = None


class IntentPayload(BaseModel):
    """The subset of a Stripe PaymentIntent the reconciler reads."""

    model_config = ConfigDict(extra="ignore")

    id: str
    amount: int = 0
    currency: str = DEFAULT_CURRENCY
    status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    receipt_email: Optional[str] = None
    last_payment_error: Optional[Dict[str, Any]] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.metadata.get("userId") or None

    @property
    def failure_message(self) -> Optional[str]:
        if not self.last_payment_error:
            return None
        return self.last_payment_error.get("message")


class ChargePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    # A plain intent id, or the whole intent when the event was expanded
    payment_intent: Optional[Union[str, Dict[str, Any]]] = None
    amount_refunded: int = 0
    currency: str = DEFAULT_CURRENCY
    receipt_email: Optional[str] = None


class WebhookEvent(BaseModel):
    """A verified processor event. Built per request and never persisted."""

    id: Optional[str] = None
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
