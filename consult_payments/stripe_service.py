import stripe

from consult_payments.config import get_stripe_secret_key

stripe.api_key = get_stripe_secret_key()


def to_plain(value):
    """Recursively turn StripeObjects into plain dicts and lists."""
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


def create_payment(amount_minor: int, currency: str, description: str, metadata: dict):
    return stripe.PaymentIntent.create(
        amount=amount_minor,
        currency=currency,
        description=description,
        metadata=metadata,
        automatic_payment_methods={"enabled": True},
    )


def retrieve_payment(payment_intent_id: str) -> dict:
    return to_plain(stripe.PaymentIntent.retrieve(payment_intent_id))


def refund_payment(payment_intent_id: str, idempotency_key: str):
    return stripe.Refund.create(
        payment_intent=payment_intent_id,
        idempotency_key=idempotency_key
    )


def construct_event(payload: bytes, signature: str, secret: str) -> dict:
    """Verify the signature over ``payload`` and return the event as a dict."""
    return to_plain(stripe.Webhook.construct_event(payload, signature, secret))
