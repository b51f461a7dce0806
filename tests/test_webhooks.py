import hashlib
import hmac
import json
import time

import pytest

from conftest import USER_ID, add_payment, count_payments, get_payment


def intent_event(event_type="payment_intent.succeeded", intent_id="pi_webhook_1", amount=1000,
                 metadata=None, receipt_email=None, **extra):
    intent = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "usd",
        "status": "succeeded",
        "metadata": metadata if metadata is not None else {
            "userId": USER_ID,
            "consultationId": "cons_1",
            "consultationSummary": "Lease dispute",
            "category": "Civil",
        },
        "receipt_email": receipt_email,
    }
    intent.update(extra)
    return {"id": "evt_1", "type": event_type, "data": {"object": intent}}


def charge_event(payment_intent="pi_refund_1", amount_refunded=5000, receipt_email=None):
    return {
        "id": "evt_2",
        "type": "charge.refunded",
        "data": {"object": {
            "id": "ch_1",
            "object": "charge",
            "payment_intent": payment_intent,
            "amount_refunded": amount_refunded,
            "currency": "usd",
            "receipt_email": receipt_email,
        }},
    }


def post_webhook(client, signature="t=1,v1=fake"):
    headers = {"stripe-signature": signature} if signature else {}
    return client.post("/webhooks/stripe", content=b'{"raw": "payload"}', headers=headers)


def test_missing_signature_is_rejected(client, mocker, send_email):
    construct = mocker.patch("stripe.Webhook.construct_event")

    response = post_webhook(client, signature=None)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing webhook signature"}
    construct.assert_not_called()
    send_email.assert_not_called()


def test_invalid_signature_has_no_side_effects(client, mocker, send_email):
    mocker.patch("stripe.Webhook.construct_event", side_effect=ValueError("No signatures found matching the expected signature"))
    succeeded = mocker.patch("consult_payments.reconciler.handle_succeeded")

    response = post_webhook(client)

    assert response.status_code == 400
    assert response.json() == {"error": "Webhook error"}
    succeeded.assert_not_called()
    send_email.assert_not_called()
    assert count_payments() == 0


def test_verification_detail_is_not_returned(client, mocker):
    mocker.patch("stripe.Webhook.construct_event", side_effect=ValueError("secret whsec_leak mismatch"))

    response = post_webhook(client)

    assert "whsec_leak" not in response.text


def test_missing_secret_fails_closed(client, mocker, monkeypatch):
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
    construct = mocker.patch("stripe.Webhook.construct_event", return_value=intent_event())

    response = post_webhook(client)

    assert response.status_code == 400
    construct.assert_not_called()
    assert count_payments() == 0


def test_signature_checked_against_raw_body(client, mocker):
    construct = mocker.patch("stripe.Webhook.construct_event", return_value=intent_event(event_type="ping"))

    post_webhook(client, signature="t=1,v1=abc")

    payload, signature, secret = construct.call_args.args
    assert payload == b'{"raw": "payload"}'
    assert signature == "t=1,v1=abc"
    assert secret == "whsec_test"


def test_unknown_event_is_acknowledged_without_action(client, mocker, send_email):
    mocker.patch("stripe.Webhook.construct_event",
                 return_value={"id": "evt_3", "type": "customer.subscription.updated", "data": {"object": {"id": "sub_1"}}})
    succeeded = mocker.patch("consult_payments.reconciler.handle_succeeded")
    failed = mocker.patch("consult_payments.reconciler.handle_failed")
    refunded = mocker.patch("consult_payments.refunds.handle_external_refund_notice")

    response = post_webhook(client)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    succeeded.assert_not_called()
    failed.assert_not_called()
    refunded.assert_not_called()
    send_email.assert_not_called()


def test_succeeded_creates_completed_payment(client, mocker, send_email, user):
    mocker.patch("stripe.Webhook.construct_event", return_value=intent_event(amount=1000))

    response = post_webhook(client)

    assert response.json() == {"received": True}
    assert count_payments() == 1
    history = client.get("/payments/history").json()["payments"]
    assert history[0]["amount"] == 10.0
    assert history[0]["status"] == "completed"
    assert history[0]["consultationSummary"] == "Lease dispute"

    recipients = [c.args[0] for c in send_email.call_args_list]
    assert recipients == ["client@example.com", "lawyers@consultations.local", "client@example.com"]
    assert send_email.call_args_list[2].args[1].startswith("Invoice INV-")


def test_redelivered_event_creates_one_payment(client, mocker, send_email, user):
    mocker.patch("stripe.Webhook.construct_event", return_value=intent_event())

    first = post_webhook(client)
    second = post_webhook(client)

    assert first.status_code == second.status_code == 200
    assert count_payments() == 1
    assert send_email.call_count == 3


def test_succeeded_without_user_is_ignored(client, mocker, send_email):
    mocker.patch("stripe.Webhook.construct_event", return_value=intent_event(metadata={"consultationId": "new"}))

    response = post_webhook(client)

    assert response.status_code == 200
    assert count_payments() == 0
    send_email.assert_not_called()


def test_receipt_email_takes_precedence(client, mocker, send_email, user):
    mocker.patch("stripe.Webhook.construct_event", return_value=intent_event(receipt_email="receipt@example.com"))

    post_webhook(client)

    assert send_email.call_args_list[0].args[0] == "receipt@example.com"


def test_no_email_skips_notifications(client, mocker, send_email):
    # No receipt email and no user row to fall back on
    mocker.patch("stripe.Webhook.construct_event", return_value=intent_event())

    response = post_webhook(client)

    assert response.status_code == 200
    assert count_payments() == 1
    send_email.assert_not_called()


def test_confirmation_failure_does_not_block_other_notifications(client, mocker, user):
    mocker.patch("stripe.Webhook.construct_event", return_value=intent_event())
    confirmation = mocker.patch("consult_payments.notifications.send_payment_confirmation_email",
                                side_effect=RuntimeError("provider down"))
    lawyer = mocker.patch("consult_payments.notifications.send_lawyer_notification_email")
    invoice = mocker.patch("consult_payments.notifications.send_invoice_email")

    response = post_webhook(client)

    assert response.json() == {"received": True}
    assert count_payments() == 1
    confirmation.assert_called_once()
    lawyer.assert_called_once()
    invoice.assert_called_once()


def test_handler_failure_still_acknowledged(client, mocker, send_email):
    mocker.patch("stripe.Webhook.construct_event", return_value=intent_event())
    mocker.patch("consult_payments.ledger.create_completed_payment", side_effect=RuntimeError("database is locked"))

    response = post_webhook(client)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    send_email.assert_not_called()


def test_failed_intent_sends_one_email_and_no_ledger_row(client, mocker, send_email, user):
    mocker.patch("stripe.Webhook.construct_event", return_value=intent_event(
        event_type="payment_intent.payment_failed",
        last_payment_error={"message": "Your card was declined."},
    ))

    response = post_webhook(client)

    assert response.status_code == 200
    assert count_payments() == 0
    send_email.assert_called_once()
    to, subject, html = send_email.call_args.args
    assert to == "client@example.com"
    assert "Problem with your payment" in subject
    assert "Your card was declined." in html


def test_failed_intent_email_failure_is_swallowed(client, mocker, user):
    mocker.patch("stripe.Webhook.construct_event", return_value=intent_event(event_type="payment_intent.payment_failed"))
    mocker.patch("consult_payments.mailer.send_email", side_effect=OSError("connection refused"))

    response = post_webhook(client)

    assert response.status_code == 200


def test_charge_refunded_marks_payment(client, mocker, send_email, user):
    add_payment("pay_refund_1", stripe_payment_id="pi_refund_1", amount="50.00")
    mocker.patch("stripe.Webhook.construct_event", return_value=charge_event(amount_refunded=5000))

    response = post_webhook(client)

    assert response.json() == {"received": True}
    payment = get_payment("pay_refund_1")
    assert payment.status == "refunded"
    assert float(payment.refunded_amount) == 50.0
    send_email.assert_called_once()
    assert send_email.call_args.args[0] == "client@example.com"
    assert "Refund processed" in send_email.call_args.args[1]


def test_charge_refunded_for_unknown_payment_is_ignored(client, mocker, send_email):
    mocker.patch("stripe.Webhook.construct_event", return_value=charge_event(payment_intent="pi_unknown"))

    response = post_webhook(client)

    assert response.status_code == 200
    send_email.assert_not_called()


@pytest.mark.parametrize("payment_intent", [None, {"id": "pi_refund_1", "object": "payment_intent"}])
def test_charge_refunded_without_plain_reference_is_skipped(client, mocker, send_email, payment_intent):
    add_payment("pay_refund_1", stripe_payment_id="pi_refund_1")
    mocker.patch("stripe.Webhook.construct_event", return_value=charge_event(payment_intent=payment_intent))
    lookup = mocker.patch("consult_payments.ledger.find_by_stripe_id")

    response = post_webhook(client)

    assert response.status_code == 200
    lookup.assert_not_called()
    assert get_payment("pay_refund_1").status == "completed"


def signed_headers(payload: bytes, secret="whsec_test", timestamp=None):
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return {"stripe-signature": f"t={timestamp},v1={signature}", "content-type": "application/json"}


def test_signed_event_is_verified_and_reconciled(client, send_email, user):
    payload = json.dumps(intent_event(intent_id="pi_signed_1", amount=4200)).encode()

    response = client.post("/webhooks/stripe", content=payload, headers=signed_headers(payload))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    history = client.get("/payments/history").json()["payments"]
    assert [p["amount"] for p in history] == [42.0]
    assert send_email.call_count == 3


def test_signed_refund_event_marks_payment(client, send_email, user):
    add_payment("pay_signed", stripe_payment_id="pi_refund_1")
    payload = json.dumps(charge_event(amount_refunded=5000)).encode()

    response = client.post("/webhooks/stripe", content=payload, headers=signed_headers(payload))

    assert response.status_code == 200
    assert get_payment("pay_signed").status == "refunded"


def test_tampered_body_fails_real_signature_check(client, send_email):
    payload = json.dumps(intent_event()).encode()
    headers = signed_headers(payload)
    tampered = payload.replace(b"1000", b"1")

    response = client.post("/webhooks/stripe", content=tampered, headers=headers)

    assert response.status_code == 400
    assert count_payments() == 0
    send_email.assert_not_called()


def test_signature_with_wrong_secret_is_rejected(client):
    payload = json.dumps(intent_event()).encode()

    response = client.post("/webhooks/stripe", content=payload, headers=signed_headers(payload, secret="whsec_other"))

    assert response.status_code == 400
    assert count_payments() == 0
