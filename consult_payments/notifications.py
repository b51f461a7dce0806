"""
Client and lawyer notifications.

Emails are side effects of a ledger transition that has already been
committed. Each one runs through ``run_isolated`` so a failing send is logged
and never reaches the webhook response or the sibling notifications.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from html import escape
from string import Template
from typing import Callable, Iterable, Optional

import structlog

from consult_payments import ledger, mailer
from consult_payments.config import DEFAULT_CLIENT_NAME, get_lawyer_email
from consult_payments.money import compute_tax

logger = structlog.get_logger(__name__)

CURRENCY_SYMBOLS = {"usd": "$", "eur": "€", "gbp": "£"}

_LAYOUT = Template("""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>$title</title></head>
<body style="font-family: Arial, sans-serif; background-color: #f5f5f5; padding: 24px;">
  <div style="max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 8px; padding: 32px;">
    <h1 style="color: #0369a1; font-size: 24px;">$title</h1>
    $body
  </div>
</body>
</html>""")


@dataclass
class NotificationAction:
    name: str
    send: Callable[[], None]
    context: dict = field(default_factory=dict)


def format_amount(amount: Decimal, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get((currency or "").lower())
    if symbol:
        return f"{symbol}{Decimal(amount):.2f}"
    return f"{Decimal(amount):.2f} {(currency or '').upper()}"


def invoice_number(payment_id: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"INV-{today:%Y%m%d}-{payment_id[-6:].upper()}"


def _render(title: str, paragraphs: Iterable[str], rows: Iterable[tuple] = ()) -> str:
    body = "".join(f"<p>{escape(p)}</p>" for p in paragraphs)
    rows = list(rows)
    if rows:
        cells = "".join(
            f"<tr><td style=\"padding: 4px 12px 4px 0;\"><strong>{escape(label)}</strong></td>"
            f"<td>{escape(str(value))}</td></tr>"
            for label, value in rows
        )
        body += f"<table>{cells}</table>"
    return _LAYOUT.substitute(title=escape(title), body=body)


def render_payment_confirmation(client_name, amount, currency, category, consultation_summary, payment_id) -> str:
    return _render(
        "Payment confirmed",
        [
            f"Hello {client_name},",
            "Your payment was processed successfully. Our lawyers are reviewing your consultation.",
        ],
        [
            ("Amount", format_amount(amount, currency)),
            ("Category", category),
            ("Summary", consultation_summary),
            ("Payment reference", payment_id),
        ],
    )


def render_lawyer_notification(client_name, client_email, amount, currency, category, consultation_summary, payment_id) -> str:
    return _render(
        "New paid consultation",
        ["A client has paid for a consultation."],
        [
            ("Client", client_name),
            ("Email", client_email),
            ("Amount", format_amount(amount, currency)),
            ("Category", category),
            ("Summary", consultation_summary),
            ("Payment reference", payment_id),
        ],
    )


def render_invoice(client_name, number, issued_on, amount, currency, category, payment_id) -> str:
    tax, total = compute_tax(amount)
    return _render(
        f"Invoice {number}",
        [f"Billed to: {client_name}", f"Issued on {issued_on:%Y-%m-%d}"],
        [
            ("Service", f"Legal consultation ({category})"),
            ("Base amount", format_amount(amount, currency)),
            ("Tax (21%)", format_amount(tax, currency)),
            ("Total", format_amount(total, currency)),
            ("Payment reference", payment_id),
        ],
    )


def render_payment_failed(client_name, amount, currency, error_message=None) -> str:
    paragraphs = [
        f"Hello {client_name},",
        f"We could not process your payment of {format_amount(amount, currency)}.",
    ]
    if error_message:
        paragraphs.append(f"Reason: {error_message}")
    paragraphs.append("No charge was made. Please try again with another payment method.")
    return _render("Problem with your payment", paragraphs)


def render_refund_confirmation(client_name, amount, currency) -> str:
    return _render(
        "Refund processed",
        [
            f"Hello {client_name},",
            f"Your refund of {format_amount(amount, currency)} has been processed. "
            "Depending on your bank it can take 5 to 10 business days to appear.",
        ],
    )


def send_payment_confirmation_email(to, client_name, amount, currency, category, consultation_summary, payment_id):
    mailer.send_email(
        to,
        "Payment confirmed - consultation received",
        render_payment_confirmation(client_name, amount, currency, category, consultation_summary, payment_id),
    )


def send_lawyer_notification_email(client_name, client_email, amount, currency, category, consultation_summary, payment_id):
    mailer.send_email(
        get_lawyer_email(),
        f"New paid consultation - {category}",
        render_lawyer_notification(client_name, client_email, amount, currency, category, consultation_summary, payment_id),
    )


def send_invoice_email(to, client_name, amount, currency, category, payment_id, issued_on: Optional[date] = None):
    issued_on = issued_on or date.today()
    number = invoice_number(payment_id, issued_on)
    mailer.send_email(
        to,
        f"Invoice {number} - legal consultation",
        render_invoice(client_name, number, issued_on, amount, currency, category, payment_id),
    )


def send_payment_failed_email(to, client_name, amount, currency, error_message=None):
    mailer.send_email(
        to,
        "Problem with your payment - legal consultation",
        render_payment_failed(client_name, amount, currency, error_message),
    )


def send_refund_confirmation_email(to, client_name, amount, currency):
    mailer.send_email(
        to,
        "Refund processed - legal consultation",
        render_refund_confirmation(client_name, amount, currency),
    )


def run_isolated(action: NotificationAction) -> bool:
    """Run one notification, logging instead of raising. Returns success."""
    try:
        action.send()
    except Exception as e:
        logger.error("notification_failed", notification=action.name, error=str(e), **action.context)
        return False
    logger.info("notification_sent", notification=action.name, **action.context)
    return True


def dispatch(actions: Iterable[NotificationAction]) -> int:
    """Run actions in order, each isolated from the others' failures."""
    return sum(1 for action in actions if run_isolated(action))


def resolve_recipient(db, user_id: Optional[str], receipt_email: Optional[str] = None,
                      client_name: Optional[str] = None):
    """
    Work out who to email about a payment.

    The processor's receipt email wins over the account email. Returns
    ``(email, name)``; ``email`` is ``None`` when nobody can be reached.
    """
    user = ledger.get_user(db, user_id) if user_id else None
    email = receipt_email or (user.email if user else None)
    name = client_name or (user.name if user and user.name else None) or DEFAULT_CLIENT_NAME
    return email, name
