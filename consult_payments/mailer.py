import smtplib
from email.message import EmailMessage

import structlog

from consult_payments.config import get_email_from, get_smtp_settings
from consult_payments.errors import EmailDeliveryError

logger = structlog.get_logger(__name__)


def send_email(to: str, subject: str, html: str) -> None:
    """Send one HTML email over SMTP. Any failure raises ``EmailDeliveryError``."""
    settings = get_smtp_settings()
    if not settings["host"]:
        raise EmailDeliveryError("SMTP_HOST is not configured")

    message = EmailMessage()
    message["From"] = get_email_from()
    message["To"] = to
    message["Subject"] = subject
    message.set_content("This message requires an HTML capable email client.")
    message.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(settings["host"], settings["port"], timeout=settings["timeout"]) as server:
            server.starttls()
            if settings["username"]:
                server.login(settings["username"], settings["password"])
            server.send_message(message)
    except (smtplib.SMTPException, OSError) as e:
        raise EmailDeliveryError(str(e)) from e

    logger.info("email_sent", to=to, subject=subject)
