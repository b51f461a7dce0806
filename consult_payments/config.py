import os
from decimal import Decimal
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env from the repository root
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

MIN_PAYMENT_AMOUNT = Decimal("10")
DEFAULT_CURRENCY = "usd"
TAX_RATE = Decimal("0.21")
HISTORY_LIMIT = 50

DEFAULT_DESCRIPTION = "Legal consultation"
DEFAULT_CONSULTATION_SUMMARY = "Legal consultation - payment processed via Stripe"
DEFAULT_CATEGORY = "General"
DEFAULT_CLIENT_NAME = "Client"


def get_database_url():
    return os.getenv("DATABASE_URL")


def get_stripe_secret_key():
    return os.getenv("STRIPE_SECRET_KEY")


def get_webhook_secret():
    return os.getenv("STRIPE_WEBHOOK_SECRET")


def get_jwt_secret():
    return os.getenv("JWT_SECRET")


def get_smtp_settings() -> dict:
    return {
        "host": os.getenv("SMTP_HOST"),
        "port": int(os.getenv("SMTP_PORT", "587")),
        "username": os.getenv("SMTP_USERNAME"),
        "password": os.getenv("SMTP_PASSWORD"),
        "timeout": float(os.getenv("SMTP_TIMEOUT", "10")),
    }


def get_email_from():
    return os.getenv("EMAIL_FROM", "no-reply@consultations.local")


def get_lawyer_email():
    return os.getenv("LAWYER_EMAIL", "lawyers@consultations.local")


def get_log_level():
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_log_format():
    return os.getenv("LOG_FORMAT", "json").lower()
