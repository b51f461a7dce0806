"""
Domain errors.

Every error the HTTP layer may render is an ``AppError`` tagged with an
``ErrorKind``; the tag decides the status code. Messages are safe to show to
users. Processor error text is logged by the caller and never put here.
"""
from enum import Enum
from typing import Dict, Optional


class ErrorKind(Enum):
    VALIDATION = ("validation", 400)
    AUTHENTICATION = ("authentication", 401)
    NOT_FOUND = ("not_found", 404)
    PAYMENT = ("payment", 400)

    def __init__(self, label, status_code):
        self.label = label
        self.status_code = status_code


class AppError(Exception):
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return self.kind.status_code


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.fields = fields


class AuthenticationError(AppError):
    kind = ErrorKind.AUTHENTICATION

    def __init__(self, message: str = "Invalid or missing token"):
        super().__init__(message)


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")


class PaymentError(AppError):
    kind = ErrorKind.PAYMENT


class EmailDeliveryError(Exception):
    """Raised by the mailer; only ever caught by the notification layer."""
