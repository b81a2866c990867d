"""Payment-domain exceptions; rendered as {"error": message} by the API layer."""
from typing import Optional


class PaymentsError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(PaymentsError):
    """Malformed caller input, rejected before any network or database call."""

    status_code = 400


class BalanceError(PaymentsError):
    """Proposed amount exceeds the remaining balance."""

    status_code = 400


class NotFoundError(PaymentsError):
    status_code = 404


class AuthError(PaymentsError):
    """Identity provider rejected the credentials or returned no token."""

    status_code = 401


class GatewayError(PaymentsError):
    """Non-2xx from the payment gateway; carries the upstream status."""

    status_code = 502


class ParseError(GatewayError):
    """Gateway response did not match the expected charge shape."""


class NotificationError(PaymentsError):
    """Email/SMS delivery failure. Logged by callers, never propagated."""
