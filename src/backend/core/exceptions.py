"""
Domain exceptions raised by services and converted to JSON at the API boundary.

Every error carries the HTTP status it maps to; the handlers in ``main``
render them as ``{"ok": false, "error": <message>}``.
"""

from fastapi import status


class PollError(Exception):
    """Base class for all request-level failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PollError):
    """Malformed phone, OTP, option or request body."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request."


class NotFoundError(ValidationError):
    """A referenced record does not exist. Reported as a client error."""

    default_message = "Not found."


class AuthorizationError(PollError):
    """Phone number is not on the allowlist."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Contact an organiser to add your number to the poll."


class NotAuthenticatedError(PollError):
    """Missing, invalid or expired session token."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "OTP verification required."


class RateLimitError(PollError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Try later."


class DeliveryError(PollError):
    """The SMS provider is unavailable, misconfigured or rejected the message."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to send OTP (SMS error)."


# OTP verification outcomes


class OtpNotRequestedError(NotFoundError):
    default_message = "OTP not requested."


class OtpExpiredError(ValidationError):
    default_message = "OTP expired. Please resend."


class IncorrectCodeError(ValidationError):
    default_message = "Incorrect OTP."


class TooManyAttemptsError(RateLimitError):
    default_message = "Too many attempts. Please resend OTP."
