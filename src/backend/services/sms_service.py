"""
SMS delivery for one-time codes.

The OTP flow only needs "send this text to this number"; providers sit
behind ``SmsSender``. Twilio's Messages REST API is called directly with
httpx so every request is bounded by a timeout.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

from core.config import Settings
from core.exceptions import DeliveryError
from core.phone import mask_phone

logger = structlog.get_logger(__name__)


def format_otp_message(code: str, sender_name: str, expiry_minutes: int) -> str:
    return f"{sender_name} OTP: {code}. Valid for {expiry_minutes} minutes."


class SmsSender(ABC):
    """Abstract SMS provider."""

    @abstractmethod
    async def send(self, to_phone: str, body: str) -> str:
        """
        Deliver ``body`` to ``to_phone``.

        Returns the provider's message id. Raises DeliveryError on any
        failure, including timeouts.
        """

    async def close(self) -> None:
        """Release provider resources."""


class TwilioSmsSender(SmsSender):
    """
    Twilio Programmable Messaging sender.

    Sends from a phone number or, when configured, a messaging service.
    """

    API_BASE = "https://api.twilio.com/2010-04-01"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: Optional[str] = None,
        messaging_service_sid: Optional[str] = None,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not (from_number or messaging_service_sid):
            raise ValueError("Twilio sender needs a from number or a messaging service SID")
        self.account_sid = account_sid
        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid
        self._client = client or httpx.AsyncClient(
            auth=(account_sid, auth_token),
            timeout=httpx.Timeout(timeout_seconds),
        )

    @property
    def messages_url(self) -> str:
        return f"{self.API_BASE}/Accounts/{self.account_sid}/Messages.json"

    async def send(self, to_phone: str, body: str) -> str:
        data = {"To": to_phone, "Body": body}
        if self.messaging_service_sid:
            data["MessagingServiceSid"] = self.messaging_service_sid
        else:
            data["From"] = self.from_number or ""

        logger.info("sms_sending", to=mask_phone(to_phone), provider="twilio")
        try:
            response = await self._client.post(self.messages_url, data=data)
        except httpx.TimeoutException:
            logger.error("sms_delivery_timeout", to=mask_phone(to_phone))
            raise DeliveryError("Failed to send OTP (SMS timed out).")
        except httpx.HTTPError as e:
            logger.error("sms_delivery_failed", to=mask_phone(to_phone), error=str(e))
            raise DeliveryError()

        if response.status_code not in (200, 201):
            logger.error(
                "sms_delivery_rejected",
                to=mask_phone(to_phone),
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise DeliveryError()

        try:
            sid = str(response.json().get("sid", ""))
        except ValueError:
            sid = ""
        logger.info("sms_sent", to=mask_phone(to_phone), sid=sid)
        return sid

    async def close(self) -> None:
        await self._client.aclose()


def build_sms_sender(settings: Settings) -> Optional[SmsSender]:
    """Create the configured sender, or None when SMS is not set up."""
    account_sid = settings.TWILIO_ACCOUNT_SID
    auth_token = settings.TWILIO_AUTH_TOKEN
    if not (settings.sms_configured and account_sid and auth_token):
        logger.warning("sms_not_configured", detail="OTP delivery disabled except for fixed codes")
        return None

    return TwilioSmsSender(
        account_sid=account_sid,
        auth_token=auth_token,
        from_number=settings.TWILIO_PHONE_NUMBER,
        messaging_service_sid=settings.TWILIO_MESSAGING_SERVICE_SID,
        timeout_seconds=settings.SMS_TIMEOUT_SECONDS,
    )
