"""
Phone verification endpoints.

Flow: the client posts name + phone, receives a 6-digit code by SMS (or
uses the operator's fixed code), then exchanges phone + code for a
session token used on vote requests.
"""

import structlog
from fastapi import APIRouter, Depends

from api.deps import get_context, get_otp_service, get_vote_service
from core.context import PollContext
from core.exceptions import AuthorizationError, DeliveryError, ValidationError
from core.security import hash_phone
from schemas.auth import SendOtpRequest, SendOtpResponse, VerifyOtpRequest, VerifyOtpResponse
from services.otp_service import OtpService
from services.sms_service import format_otp_message
from services.vote_service import VoteService

logger = structlog.get_logger(__name__)

router = APIRouter()

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100


@router.post("/send-otp", response_model=SendOtpResponse, response_model_exclude_none=True)
async def send_otp(
    body: SendOtpRequest,
    context: PollContext = Depends(get_context),
    otp_service: OtpService = Depends(get_otp_service),
) -> SendOtpResponse:
    """
    Issue a one-time code to an allowlisted phone.

    The ledger row is committed before the SMS goes out, so a delivery
    failure leaves a recorded code that the user can simply re-request.
    """
    name = (body.name or "").strip()
    if len(name) < NAME_MIN_LENGTH:
        raise ValidationError("Name is required.")
    name = name[:NAME_MAX_LENGTH]

    phone = context.normalize_phone(body.phone)
    if not phone:
        raise ValidationError("Invalid phone number.")

    if not context.allowlist.is_authorized(phone):
        # The ledger checks again; this keeps 403 ahead of the delivery check
        raise AuthorizationError()

    sms = context.sms
    if sms is None and not context.fixed_otp.applies_to(phone):
        raise DeliveryError("SMS delivery is not configured on the server.")

    issued = await otp_service.request_code(phone, name)
    if issued.fixed:
        return SendOtpResponse(ok=True, fixed_otp=True)
    if sms is None:
        raise DeliveryError("SMS delivery is not configured on the server.")

    message = format_otp_message(
        issued.code,
        sender_name=context.settings.SMS_SENDER_NAME,
        expiry_minutes=context.settings.OTP_EXPIRY_MINUTES,
    )
    await sms.send(phone, message)
    return SendOtpResponse(ok=True)


@router.post("/verify-otp", response_model=VerifyOtpResponse)
async def verify_otp(
    body: VerifyOtpRequest,
    context: PollContext = Depends(get_context),
    otp_service: OtpService = Depends(get_otp_service),
    vote_service: VoteService = Depends(get_vote_service),
) -> VerifyOtpResponse:
    """Exchange phone + code for a 30-day session token."""
    phone = context.normalize_phone(body.phone)
    if not phone:
        raise ValidationError("Invalid phone number.")

    code = (body.otp or "").strip()
    name = await otp_service.verify_code(phone, code)

    if name:
        await vote_service.record_user(hash_phone(phone), name)

    token = context.tokens.issue(phone)
    return VerifyOtpResponse(ok=True, token=token, name=name)
