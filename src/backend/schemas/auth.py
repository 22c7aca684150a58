"""
Authentication-related Pydantic schemas.

Request fields are loosely typed on purpose: the handlers validate and
report malformed input with the poll's own error messages.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes snake_case fields as camelCase, accepts either on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendOtpRequest(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None


class SendOtpResponse(CamelModel):
    ok: bool = True
    fixed_otp: Optional[bool] = None


class VerifyOtpRequest(CamelModel):
    phone: Optional[str] = None
    otp: Optional[str] = None


class VerifyOtpResponse(CamelModel):
    """Session token issued after a code is verified."""

    ok: bool = True
    token: str
    name: Optional[str] = None


class ErrorResponse(CamelModel):
    ok: bool = False
    error: str
