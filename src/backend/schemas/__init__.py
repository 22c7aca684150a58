"""Schemas module initialization."""

from schemas.auth import ErrorResponse, SendOtpRequest, SendOtpResponse, VerifyOtpRequest, VerifyOtpResponse
from schemas.vote import ResultsResponse, TallyResponse, VoteCreate, VoteResponse, VotersResponse

__all__ = [
    "SendOtpRequest",
    "SendOtpResponse",
    "VerifyOtpRequest",
    "VerifyOtpResponse",
    "ErrorResponse",
    "VoteCreate",
    "VoteResponse",
    "TallyResponse",
    "ResultsResponse",
    "VotersResponse",
]
