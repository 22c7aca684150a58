"""Database models module."""

from models.otp import OtpRecord
from models.user import User
from models.vote import (
    DATE_OPTIONS,
    POLL_OPTIONS,
    VENUE_OPTIONS,
    DateVote,
    LegacyCount,
    PollKind,
    VenueVote,
)

__all__ = [
    "User",
    "OtpRecord",
    "DateVote",
    "VenueVote",
    "LegacyCount",
    "PollKind",
    "POLL_OPTIONS",
    "VENUE_OPTIONS",
    "DATE_OPTIONS",
]
