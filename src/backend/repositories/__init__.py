"""Repository modules for database access."""

from repositories.otp_repository import OtpRepository
from repositories.user_repository import UserRepository
from repositories.vote_repository import VoteRepository

__all__ = [
    "OtpRepository",
    "VoteRepository",
    "UserRepository",
]
