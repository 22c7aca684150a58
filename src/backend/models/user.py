"""
User model for SQLite storage.

Holds the display name captured at OTP request time, keyed by voter key.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class User(Base):
    """
    Verified voter.

    Privacy Design:
    - voter_key is a one-way hash of the phone; the phone is never stored here
    - name is shown on the public voter lists
    """

    __tablename__ = "users"

    voter_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    verified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<User(voter_key={self.voter_key[:8]}..., name={self.name})>"
