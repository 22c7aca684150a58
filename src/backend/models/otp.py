"""
OTP ledger model.

One row per phone with an outstanding code. Timestamps are epoch
milliseconds so comparisons do not depend on driver timezone handling.
"""

from typing import Optional

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class OtpRecord(Base):
    """
    Outstanding one-time code for a phone.

    Only the salted SHA-256 of the code is stored. The send window fields
    back the per-phone rate limit; the row is deleted once the code is used.
    """

    __tablename__ = "otp_records"

    phone: Mapped[str] = mapped_column(String(16), primary_key=True)

    # Rolling send window
    send_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    window_started_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Outstanding code
    sent_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    salt: Mapped[str] = mapped_column(String(32), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Display name captured with the request, copied to users on success
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<OtpRecord(phone={self.phone[:6]}***, attempts={self.attempts})>"
