"""
Vote models for SQLite storage.

Votes are keyed by the voter key (SHA-256 of the verified phone). The phone
number itself is NEVER stored with a vote.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class PollKind(str, Enum):
    """The two polls run by the service."""

    VENUE = "venue"  # Multi-select
    DATE = "date"  # Single-select


VENUE_OPTIONS = frozenset({"kadavu", "vythiri", "bolgatty"})
DATE_OPTIONS = frozenset({"july18_19", "aug8_9", "other"})
OTHER_DATE_OPTION = "other"
OTHER_TEXT_MAX_LENGTH = 40

POLL_OPTIONS: dict[PollKind, frozenset[str]] = {
    PollKind.VENUE: VENUE_OPTIONS,
    PollKind.DATE: DATE_OPTIONS,
}


class DateVote(Base):
    """
    Single-select date vote: at most one row per voter.

    Re-voting overwrites the row, so a voter who changes their mind is
    never counted twice.
    """

    __tablename__ = "date_votes"

    voter_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    option: Mapped[str] = mapped_column(String(32), index=True)
    other_text: Mapped[Optional[str]] = mapped_column(String(OTHER_TEXT_MAX_LENGTH), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class VenueVote(Base):
    """
    Multi-select venue vote: one row per selected option.

    Row presence means "selected"; the composite primary key rules out a
    duplicate (voter, option) pair.
    """

    __tablename__ = "venue_votes"

    voter_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    option: Mapped[str] = mapped_column(String(32), primary_key=True, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class LegacyCount(Base):
    """Pre-migration aggregate totals with no per-voter attribution."""

    __tablename__ = "legacy_counts"

    kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    option: Mapped[str] = mapped_column(String(32), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (CheckConstraint("kind IN ('venue', 'date')", name="ck_legacy_counts_kind"),)

    def __repr__(self) -> str:
        return f"<LegacyCount(kind={self.kind}, option={self.option}, count={self.count})>"
