"""
Vote repository for database operations.

Implements privacy-preserving vote storage: rows are keyed by voter key,
never by phone number.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from models.user import User
from models.vote import DateVote, LegacyCount, PollKind, VenueVote

UNKNOWN_VOTER_NAME = "(unknown)"


class VoteRepository:
    """Repository for vote database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Date poll (single-select)
    # ------------------------------------------------------------------

    async def get_date_vote(self, voter_key: str) -> Optional[DateVote]:
        result = await self.db.execute(
            select(DateVote)
            .where(DateVote.voter_key == voter_key)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert_date_vote(self, voter_key: str, option: str, other_text: Optional[str]) -> None:
        """Record the voter's date choice, replacing any previous one."""
        now = datetime.now(timezone.utc)
        stmt = sqlite_insert(DateVote).values(
            voter_key=voter_key,
            option=option,
            other_text=other_text,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DateVote.voter_key],
            set_={"option": option, "other_text": other_text, "updated_at": now},
        )
        await self.db.execute(stmt)

    # ------------------------------------------------------------------
    # Venue poll (multi-select)
    # ------------------------------------------------------------------

    async def venue_vote_exists(self, voter_key: str, option: str) -> bool:
        result = await self.db.execute(
            select(func.count())
            .select_from(VenueVote)
            .where(VenueVote.voter_key == voter_key, VenueVote.option == option)
        )
        return (result.scalar() or 0) > 0

    async def add_venue_vote(self, voter_key: str, option: str) -> None:
        stmt = sqlite_insert(VenueVote).values(
            voter_key=voter_key,
            option=option,
            updated_at=datetime.now(timezone.utc),
        )
        await self.db.execute(stmt.on_conflict_do_nothing())

    async def delete_venue_vote(self, voter_key: str, option: str) -> bool:
        result = await self.db.execute(
            delete(VenueVote).where(VenueVote.voter_key == voter_key, VenueVote.option == option)
        )
        return (getattr(result, "rowcount", 0) or 0) > 0

    async def get_venue_options(self, voter_key: str) -> list[str]:
        """Options the voter currently has selected, alphabetically."""
        result = await self.db.execute(
            select(VenueVote.option).where(VenueVote.voter_key == voter_key).order_by(VenueVote.option)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Tallies
    # ------------------------------------------------------------------

    async def count_live(self, kind: PollKind) -> dict[str, int]:
        """Per-option count of attributed votes."""
        model = VenueVote if kind == PollKind.VENUE else DateVote
        result = await self.db.execute(
            select(model.option, func.count().label("total")).group_by(model.option)
        )
        return {str(option): int(total) for option, total in result.all()}

    async def get_legacy_counts(self, kind: PollKind) -> dict[str, int]:
        result = await self.db.execute(
            select(LegacyCount.option, LegacyCount.count).where(LegacyCount.kind == kind.value)
        )
        return {str(option): int(total) for option, total in result.all()}

    async def set_legacy_counts(self, kind: PollKind, counts: dict[str, int]) -> None:
        """Overwrite legacy totals for the given options. Used by the offline migration only."""
        for option, count in counts.items():
            stmt = sqlite_insert(LegacyCount).values(kind=kind.value, option=option, count=count)
            stmt = stmt.on_conflict_do_update(
                index_elements=[LegacyCount.kind, LegacyCount.option],
                set_={"count": count},
            )
            await self.db.execute(stmt)

    # ------------------------------------------------------------------
    # Public voter lists
    # ------------------------------------------------------------------

    async def voter_names(self, kind: PollKind, option: str) -> list[str]:
        """
        Display names of live voters for an option.

        Voters without a stored name show as "(unknown)". Legacy counts
        have no names and are not represented.
        """
        model = VenueVote if kind == PollKind.VENUE else DateVote
        name = func.coalesce(User.name, UNKNOWN_VOTER_NAME).label("name")
        result = await self.db.execute(
            select(name)
            .select_from(model)
            .outerjoin(User, User.voter_key == model.voter_key)
            .where(model.option == option)
            .order_by(func.lower(name), name)
        )
        return list(result.scalars().all())
