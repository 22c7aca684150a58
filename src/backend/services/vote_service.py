"""
Vote store: per-voter records and merged tallies for the two polls.

Tallies shown to clients are always legacy (pre-migration, unattributed)
counts plus live per-voter counts. Legacy rows are never touched here.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ValidationError
from models.vote import OTHER_DATE_OPTION, OTHER_TEXT_MAX_LENGTH, POLL_OPTIONS, PollKind
from repositories.user_repository import UserRepository
from repositories.vote_repository import VoteRepository
from services.keyed_lock import KeyedLock

logger = structlog.get_logger(__name__)


def merge_counts(legacy: dict[str, int], live: dict[str, int]) -> dict[str, int]:
    """Pointwise sum; an option missing on one side counts as zero there."""
    merged = dict(legacy)
    for option, count in live.items():
        merged[option] = merged.get(option, 0) + count
    return merged


def parse_kind(raw: object) -> PollKind:
    """Anything other than "date" addresses the venue poll."""
    return PollKind.DATE if raw == PollKind.DATE.value else PollKind.VENUE


def validate_option(kind: PollKind, option: object) -> str:
    if not isinstance(option, str) or option not in POLL_OPTIONS[kind]:
        raise ValidationError(f"Invalid {kind.value} option")
    return option


def clean_other_text(option: str, other_text: object) -> Optional[str]:
    """Free text is kept only for the "other" date option, trimmed and capped."""
    if option != OTHER_DATE_OPTION or not isinstance(other_text, str):
        return None
    return other_text.strip()[:OTHER_TEXT_MAX_LENGTH]


@dataclass(frozen=True)
class Tallies:
    """Merged counts for both polls."""

    venue: dict[str, int]
    date: dict[str, int]


@dataclass(frozen=True)
class VoterSelections:
    """What a single voter currently has selected."""

    name: Optional[str]
    venues: list[str]
    date: Optional[str]


class VoteService:
    """
    Records votes and computes tallies.

    Writes for one voter are serialized through the voter's lock and
    committed inside it, so a double-click cannot toggle a venue twice into
    an inconsistent state.
    """

    def __init__(self, db: AsyncSession, locks: KeyedLock):
        self.db = db
        self.locks = locks
        self.votes = VoteRepository(db)
        self.users = UserRepository(db)

    @staticmethod
    def _lock_key(voter_key: str) -> str:
        return f"voter:{voter_key}"

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def record_user(self, voter_key: str, name: Optional[str]) -> None:
        """Store the display name of a freshly verified voter."""
        async with self.locks.hold(self._lock_key(voter_key)):
            await self.users.upsert(voter_key, name)
            await self._commit()

    async def record_date_vote(
        self,
        voter_key: str,
        option: object,
        other_text: object = None,
    ) -> str:
        """Set the voter's single date choice, replacing any earlier one."""
        chosen = validate_option(PollKind.DATE, option)
        async with self.locks.hold(self._lock_key(voter_key)):
            await self.votes.upsert_date_vote(voter_key, chosen, clean_other_text(chosen, other_text))
            await self._commit()
        logger.info("date_vote_recorded", voter=voter_key[:8], option=chosen)
        return chosen

    async def toggle_venue_vote(self, voter_key: str, option: object) -> bool:
        """
        Flip the voter's selection of one venue.

        Returns:
            True if the venue is now selected, False if it was unselected.
        """
        chosen = validate_option(PollKind.VENUE, option)
        async with self.locks.hold(self._lock_key(voter_key)):
            if await self.votes.venue_vote_exists(voter_key, chosen):
                await self.votes.delete_venue_vote(voter_key, chosen)
                selected = False
            else:
                await self.votes.add_venue_vote(voter_key, chosen)
                selected = True
            await self._commit()
        logger.info("venue_vote_toggled", voter=voter_key[:8], option=chosen, selected=selected)
        return selected

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def live_counts(self, kind: PollKind) -> dict[str, int]:
        return await self.votes.count_live(kind)

    async def legacy_counts(self, kind: PollKind) -> dict[str, int]:
        return await self.votes.get_legacy_counts(kind)

    async def merged_counts(self, kind: PollKind) -> dict[str, int]:
        return merge_counts(await self.legacy_counts(kind), await self.live_counts(kind))

    async def tallies(self) -> Tallies:
        return Tallies(
            venue=await self.merged_counts(PollKind.VENUE),
            date=await self.merged_counts(PollKind.DATE),
        )

    async def voters_for_option(self, kind: PollKind, option: object) -> list[str]:
        """Public name list for an option; no phones or voter keys."""
        chosen = validate_option(kind, option)
        return await self.votes.voter_names(kind, chosen)

    async def venue_selections(self, voter_key: str) -> list[str]:
        return await self.votes.get_venue_options(voter_key)

    async def date_selection(self, voter_key: str) -> Optional[str]:
        vote = await self.votes.get_date_vote(voter_key)
        return vote.option if vote else None

    async def selections_for(self, voter_key: str) -> VoterSelections:
        return VoterSelections(
            name=await self.users.get_name(voter_key),
            venues=await self.venue_selections(voter_key),
            date=await self.date_selection(voter_key),
        )
