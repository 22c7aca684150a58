"""
Import pre-migration poll data into the vote store.

The old deployment kept everything in ``data/votes.json``::

    {
      "votes": {"kadavu": 12, ...},          # venue totals
      "dateVotes": {"aug8_9": 7, ...},       # date totals
      "votedPhones": {                       # per-voter picks, keyed by voter key
        "<sha256>": {"venue": {"option": "kadavu"},
                     "date": {"option": "other", "otherText": "Sept"}}
      }
    }

Per-voter picks become live rows. Whatever part of each total cannot be
attributed to a voter is stored as a legacy count, so merged tallies after
the migration equal the old totals. Re-running with the same file is a
no-op.

Usage:
    python scripts/migrate_legacy_votes.py [path/to/votes.json]
"""

import asyncio
import json
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

if __name__ == "__main__":
    import _common  # noqa: F401

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.session import close_db, create_engine, create_session_factory, init_db
from models.vote import POLL_OPTIONS, PollKind
from repositories.vote_repository import VoteRepository
from services.vote_service import clean_other_text

VOTER_KEY_RE = re.compile(r"^[0-9a-f]{64}$")


@dataclass
class MigrationSummary:
    venue_rows: int = 0
    date_rows: int = 0
    skipped_voters: int = 0


def _counts(raw: Any) -> dict[str, int]:
    if not isinstance(raw, dict):
        return {}
    counts: dict[str, int] = {}
    for option, value in raw.items():
        try:
            counts[str(option)] = max(0, int(value))
        except (TypeError, ValueError):
            counts[str(option)] = 0
    return counts


def _option(record: Any, kind: PollKind) -> Optional[str]:
    if not isinstance(record, dict):
        return None
    option = record.get("option")
    if isinstance(option, str) and option in POLL_OPTIONS[kind]:
        return option
    return None


def unattributed(totals: dict[str, int], attributed: dict[str, int]) -> dict[str, int]:
    """Totals minus attributed votes per option, never below zero."""
    return {option: max(0, total - attributed.get(option, 0)) for option, total in totals.items()}


async def migrate_document(db: AsyncSession, doc: dict[str, Any]) -> MigrationSummary:
    """Write per-voter rows and legacy counts from a votes.json document."""
    repo = VoteRepository(db)
    summary = MigrationSummary()
    attributed: dict[PollKind, dict[str, int]] = {PollKind.VENUE: {}, PollKind.DATE: {}}

    voted = doc.get("votedPhones")
    if not isinstance(voted, dict):
        voted = {}
    for voter_key, picks in voted.items():
        if not VOTER_KEY_RE.match(str(voter_key)) or not isinstance(picks, dict):
            summary.skipped_voters += 1
            continue

        venue = _option(picks.get("venue"), PollKind.VENUE)
        if venue:
            await repo.add_venue_vote(voter_key, venue)
            attributed[PollKind.VENUE][venue] = attributed[PollKind.VENUE].get(venue, 0) + 1
            summary.venue_rows += 1

        date_pick = picks.get("date")
        date = _option(date_pick, PollKind.DATE)
        if date:
            await repo.upsert_date_vote(voter_key, date, clean_other_text(date, date_pick.get("otherText")))
            attributed[PollKind.DATE][date] = attributed[PollKind.DATE].get(date, 0) + 1
            summary.date_rows += 1

    await repo.set_legacy_counts(
        PollKind.VENUE, unattributed(_counts(doc.get("votes")), attributed[PollKind.VENUE])
    )
    await repo.set_legacy_counts(
        PollKind.DATE, unattributed(_counts(doc.get("dateVotes")), attributed[PollKind.DATE])
    )
    await db.commit()
    return summary


async def main(votes_path: Path) -> None:
    if not votes_path.exists():
        print(f"No {votes_path} found; nothing to migrate.")
        return

    doc = json.loads(votes_path.read_text(encoding="utf-8"))
    settings = get_settings()
    settings.data_path.mkdir(parents=True, exist_ok=True)
    engine = create_engine(settings.database_url)
    try:
        await init_db(engine)
        async with create_session_factory(engine)() as db:
            summary = await migrate_document(db, doc)
    finally:
        await close_db(engine)

    print(
        f"Migrated legacy counts + {summary.venue_rows} venue and {summary.date_rows} date "
        f"row(s) into {settings.database_url} ({summary.skipped_voters} voter(s) skipped)"
    )


if __name__ == "__main__":
    default_path = get_settings().data_path / "votes.json"
    asyncio.run(main(Path(sys.argv[1]) if len(sys.argv) > 1 else default_path))
