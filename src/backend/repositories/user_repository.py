"""
User repository for database operations.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from models.user import User


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, voter_key: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.voter_key == voter_key).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_name(self, voter_key: str) -> Optional[str]:
        """Get the display name stored for a voter, if any."""
        result = await self.db.execute(select(User.name).where(User.voter_key == voter_key))
        return result.scalar_one_or_none()

    async def upsert(self, voter_key: str, name: Optional[str]) -> None:
        """Create or refresh a verified user; the latest name wins."""
        now = datetime.now(timezone.utc)
        stmt = sqlite_insert(User).values(voter_key=voter_key, name=name, verified_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[User.voter_key],
            set_={"name": name, "verified_at": now},
        )
        await self.db.execute(stmt)
