"""
OTP ledger repository.

Row-level access to ``otp_records``. Callers serialize access per phone and
own the transaction; nothing here commits.
"""

from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from models.otp import OtpRecord


class OtpRepository:
    """Repository for OTP ledger operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, phone: str) -> Optional[OtpRecord]:
        result = await self.db.execute(
            select(OtpRecord)
            .where(OtpRecord.phone == phone)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        phone: str,
        *,
        send_count: int,
        window_started_ms: int,
        sent_at_ms: int,
        expires_at_ms: int,
        code_hash: str,
        salt: str,
        attempts: int,
        name: Optional[str],
    ) -> None:
        """Insert or fully replace the ledger row for a phone."""
        values = {
            "send_count": send_count,
            "window_started_ms": window_started_ms,
            "sent_at_ms": sent_at_ms,
            "expires_at_ms": expires_at_ms,
            "code_hash": code_hash,
            "salt": salt,
            "attempts": attempts,
            "name": name,
        }
        stmt = sqlite_insert(OtpRecord).values(phone=phone, **values)
        stmt = stmt.on_conflict_do_update(index_elements=[OtpRecord.phone], set_=values)
        await self.db.execute(stmt)

    async def set_attempts(self, phone: str, attempts: int) -> None:
        await self.db.execute(
            update(OtpRecord).where(OtpRecord.phone == phone).values(attempts=attempts)
        )

    async def delete(self, phone: str) -> bool:
        """Delete the ledger row. Returns True if a row was removed."""
        result = await self.db.execute(delete(OtpRecord).where(OtpRecord.phone == phone))
        return (getattr(result, "rowcount", 0) or 0) > 0
