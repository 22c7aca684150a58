"""
Runtime context shared by request handlers.

Everything that used to be process-wide state (allowlist, signing secret,
fixed-OTP phones, SMS client, database engine) is built once at startup
into a ``PollContext`` and handed to handlers through a dependency.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.config import Settings
from core.phone import normalize_phone
from core.security import SessionTokenCodec
from services.allowlist import AllowlistGate, FixedOtpPolicy
from services.keyed_lock import KeyedLock
from services.otp_service import OtpLimits, OtpService
from services.sms_service import SmsSender
from services.vote_service import VoteService


@dataclass
class PollContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    allowlist: AllowlistGate
    fixed_otp: FixedOtpPolicy
    tokens: SessionTokenCodec
    otp_limits: OtpLimits = field(default_factory=OtpLimits)
    locks: KeyedLock = field(default_factory=KeyedLock)
    sms: Optional[SmsSender] = None

    def normalize_phone(self, raw: object) -> Optional[str]:
        return normalize_phone(raw, self.settings.DEFAULT_COUNTRY_CODE)

    def otp_service(self, db: AsyncSession) -> OtpService:
        return OtpService(
            db,
            allowlist=self.allowlist,
            fixed_otp=self.fixed_otp,
            locks=self.locks,
            limits=self.otp_limits,
        )

    def vote_service(self, db: AsyncSession) -> VoteService:
        return VoteService(db, self.locks)
