"""
OTP ledger: issuance and verification of one-time codes per phone.

State per phone::

    NoRecord -> Pending -> (verified | expired | Exhausted) -> NoRecord

A row exists only while a code is outstanding. Verification deletes it,
so a code can be used once. Expiry is checked lazily when a code is
submitted; nothing sweeps old rows.
"""

import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.exceptions import (
    AuthorizationError,
    IncorrectCodeError,
    OtpExpiredError,
    OtpNotRequestedError,
    RateLimitError,
    TooManyAttemptsError,
    ValidationError,
)
from core.phone import mask_phone
from core.security import generate_otp_code, generate_otp_salt, hash_otp, otp_matches
from models.otp import OtpRecord
from repositories.otp_repository import OtpRepository
from services.allowlist import AllowlistGate, FixedOtpPolicy
from services.keyed_lock import KeyedLock

logger = structlog.get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class OtpLimits:
    """Tunable limits of the OTP flow."""

    code_length: int = 6
    expiry_ms: int = 5 * 60_000
    max_attempts: int = 5
    max_sends_per_window: int = 3
    window_ms: int = 60 * 60_000

    @classmethod
    def from_settings(cls, settings: Settings) -> "OtpLimits":
        return cls(
            code_length=settings.OTP_LENGTH,
            expiry_ms=settings.OTP_EXPIRY_MINUTES * 60_000,
            max_attempts=settings.OTP_MAX_ATTEMPTS,
            max_sends_per_window=settings.OTP_MAX_SENDS_PER_WINDOW,
            window_ms=settings.OTP_SEND_WINDOW_MINUTES * 60_000,
        )


# =============================================================================
# Ledger states
# =============================================================================


@dataclass(frozen=True)
class SendWindow:
    """Sends counted since ``started_ms``; restarts once the window has elapsed."""

    count: int
    started_ms: int


@dataclass(frozen=True)
class NoRecord:
    """No outstanding code for the phone."""


@dataclass(frozen=True)
class Pending:
    """A code is outstanding and may still be submitted."""

    window: SendWindow
    sent_at_ms: int
    expires_at_ms: int
    code_hash: str
    salt: str
    attempts: int
    name: Optional[str]


@dataclass(frozen=True)
class Exhausted:
    """The attempt ceiling is reached; only a resend can unlock the phone."""

    window: SendWindow
    expires_at_ms: int
    attempts: int


OtpState = Union[NoRecord, Pending, Exhausted]


def state_from_record(record: Optional[OtpRecord], max_attempts: int) -> OtpState:
    if record is None:
        return NoRecord()
    window = SendWindow(count=record.send_count, started_ms=record.window_started_ms)
    if record.attempts >= max_attempts:
        return Exhausted(window=window, expires_at_ms=record.expires_at_ms, attempts=record.attempts)
    return Pending(
        window=window,
        sent_at_ms=record.sent_at_ms,
        expires_at_ms=record.expires_at_ms,
        code_hash=record.code_hash,
        salt=record.salt,
        attempts=record.attempts,
        name=record.name,
    )


@dataclass(frozen=True)
class IssuedCode:
    """
    Result of a successful code request.

    ``code`` is handed to the delivery step and must never be persisted or
    logged. ``fixed`` means the operator bypass applied and no SMS goes out.
    """

    code: str
    fixed: bool
    expires_at_ms: int


# =============================================================================
# Service
# =============================================================================


class OtpService:
    """
    Issues and verifies one-time codes.

    Every ledger mutation for a phone runs under that phone's lock and is
    committed before the lock is released, so concurrent requests cannot
    lose an attempt increment or a send count.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        allowlist: AllowlistGate,
        fixed_otp: FixedOtpPolicy,
        locks: KeyedLock,
        limits: OtpLimits = OtpLimits(),
        clock: Callable[[], int] = now_ms,
    ):
        self.db = db
        self.repo = OtpRepository(db)
        self.allowlist = allowlist
        self.fixed_otp = fixed_otp
        self.locks = locks
        self.limits = limits
        self.clock = clock
        self._code_re = re.compile(rf"[0-9]{{{limits.code_length}}}")

    @staticmethod
    def _lock_key(phone: str) -> str:
        return f"otp:{phone}"

    async def get_state(self, phone: str) -> OtpState:
        return state_from_record(await self.repo.get(phone), self.limits.max_attempts)

    def _current_window(self, state: OtpState, now: int) -> SendWindow:
        if isinstance(state, NoRecord):
            return SendWindow(count=0, started_ms=now)
        if now - state.window.started_ms > self.limits.window_ms:
            return SendWindow(count=0, started_ms=now)
        return state.window

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def request_code(self, phone: str, name: Optional[str]) -> IssuedCode:
        """
        Start (or restart) verification for an allowlisted phone.

        Raises:
            AuthorizationError: phone is not allowlisted.
            RateLimitError: the send limit for the current window is used up.
        """
        if not self.allowlist.is_authorized(phone):
            raise AuthorizationError()

        async with self.locks.hold(self._lock_key(phone)):
            now = self.clock()
            state = await self.get_state(phone)
            window = self._current_window(state, now)

            if window.count >= self.limits.max_sends_per_window:
                logger.warning("otp_rate_limited", phone=mask_phone(phone), sends=window.count)
                raise RateLimitError("Too many OTP requests. Try later.")

            fixed = self.fixed_otp.applies_to(phone)
            code = self.fixed_otp.code if fixed else generate_otp_code(self.limits.code_length)
            salt = generate_otp_salt()
            pending = Pending(
                window=SendWindow(count=window.count + 1, started_ms=window.started_ms),
                sent_at_ms=now,
                expires_at_ms=now + self.limits.expiry_ms,
                code_hash=hash_otp(salt, code),
                salt=salt,
                attempts=0,
                name=name,
            )

            await self.repo.upsert(
                phone,
                send_count=pending.window.count,
                window_started_ms=pending.window.started_ms,
                sent_at_ms=pending.sent_at_ms,
                expires_at_ms=pending.expires_at_ms,
                code_hash=pending.code_hash,
                salt=pending.salt,
                attempts=pending.attempts,
                name=pending.name,
            )
            await self._commit()

        logger.info(
            "otp_issued",
            phone=mask_phone(phone),
            fixed=fixed,
            sends_in_window=pending.window.count,
        )
        return IssuedCode(code=code, fixed=fixed, expires_at_ms=pending.expires_at_ms)

    async def verify_code(self, phone: str, code: object) -> Optional[str]:
        """
        Check a submitted code and consume it on success.

        Every call on an outstanding code counts as an attempt. The ceiling
        is enforced before the code is compared, so a correct code submitted
        after too many attempts is still refused.

        Returns:
            The display name captured when the code was requested.
        """
        if not self.allowlist.is_authorized(phone):
            raise AuthorizationError()
        if not isinstance(code, str) or not self._code_re.fullmatch(code):
            raise ValidationError("Invalid OTP.")

        async with self.locks.hold(self._lock_key(phone)):
            now = self.clock()
            state = await self.get_state(phone)

            if isinstance(state, NoRecord):
                raise OtpNotRequestedError()
            if now > state.expires_at_ms:
                raise OtpExpiredError()

            attempts = state.attempts + 1
            if isinstance(state, Exhausted) or attempts > self.limits.max_attempts:
                await self.repo.set_attempts(phone, attempts)
                await self._commit()
                logger.warning("otp_attempts_exhausted", phone=mask_phone(phone), attempts=attempts)
                raise TooManyAttemptsError()

            if not otp_matches(state.salt, code, state.code_hash):
                await self.repo.set_attempts(phone, attempts)
                await self._commit()
                logger.info("otp_incorrect", phone=mask_phone(phone), attempts=attempts)
                raise IncorrectCodeError()

            await self.repo.delete(phone)
            await self._commit()

        logger.info("otp_verified", phone=mask_phone(phone))
        return state.name
