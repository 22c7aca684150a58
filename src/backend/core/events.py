"""
Application lifecycle event handlers.

Builds the runtime context (storage, secrets, allowlist, SMS provider) on
startup and releases it on shutdown.
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Callable, Optional

import structlog
from fastapi import FastAPI

from core.config import Settings
from core.context import PollContext
from core.security import SessionTokenCodec, load_or_create_secret
from db.session import close_db, create_engine, create_session_factory, init_db
from services.allowlist import AllowlistGate, FixedOtpPolicy, load_phone_lines
from services.otp_service import OtpLimits
from services.sms_service import SmsSender, build_sms_sender

logger = structlog.get_logger(__name__)


def _restrict_permissions(paths: list[Optional[Path]]) -> None:
    """Make sensitive files owner-only. Failure is logged, not fatal."""
    for path in paths:
        if path is None or not path.exists():
            continue
        try:
            os.chmod(path, 0o600)
        except OSError as e:
            logger.warning("chmod_failed", path=str(path), error=str(e))


async def build_context(settings: Settings, sms_sender: Optional[SmsSender] = None) -> PollContext:
    """Load configuration from disk and open storage."""
    settings.data_path.mkdir(parents=True, exist_ok=True)

    secret = settings.SESSION_SECRET or load_or_create_secret(settings.secret_path)

    engine = create_engine(settings.database_url, echo=settings.DEBUG)
    await init_db(engine)

    _restrict_permissions(
        [settings.secret_path, settings.allowlist_path, settings.database_file]
    )

    allowlist = AllowlistGate.from_file(settings.allowlist_path, allow_all=settings.ALLOW_ALL_PHONES)
    if settings.ALLOW_ALL_PHONES:
        logger.warning("allowlist_disabled", detail="ALLOW_ALL_PHONES is on; every phone may vote")

    fixed_phones = load_phone_lines(settings.fixed_otp_phones_path)
    fixed_otp = FixedOtpPolicy(
        code=settings.FIXED_OTP_CODE,
        mode=settings.FIXED_OTP_MODE,
        phones=fixed_phones,
    )
    if fixed_otp.mode != "off":
        logger.info("fixed_otp_enabled", mode=fixed_otp.mode, listed=len(fixed_phones))

    return PollContext(
        settings=settings,
        engine=engine,
        session_factory=create_session_factory(engine),
        allowlist=allowlist,
        fixed_otp=fixed_otp,
        tokens=SessionTokenCodec(secret, ttl=timedelta(days=settings.SESSION_TOKEN_EXPIRE_DAYS)),
        otp_limits=OtpLimits.from_settings(settings),
        sms=sms_sender if sms_sender is not None else build_sms_sender(settings),
    )


async def dispose_context(context: PollContext) -> None:
    if context.sms is not None:
        await context.sms.close()
    await close_db(context.engine)


def create_start_app_handler(app: FastAPI, settings: Settings) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        logger.info("Starting poll API...", env=settings.APP_ENV)
        app.state.context = await build_context(settings, getattr(app.state, "sms_sender", None))
        logger.info("Poll API started successfully")

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("Shutting down poll API...")
        context: Optional[PollContext] = getattr(app.state, "context", None)
        if context is not None:
            await dispose_context(context)
            app.state.context = None
        logger.info("Poll API shutdown complete")

    return stop_app
