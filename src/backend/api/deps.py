"""
Shared dependencies for API endpoints.

Includes:
- Runtime context and database session per request
- Session-token authentication for voters
"""

from typing import AsyncGenerator, Optional

import structlog
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.context import PollContext
from core.exceptions import AuthorizationError, NotAuthenticatedError
from core.security import SessionClaims
from services.otp_service import OtpService
from services.vote_service import VoteService

logger = structlog.get_logger(__name__)


def get_context(request: Request) -> PollContext:
    context: Optional[PollContext] = getattr(request.app.state, "context", None)
    if context is None:
        raise RuntimeError("Application context is not initialized")
    return context


async def get_db(context: PollContext = Depends(get_context)) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session; services commit their own units of work."""
    async with context.session_factory() as session:
        yield session


def get_otp_service(
    context: PollContext = Depends(get_context),
    db: AsyncSession = Depends(get_db),
) -> OtpService:
    return context.otp_service(db)


def get_vote_service(
    context: PollContext = Depends(get_context),
    db: AsyncSession = Depends(get_db),
) -> VoteService:
    return context.vote_service(db)


def get_optional_claims(
    x_phone_token: Optional[str] = Header(default=None),
    context: PollContext = Depends(get_context),
) -> Optional[SessionClaims]:
    """Claims of the ``X-Phone-Token`` header, or None if absent or invalid."""
    if not x_phone_token:
        return None
    return context.tokens.verify(x_phone_token)


def require_voter(context: PollContext, token: object) -> SessionClaims:
    """
    Resolve a session token that must belong to a currently allowlisted phone.

    Raises:
        NotAuthenticatedError: token missing, malformed, tampered or expired.
        AuthorizationError: phone was removed from the allowlist.
    """
    claims = context.tokens.verify(token)
    if claims is None:
        raise NotAuthenticatedError()
    if not context.allowlist.is_authorized(claims.phone):
        logger.warning("voter_no_longer_allowed")
        raise AuthorizationError()
    return claims
