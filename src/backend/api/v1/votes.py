"""
Poll endpoints: tallies, voting and public voter lists.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query

from api.deps import get_context, get_optional_claims, get_vote_service, require_voter
from core.context import PollContext
from core.security import SessionClaims, hash_phone
from models.vote import PollKind
from schemas.vote import ResultsResponse, VoteCreate, VoteResponse, VotersResponse
from services.vote_service import VoteService, parse_kind, validate_option

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/results", response_model=ResultsResponse)
async def get_results(
    context: PollContext = Depends(get_context),
    claims: Optional[SessionClaims] = Depends(get_optional_claims),
    vote_service: VoteService = Depends(get_vote_service),
) -> ResultsResponse:
    """
    Current merged tallies for both polls.

    With a valid ``X-Phone-Token`` the response also carries the caller's
    own selections. A token whose phone has since been removed from the
    allowlist gets ``forceLogout`` instead.
    """
    tallies = await vote_service.tallies()
    results = ResultsResponse(
        updated_at=datetime.now(timezone.utc),
        votes=tallies.venue,
        date_votes=tallies.date,
    )

    if claims is None:
        return results

    if not context.allowlist.is_authorized(claims.phone):
        logger.info("force_logout_issued")
        results.force_logout = True
        return results

    selections = await vote_service.selections_for(hash_phone(claims.phone))
    results.user_name = selections.name
    if selections.venues:
        results.has_voted_venue = True
        results.voted_venue = selections.venues
    if selections.date:
        results.has_voted_date = True
        results.voted_date = selections.date
    return results


@router.post("/vote", response_model=VoteResponse, response_model_exclude_none=True)
async def cast_vote(
    body: VoteCreate,
    context: PollContext = Depends(get_context),
    vote_service: VoteService = Depends(get_vote_service),
) -> VoteResponse:
    """
    Cast a vote with a session token.

    Venue votes toggle one option on or off (multi-select); date votes
    replace the voter's previous choice (single-select). Checks run in the
    order option, token, allowlist.
    """
    kind = parse_kind(body.kind)
    option = validate_option(kind, body.option)
    claims = require_voter(context, body.phone_token)
    voter_key = hash_phone(claims.phone)

    selected: Optional[bool] = None
    if kind == PollKind.VENUE:
        selected = await vote_service.toggle_venue_vote(voter_key, option)
    else:
        await vote_service.record_date_vote(voter_key, option, body.other_text)

    tallies = await vote_service.tallies()
    return VoteResponse(
        updated_at=datetime.now(timezone.utc),
        votes=tallies.venue,
        date_votes=tallies.date,
        kind=kind.value,
        selected=selected,
    )


@router.get("/voters", response_model=VotersResponse)
async def list_voters(
    kind: Optional[str] = Query(default=None),
    option: str = Query(default=""),
    vote_service: VoteService = Depends(get_vote_service),
) -> VotersResponse:
    """
    Names of voters per option (public).

    Only live votes carry names; legacy counts are anonymous.
    """
    poll_kind = parse_kind(kind)
    names = await vote_service.voters_for_option(poll_kind, option)
    return VotersResponse(kind=poll_kind.value, option=option, names=names)
