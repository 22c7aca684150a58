"""
Vote-related Pydantic schemas.

Response shapes match what the slideshow client polls for.
"""

from datetime import datetime
from typing import Optional

from schemas.auth import CamelModel


class VoteCreate(CamelModel):
    """Schema for casting (or toggling) a vote."""

    kind: Optional[str] = None
    option: Optional[str] = None
    phone_token: Optional[str] = None
    other_text: Optional[str] = None


class TallyResponse(CamelModel):
    """Merged legacy + live counts for both polls."""

    ok: bool = True
    updated_at: datetime
    votes: dict[str, int]
    date_votes: dict[str, int]


class VoteResponse(TallyResponse):
    """Updated tallies after a vote. ``selected`` is set for venue toggles."""

    kind: str
    selected: Optional[bool] = None


class ResultsResponse(TallyResponse):
    """
    Public tallies plus the caller's own selections when a valid token is sent.

    ``force_logout`` tells the client to drop a token whose phone is no
    longer allowlisted.
    """

    has_voted_venue: bool = False
    has_voted_date: bool = False
    voted_venue: list[str] = []
    voted_date: Optional[str] = None
    user_name: Optional[str] = None
    force_logout: bool = False


class VotersResponse(CamelModel):
    ok: bool = True
    kind: str
    option: str
    names: list[str]
