"""
Pydantic Schemas for Matches

Request and response models for scheduling, status transitions and lineups.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from playfield.orm.match import MatchStatus, TossDecision


# ============================================================================
# Requests
# ============================================================================

class MatchCreate(BaseModel):
    """Schema for scheduling a match directly between two teams."""
    sport_id: int
    team1_id: int = Field(..., description="Team the caller manages; plays as side 1")
    team2_id: int
    scheduled_at: datetime
    venue_id: Optional[int] = None
    tournament_id: Optional[int] = None
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    overs_per_innings: Optional[int] = Field(None, gt=0)
    entry_fee: Optional[Decimal] = Field(None, ge=0)
    prize_description: Optional[str] = Field(None, max_length=255)
    custom_rules: Optional[str] = None
    skill_level: Optional[str] = Field(None, max_length=30)


class MatchUpdate(BaseModel):
    """Edit the details of a match before it starts. Only fields that are sent change."""
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    venue_id: Optional[int] = None
    scheduled_at: Optional[datetime] = None
    overs_per_innings: Optional[int] = Field(None, gt=0)
    entry_fee: Optional[Decimal] = Field(None, ge=0)
    prize_description: Optional[str] = Field(None, max_length=255)
    custom_rules: Optional[str] = None
    skill_level: Optional[str] = Field(None, max_length=30)


class TossRequest(BaseModel):
    winner_team_id: int
    decision: TossDecision


class EndMatchRequest(BaseModel):
    winning_team_id: int


class PostponeRequest(BaseModel):
    new_scheduled_at: Optional[datetime] = None
    reason: Optional[str] = Field(None, max_length=255)


class ReinstateRequest(BaseModel):
    new_scheduled_at: Optional[datetime] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class AdminOverrideRequest(BaseModel):
    """Administrative end of a live match."""
    status: MatchStatus = Field(..., description="abandoned or forfeited")
    reason: Optional[str] = Field(None, max_length=255)


class MatchPlayerCreate(BaseModel):
    team_id: int
    user_id: int
    is_playing_xi: bool = True
    is_substitute: bool = False
    is_captain: bool = False
    is_wicket_keeper: bool = False
    batting_order: Optional[int] = Field(None, ge=1)
    bowling_order: Optional[int] = Field(None, ge=1)


# ============================================================================
# Responses
# ============================================================================

class MatchTeamResponse(BaseModel):
    id: int
    team_id: int
    side: int

    class Config:
        from_attributes = True


class MatchPlayerResponse(BaseModel):
    id: int
    match_id: int
    team_id: int
    user_id: int
    is_playing_xi: bool
    is_substitute: bool
    is_captain: bool
    is_wicket_keeper: bool
    batting_order: Optional[int] = None
    bowling_order: Optional[int] = None

    class Config:
        from_attributes = True


class MatchResponse(BaseModel):
    id: int
    sport_id: int
    venue_id: Optional[int] = None
    challenge_id: Optional[int] = None
    tournament_id: Optional[int] = None
    created_by_user_id: Optional[int] = None
    title: Optional[str] = None
    status: MatchStatus
    status_reason: Optional[str] = None
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    toss_winner_team_id: Optional[int] = None
    toss_decision: Optional[TossDecision] = None
    winning_team_id: Optional[int] = None
    overs_per_innings: Optional[int] = None
    entry_fee: Optional[Decimal] = None
    teams: List[MatchTeamResponse] = []

    class Config:
        from_attributes = True


def build_match_response(match, teams) -> MatchResponse:
    """MatchResponse with its MatchTeam rows attached."""
    response = MatchResponse.model_validate(match)
    response.teams = [MatchTeamResponse.model_validate(t) for t in teams]
    return response
