"""
Pydantic Schemas for Scoring

Innings, deliveries, scorecards and derived player stats.

Delivery enums (extra_type, dismissal_type) are accepted as plain strings
and checked by the scoring service, so an inconsistent ball is reported
the same way from every entry point.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from playfield.orm.innings import InningStatus


# ============================================================================
# Requests
# ============================================================================

class InningCreate(BaseModel):
    batting_team_id: int
    bowling_team_id: Optional[int] = None
    max_overs: Optional[int] = Field(None, gt=0)
    target_score: Optional[int] = Field(None, gt=0)


class DeliveryCreate(BaseModel):
    """Schema for recording one ball."""
    bowler_id: int
    striker_id: int
    non_striker_id: int
    runs_scored: int = Field(0, ge=0)
    is_four: bool = False
    is_six: bool = False
    is_wicket: bool = False
    dismissal_type: Optional[str] = None
    player_out_id: Optional[int] = None
    fielder1_id: Optional[int] = None
    fielder2_id: Optional[int] = None
    extra_type: Optional[str] = None
    extra_runs: int = Field(0, ge=0)
    is_extra: Optional[bool] = None
    commentary: Optional[str] = None
    sequence_number: Optional[int] = Field(None, ge=1, description="Expected ledger position; rejected if stale")


# ============================================================================
# Responses
# ============================================================================

class InningResponse(BaseModel):
    id: int
    match_id: int
    innings_number: int
    batting_team_id: int
    bowling_team_id: int
    status: InningStatus
    score: int
    wickets: int
    balls: int
    overs: str
    extras: int
    wide_runs: int
    no_ball_runs: int
    bye_runs: int
    leg_bye_runs: int
    penalty_runs: int
    max_overs: Optional[int] = None
    max_wickets: int
    target_score: Optional[int] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DeliveryResponse(BaseModel):
    id: int
    inning_id: int
    sequence_number: int
    over_number: int
    ball_number_in_over: int
    delivery_in_over: int
    bowler_id: int
    striker_id: int
    non_striker_id: int
    runs_scored: int
    is_four: bool
    is_six: bool
    is_wicket: bool
    dismissal_type: Optional[str] = None
    player_out_id: Optional[int] = None
    fielder1_id: Optional[int] = None
    fielder2_id: Optional[int] = None
    is_extra: bool
    extra_type: Optional[str] = None
    extra_runs: int
    is_legal_delivery: bool
    total_runs: int
    commentary: Optional[str] = None

    class Config:
        from_attributes = True


class FallOfWicketResponse(BaseModel):
    wicket_number: int
    player_out_id: int
    score_at_wicket: int
    overs_at_wicket: str
    delivery_id: int

    class Config:
        from_attributes = True


class DeliveryRecorded(BaseModel):
    """A recorded ball together with the inning state it produced."""
    delivery: DeliveryResponse
    inning: InningResponse


class BattingLine(BaseModel):
    user_id: int
    runs: int
    balls_faced: int
    fours: int
    sixes: int
    out: bool
    strike_rate: float


class BowlingLine(BaseModel):
    user_id: int
    overs: str
    maidens: int
    runs_conceded: int
    wickets: int
    wides: int
    no_balls: int
    economy: float


class ScorecardResponse(BaseModel):
    inning: InningResponse
    batting: List[BattingLine]
    bowling: List[BowlingLine]
    fall_of_wickets: List[FallOfWicketResponse]
    deliveries: List[DeliveryResponse]


class RebuildResponse(BaseModel):
    inning_id: int
    drift_detected: bool
    changed_columns: List[str]
    fall_of_wickets_rewritten: bool
    inning: InningResponse


# ============================================================================
# Player stats
# ============================================================================

class PlayerMatchStatResponse(BaseModel):
    match_id: int
    user_id: int
    team_id: Optional[int] = None
    innings_batted: int
    runs_scored: int
    balls_faced: int
    fours: int
    sixes: int
    times_out: int
    highest_score: int
    strike_rate: float
    overs_bowled: str
    runs_conceded: int
    wickets_taken: int
    maidens: int
    economy: float
    catches: int
    stumpings: int
    run_outs: int

    class Config:
        from_attributes = True


class CareerStatResponse(BaseModel):
    user_id: int
    matches: int
    innings: int
    runs_scored: int
    balls_faced: int
    not_outs: int
    highest_score: int
    fifties: int
    hundreds: int
    fours: int
    sixes: int
    batting_average: Optional[float] = None
    strike_rate: float
    balls_bowled: int
    runs_conceded: int
    wickets_taken: int
    maidens: int
    best_bowling_wickets: int
    best_bowling_runs: int
    bowling_average: Optional[float] = None
    economy: float
    catches: int
    stumpings: int
    run_outs: int
    last_recomputed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
