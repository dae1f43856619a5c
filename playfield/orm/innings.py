"""
playfield/orm/innings.py
Innings and the ball-by-ball delivery ledger.

BallDelivery rows are append-only and are the single source of truth for
an inning. The totals on Inning and the FallOfWicket rows are materialized
folds over the ledger (see services/scoring_math.py) and can be rebuilt
from it at any time.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, ForeignKey,
    UniqueConstraint, CheckConstraint, Index
)

from playfield.orm.base import BaseModel


class InningStatus(str, PyEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DECLARED = "declared"
    FORFEITED = "forfeited"


TERMINAL_INNING_STATUSES = frozenset({
    InningStatus.COMPLETED,
    InningStatus.DECLARED,
    InningStatus.FORFEITED,
})


class ExtraType(str, PyEnum):
    WIDE = "wide"
    NO_BALL = "no_ball"
    BYE = "bye"
    LEG_BYE = "leg_bye"
    PENALTY = "penalty"


# Deliveries that do not count toward the six balls of an over
ILLEGAL_EXTRAS = frozenset({ExtraType.WIDE, ExtraType.NO_BALL})


class DismissalType(str, PyEnum):
    BOWLED = "bowled"
    CAUGHT = "caught"
    LBW = "lbw"
    RUN_OUT = "run_out"
    STUMPED = "stumped"
    HIT_WICKET = "hit_wicket"
    HIT_THE_BALL_TWICE = "hit_the_ball_twice"
    OBSTRUCTING_THE_FIELD = "obstructing_the_field"
    TIMED_OUT = "timed_out"
    RETIRED_OUT = "retired_out"


# Dismissals credited to the bowler's wicket tally
BOWLER_CREDITED_DISMISSALS = frozenset({
    DismissalType.BOWLED,
    DismissalType.CAUGHT,
    DismissalType.LBW,
    DismissalType.STUMPED,
    DismissalType.HIT_WICKET,
})


class Inning(BaseModel):
    __tablename__ = "innings"

    match_id = Column(Integer, ForeignKey("matches.id", ondelete="RESTRICT"), nullable=False, index=True)
    innings_number = Column(Integer, nullable=False)
    batting_team_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=False)
    bowling_team_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=False)

    status = Column(String(20), nullable=False, default=InningStatus.NOT_STARTED.value, index=True)

    # Materialized fold over the ledger
    score = Column(Integer, nullable=False, default=0)
    wickets = Column(Integer, nullable=False, default=0)
    balls = Column(Integer, nullable=False, default=0)
    overs = Column(String(10), nullable=False, default="0.0")
    wide_runs = Column(Integer, nullable=False, default=0)
    no_ball_runs = Column(Integer, nullable=False, default=0)
    bye_runs = Column(Integer, nullable=False, default=0)
    leg_bye_runs = Column(Integer, nullable=False, default=0)
    penalty_runs = Column(Integer, nullable=False, default=0)

    max_overs = Column(Integer, nullable=True)
    max_wickets = Column(Integer, nullable=False, default=10)
    target_score = Column(Integer, nullable=True)

    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("match_id", "innings_number", name="uq_inning_match_number"),
        CheckConstraint("innings_number > 0", name="ck_inning_number_positive"),
        CheckConstraint("wickets >= 0 AND wickets <= max_wickets", name="ck_inning_wickets_bounded"),
        CheckConstraint("batting_team_id != bowling_team_id", name="ck_inning_distinct_sides"),
    )

    @property
    def extras(self) -> int:
        return self.wide_runs + self.no_ball_runs + self.bye_runs + self.leg_bye_runs + self.penalty_runs

    def __repr__(self):
        return f"<Inning(id={self.id}, match={self.match_id}, no={self.innings_number}, {self.score}/{self.wickets} in {self.overs})>"


class BallDelivery(BaseModel):
    """
    One delivery. Immutable after insert.

    sequence_number is the 1-based position in the inning ledger.
    over_number is 1-based; ball_number_in_over counts legal balls and is
    not advanced by wides or no-balls; delivery_in_over counts every
    delivery in the over.
    """
    __tablename__ = "ball_deliveries"

    inning_id = Column(Integer, ForeignKey("innings.id", ondelete="RESTRICT"), nullable=False, index=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="RESTRICT"), nullable=False, index=True)
    sequence_number = Column(Integer, nullable=False)
    over_number = Column(Integer, nullable=False)
    ball_number_in_over = Column(Integer, nullable=False)
    delivery_in_over = Column(Integer, nullable=False)

    bowler_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    striker_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    non_striker_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    runs_scored = Column(Integer, nullable=False, default=0)
    is_four = Column(Boolean, nullable=False, default=False)
    is_six = Column(Boolean, nullable=False, default=False)

    is_wicket = Column(Boolean, nullable=False, default=False)
    dismissal_type = Column(String(30), nullable=True)
    player_out_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True)
    fielder1_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True)
    fielder2_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True)

    is_extra = Column(Boolean, nullable=False, default=False)
    extra_type = Column(String(20), nullable=True)
    extra_runs = Column(Integer, nullable=False, default=0)
    is_legal_delivery = Column(Boolean, nullable=False, default=True)

    commentary = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("inning_id", "sequence_number", name="uq_delivery_inning_sequence"),
        CheckConstraint("sequence_number > 0", name="ck_delivery_sequence_positive"),
        CheckConstraint("runs_scored >= 0 AND extra_runs >= 0", name="ck_delivery_runs_non_negative"),
        CheckConstraint("NOT is_wicket OR dismissal_type IS NOT NULL", name="ck_delivery_wicket_has_dismissal"),
        Index("idx_delivery_inning_over", "inning_id", "over_number"),
    )

    @property
    def total_runs(self) -> int:
        return self.runs_scored + self.extra_runs


class FallOfWicket(BaseModel):
    """Snapshot of the inning at each dismissal, one per wicket delivery."""
    __tablename__ = "fall_of_wickets"

    inning_id = Column(Integer, ForeignKey("innings.id", ondelete="CASCADE"), nullable=False, index=True)
    delivery_id = Column(Integer, ForeignKey("ball_deliveries.id", ondelete="CASCADE"), nullable=False, unique=True)
    player_out_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    wicket_number = Column(Integer, nullable=False)
    score_at_wicket = Column(Integer, nullable=False)
    overs_at_wicket = Column(String(10), nullable=False)

    __table_args__ = (
        UniqueConstraint("inning_id", "wicket_number", name="uq_fow_inning_wicket"),
        CheckConstraint("wicket_number > 0", name="ck_fow_wicket_number_positive"),
    )
