"""
playfield/orm/match.py
Matches and their participating teams and players.

State Flow:
pending → upcoming → pre_toss → toss_done → live → completed
with postponed / cancelled / abandoned / forfeited side exits.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, Numeric, ForeignKey,
    UniqueConstraint, CheckConstraint, Index
)

from playfield.orm.base import BaseModel


class MatchStatus(str, PyEnum):
    PENDING = "pending"
    UPCOMING = "upcoming"
    PRE_TOSS = "pre_toss"
    TOSS_DONE = "toss_done"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"
    FORFEITED = "forfeited"
    ABANDONED = "abandoned"


TERMINAL_MATCH_STATUSES = frozenset({
    MatchStatus.COMPLETED,
    MatchStatus.CANCELLED,
    MatchStatus.FORFEITED,
    MatchStatus.ABANDONED,
})

# Statuses reached only after the match has been live
PLAYED_MATCH_STATUSES = frozenset({
    MatchStatus.LIVE,
    MatchStatus.COMPLETED,
    MatchStatus.FORFEITED,
    MatchStatus.ABANDONED,
})


class TossDecision(str, PyEnum):
    BAT = "bat"
    BOWL = "bowl"


class Match(BaseModel):
    """
    A scheduled contest.

    started_at is only set on entering live; completed_at and
    winning_team_id only when the match is completed.
    """
    __tablename__ = "matches"

    sport_id = Column(Integer, ForeignKey("sports.id", ondelete="RESTRICT"), nullable=False, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    challenge_id = Column(Integer, ForeignKey("challenges.id", ondelete="SET NULL"), nullable=True, unique=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="SET NULL"), nullable=True, index=True)

    title = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)

    scheduled_at = Column(DateTime, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    status = Column(String(20), nullable=False, default=MatchStatus.PENDING.value, index=True)
    status_reason = Column(String(255), nullable=True)

    toss_winner_team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    toss_decision = Column(String(10), nullable=True)
    winning_team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)

    overs_per_innings = Column(Integer, nullable=True)
    entry_fee = Column(Numeric(10, 2), nullable=True)
    prize_description = Column(String(255), nullable=True)
    custom_rules = Column(Text, nullable=True)
    skill_level = Column(String(30), nullable=True)

    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'upcoming', 'pre_toss', 'toss_done', 'live', 'completed', "
            "'cancelled', 'postponed', 'forfeited', 'abandoned')",
            name="ck_match_status_valid"
        ),
        CheckConstraint(
            "winning_team_id IS NULL OR status = 'completed'",
            name="ck_match_winner_only_when_completed"
        ),
        Index("idx_match_status_scheduled", "status", "scheduled_at"),
    )

    def __repr__(self):
        return f"<Match(id={self.id}, status={self.status})>"


class MatchTeam(BaseModel):
    """One side of a match. At most two per match."""
    __tablename__ = "match_teams"

    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=False, index=True)
    side = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("match_id", "team_id", name="uq_match_team"),
        UniqueConstraint("match_id", "side", name="uq_match_side"),
        CheckConstraint("side IN (1, 2)", name="ck_match_team_side"),
    )


class MatchPlayer(BaseModel):
    """A user selected for one side of a match."""
    __tablename__ = "match_players"

    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    match_team_id = Column(Integer, ForeignKey("match_teams.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    is_playing_xi = Column(Boolean, nullable=False, default=True)
    is_substitute = Column(Boolean, nullable=False, default=False)
    is_captain = Column(Boolean, nullable=False, default=False)
    is_wicket_keeper = Column(Boolean, nullable=False, default=False)
    batting_order = Column(Integer, nullable=True)
    bowling_order = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("match_id", "user_id", name="uq_match_player"),
    )
