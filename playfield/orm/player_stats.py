"""
playfield/orm/player_stats.py
Derived per-match and career cricket statistics.

Neither table is authoritative. PlayerMatchStat is recomputed from the
delivery ledger; PlayerOverallCricketStat is a fold over a player's
completed-match PlayerMatchStat rows.
"""
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
)

from playfield.orm.base import BaseModel


class PlayerMatchStat(BaseModel):
    __tablename__ = "player_match_stats"

    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)

    # Batting
    innings_batted = Column(Integer, nullable=False, default=0)
    runs_scored = Column(Integer, nullable=False, default=0)
    balls_faced = Column(Integer, nullable=False, default=0)
    fours = Column(Integer, nullable=False, default=0)
    sixes = Column(Integer, nullable=False, default=0)
    times_out = Column(Integer, nullable=False, default=0)
    highest_score = Column(Integer, nullable=False, default=0)
    fifties = Column(Integer, nullable=False, default=0)
    hundreds = Column(Integer, nullable=False, default=0)
    strike_rate = Column(Float, nullable=False, default=0.0)

    # Bowling
    balls_bowled = Column(Integer, nullable=False, default=0)
    overs_bowled = Column(String(10), nullable=False, default="0.0")
    runs_conceded = Column(Integer, nullable=False, default=0)
    wickets_taken = Column(Integer, nullable=False, default=0)
    maidens = Column(Integer, nullable=False, default=0)
    wides_bowled = Column(Integer, nullable=False, default=0)
    no_balls_bowled = Column(Integer, nullable=False, default=0)
    economy = Column(Float, nullable=False, default=0.0)

    # Fielding
    catches = Column(Integer, nullable=False, default=0)
    stumpings = Column(Integer, nullable=False, default=0)
    run_outs = Column(Integer, nullable=False, default=0)

    # Set once this row has been folded into the career row
    rolled_up_at = Column(DateTime, nullable=True, index=True)

    __table_args__ = (
        UniqueConstraint("match_id", "user_id", name="uq_player_match_stat"),
    )


class PlayerOverallCricketStat(BaseModel):
    __tablename__ = "player_overall_cricket_stats"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    matches = Column(Integer, nullable=False, default=0)

    # Batting
    innings = Column(Integer, nullable=False, default=0)
    runs_scored = Column(Integer, nullable=False, default=0)
    balls_faced = Column(Integer, nullable=False, default=0)
    not_outs = Column(Integer, nullable=False, default=0)
    highest_score = Column(Integer, nullable=False, default=0)
    fifties = Column(Integer, nullable=False, default=0)
    hundreds = Column(Integer, nullable=False, default=0)
    fours = Column(Integer, nullable=False, default=0)
    sixes = Column(Integer, nullable=False, default=0)
    batting_average = Column(Float, nullable=True)
    strike_rate = Column(Float, nullable=False, default=0.0)

    # Bowling
    balls_bowled = Column(Integer, nullable=False, default=0)
    runs_conceded = Column(Integer, nullable=False, default=0)
    wickets_taken = Column(Integer, nullable=False, default=0)
    maidens = Column(Integer, nullable=False, default=0)
    best_bowling_wickets = Column(Integer, nullable=False, default=0)
    best_bowling_runs = Column(Integer, nullable=False, default=0)
    bowling_average = Column(Float, nullable=True)
    economy = Column(Float, nullable=False, default=0.0)

    # Fielding
    catches = Column(Integer, nullable=False, default=0)
    stumpings = Column(Integer, nullable=False, default=0)
    run_outs = Column(Integer, nullable=False, default=0)

    last_recomputed_at = Column(DateTime, nullable=True)
