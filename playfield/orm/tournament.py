"""
playfield/orm/tournament.py
Tournaments and team registrations.

current_teams always equals the number of TournamentTeam rows for the
tournament. It is only changed by the registration service, inside the
same transaction that inserts or deletes the TournamentTeam row.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Numeric, ForeignKey,
    UniqueConstraint, CheckConstraint
)

from playfield.orm.base import BaseModel


class TournamentStatus(str, PyEnum):
    DRAFT = "draft"
    REGISTRATION_OPEN = "registration_open"
    REGISTRATION_CLOSED = "registration_closed"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TournamentFormat(str, PyEnum):
    KNOCKOUT = "knockout"
    LEAGUE = "league"
    ROUND_ROBIN = "round_robin"


class Tournament(BaseModel):
    __tablename__ = "tournaments"

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    sport_id = Column(Integer, ForeignKey("sports.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    format = Column(String(20), nullable=False, default=TournamentFormat.KNOCKOUT.value)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    registration_deadline = Column(DateTime, nullable=True)

    # 0 means no cap
    max_teams = Column(Integer, nullable=False, default=0)
    current_teams = Column(Integer, nullable=False, default=0)

    entry_fee = Column(Numeric(10, 2), nullable=True)
    prize_pool = Column(Numeric(12, 2), nullable=True)
    status = Column(String(30), nullable=False, default=TournamentStatus.DRAFT.value, index=True)

    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("max_teams >= 0", name="ck_tournament_max_teams_non_negative"),
        CheckConstraint("current_teams >= 0", name="ck_tournament_current_teams_non_negative"),
        CheckConstraint(
            "max_teams = 0 OR current_teams <= max_teams",
            name="ck_tournament_within_capacity"
        ),
    )


class TournamentTeam(BaseModel):
    __tablename__ = "tournament_teams"

    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    registered_at = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="approved")

    __table_args__ = (
        UniqueConstraint("tournament_id", "team_id", name="uq_tournament_team"),
    )
