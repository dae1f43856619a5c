"""
playfield/orm/reference.py
Reference data referenced by matches: sports, teams and venues.

These rows are owned by their own subsystems; the scoring core only runs
existence and roster checks against them.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, UniqueConstraint

from playfield.orm.base import BaseModel


class TeamMemberRole(str, PyEnum):
    """Team-level roles. Creator, captain, vice captain and moderator manage the team."""
    CAPTAIN = "captain"
    VICE_CAPTAIN = "vice_captain"
    MODERATOR = "moderator"
    MEMBER = "member"


MANAGER_ROLES = (
    TeamMemberRole.CAPTAIN.value,
    TeamMemberRole.VICE_CAPTAIN.value,
    TeamMemberRole.MODERATOR.value,
)


class Sport(BaseModel):
    __tablename__ = "sports"
    
    name = Column(String(100), nullable=False, unique=True)
    is_team_sport = Column(Boolean, nullable=False, default=True)
    players_per_side = Column(Integer, nullable=True)


class Venue(BaseModel):
    __tablename__ = "venues"
    
    name = Column(String(200), nullable=False)
    city = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class Team(BaseModel):
    __tablename__ = "teams"
    
    name = Column(String(200), nullable=False)
    sport_id = Column(Integer, ForeignKey("sports.id", ondelete="RESTRICT"), nullable=True, index=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class TeamMember(BaseModel):
    __tablename__ = "team_members"
    
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default=TeamMemberRole.MEMBER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member"),
    )
