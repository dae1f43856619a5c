"""
playfield/orm/challenge.py
Challenges: proposals for a match between two teams or two players.

State Flow:
open | pending → accepted | rejected | expired | cancelled (all terminal)
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Numeric, ForeignKey,
    CheckConstraint, Index
)

from playfield.orm.base import BaseModel


class ChallengeType(str, PyEnum):
    OPEN_TEAM = "open_team"
    OPEN_INDIVIDUAL = "open_individual"
    DIRECT_TEAM = "direct_team"
    DIRECT_INDIVIDUAL = "direct_individual"

    @property
    def is_team(self) -> bool:
        return self in (ChallengeType.OPEN_TEAM, ChallengeType.DIRECT_TEAM)

    @property
    def is_open(self) -> bool:
        return self in (ChallengeType.OPEN_TEAM, ChallengeType.OPEN_INDIVIDUAL)


class ChallengeStatus(str, PyEnum):
    OPEN = "open"
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Challenge(BaseModel):
    """
    A proposed match.

    Sender and receiver columns come in (team, user) pairs and are only
    written from a Party value, so at most one of each pair is set.
    scheduled_match_id is set exactly when the challenge was accepted and
    its match created.
    """
    __tablename__ = "challenges"

    challenge_type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, index=True)

    title = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)

    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    sender_team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True)
    sender_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    receiver_team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True)
    receiver_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)

    sport_id = Column(Integer, ForeignKey("sports.id", ondelete="RESTRICT"), nullable=False)
    venue_id = Column(Integer, ForeignKey("venues.id", ondelete="SET NULL"), nullable=True)
    proposed_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    accepted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    entry_fee = Column(Numeric(10, 2), nullable=True)
    prize_description = Column(String(255), nullable=True)
    custom_rules = Column(Text, nullable=True)
    skill_level = Column(String(30), nullable=True)

    # plain column: matches.challenge_id already holds the foreign key
    scheduled_match_id = Column(Integer, nullable=True, unique=True)

    __table_args__ = (
        CheckConstraint(
            "NOT (sender_team_id IS NOT NULL AND sender_user_id IS NOT NULL)",
            name="ck_challenge_single_sender"
        ),
        CheckConstraint(
            "NOT (receiver_team_id IS NOT NULL AND receiver_user_id IS NOT NULL)",
            name="ck_challenge_single_receiver"
        ),
        CheckConstraint(
            "challenge_type IN ('open_team', 'open_individual', 'direct_team', 'direct_individual')",
            name="ck_challenge_type_valid"
        ),
        Index("idx_challenge_status_expiry", "status", "expires_at"),
    )

    @property
    def type(self) -> ChallengeType:
        return ChallengeType(self.challenge_type)

    def __repr__(self):
        return f"<Challenge(id={self.id}, type={self.challenge_type}, status={self.status})>"
