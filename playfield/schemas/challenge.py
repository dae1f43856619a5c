"""
Pydantic Schemas for Challenges

Request and response models for creating and answering challenges.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from playfield.orm.challenge import ChallengeType, ChallengeStatus


class ChallengeCreate(BaseModel):
    """
    Schema for creating a challenge.

    Team challenges are sent on behalf of sender_team_id, which the caller
    must manage; individual challenges are sent by the caller.
    """
    challenge_type: ChallengeType
    sender_team_id: Optional[int] = Field(None, description="Team sending a team challenge")
    receiver_team_id: Optional[int] = Field(None, description="Receiver of a direct team challenge")
    receiver_user_id: Optional[int] = Field(None, description="Receiver of a direct individual challenge")
    sport_id: int
    venue_id: Optional[int] = None
    proposed_at: datetime
    expires_at: Optional[datetime] = None
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    entry_fee: Optional[Decimal] = Field(None, ge=0)
    prize_description: Optional[str] = Field(None, max_length=255)
    custom_rules: Optional[str] = None
    skill_level: Optional[str] = Field(None, max_length=30)

    @model_validator(mode="after")
    def single_receiver(self):
        if self.receiver_team_id is not None and self.receiver_user_id is not None:
            raise ValueError("Give receiver_team_id or receiver_user_id, not both")
        return self


class ChallengeUpdate(BaseModel):
    """
    Edit the terms of an unanswered challenge. Only fields that are sent
    change; team_id names the sending team when the caller acts for one.
    """
    team_id: Optional[int] = Field(None, description="Sending team the caller manages")
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    venue_id: Optional[int] = None
    proposed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    entry_fee: Optional[Decimal] = Field(None, ge=0)
    prize_description: Optional[str] = Field(None, max_length=255)
    custom_rules: Optional[str] = None
    skill_level: Optional[str] = Field(None, max_length=30)


class ChallengeActingAs(BaseModel):
    """Who answers a challenge: a managed team, or the caller when team_id is omitted."""
    team_id: Optional[int] = None


class ChallengeResponse(BaseModel):
    id: int
    challenge_type: ChallengeType
    status: ChallengeStatus
    title: Optional[str] = None
    description: Optional[str] = None
    created_by_user_id: Optional[int] = None
    sender_team_id: Optional[int] = None
    sender_user_id: Optional[int] = None
    receiver_team_id: Optional[int] = None
    receiver_user_id: Optional[int] = None
    sport_id: int
    venue_id: Optional[int] = None
    proposed_at: datetime
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    entry_fee: Optional[Decimal] = None
    prize_description: Optional[str] = None
    custom_rules: Optional[str] = None
    skill_level: Optional[str] = None
    scheduled_match_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True
