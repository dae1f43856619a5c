"""
Pydantic Schemas for Tournaments
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from playfield.orm.tournament import TournamentStatus, TournamentFormat


class TournamentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    sport_id: int
    description: Optional[str] = None
    format: TournamentFormat = TournamentFormat.KNOCKOUT
    max_teams: int = Field(0, ge=0, description="0 means uncapped")
    registration_deadline: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    entry_fee: Optional[Decimal] = Field(None, ge=0)
    prize_pool: Optional[Decimal] = Field(None, ge=0)


class TournamentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    format: Optional[TournamentFormat] = None
    max_teams: Optional[int] = Field(None, ge=0, description="0 means uncapped")
    registration_deadline: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    entry_fee: Optional[Decimal] = Field(None, ge=0)
    prize_pool: Optional[Decimal] = Field(None, ge=0)


class RegistrationRequest(BaseModel):
    team_id: int


class TournamentResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    sport_id: int
    format: TournamentFormat
    status: TournamentStatus
    max_teams: int
    current_teams: int
    registration_deadline: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    entry_fee: Optional[Decimal] = None
    prize_pool: Optional[Decimal] = None

    class Config:
        from_attributes = True


class TournamentTeamResponse(BaseModel):
    id: int
    tournament_id: int
    team_id: int
    registered_at: datetime
    status: str

    class Config:
        from_attributes = True
