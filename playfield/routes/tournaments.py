"""
playfield/routes/tournaments.py
Tournament setup and team registration endpoints.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.database import get_db
from playfield.exceptions import ForbiddenError
from playfield.orm.tournament import Tournament
from playfield.orm.user import User, UserRole
from playfield.rbac import get_current_user, require_team_manager
from playfield.schemas.tournament import (
    TournamentCreate, TournamentUpdate, TournamentResponse, RegistrationRequest, TournamentTeamResponse
)
from playfield.services import tournament_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tournaments", tags=["Tournaments"])


def _require_organizer(tournament: Tournament, user: User) -> None:
    if user.role == UserRole.admin.value or tournament.created_by_user_id == user.id:
        return
    raise ForbiddenError(f"Only the organizer can manage tournament {tournament.id}")


@router.post("", response_model=TournamentResponse, status_code=status.HTTP_201_CREATED)
async def create_tournament(
    payload: TournamentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await tournament_service.create_tournament(
        db,
        name=payload.name,
        sport_id=payload.sport_id,
        created_by_user_id=current_user.id,
        max_teams=payload.max_teams,
        registration_deadline=payload.registration_deadline,
        format=payload.format,
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        entry_fee=payload.entry_fee,
        prize_pool=payload.prize_pool,
    )


@router.get("/{tournament_id}", response_model=TournamentResponse)
async def get_tournament(
    tournament_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await tournament_service.get_tournament(db, tournament_id)


@router.put("/{tournament_id}", response_model=TournamentResponse)
async def update_tournament(
    tournament_id: int,
    payload: TournamentUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _require_organizer(await tournament_service.get_tournament(db, tournament_id), current_user)
    return await tournament_service.update_tournament(db, tournament_id, **payload.model_dump(exclude_unset=True))


@router.delete("/{tournament_id}", response_model=TournamentResponse)
async def delete_tournament(
    tournament_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel and hide a tournament that has not started."""
    _require_organizer(await tournament_service.get_tournament(db, tournament_id), current_user)
    return await tournament_service.delete_tournament(db, tournament_id)


@router.post("/{tournament_id}/registration/open", response_model=TournamentResponse)
async def open_registration(
    tournament_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _require_organizer(await tournament_service.get_tournament(db, tournament_id), current_user)
    return await tournament_service.open_registration(db, tournament_id)


@router.post("/{tournament_id}/registration/close", response_model=TournamentResponse)
async def close_registration(
    tournament_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _require_organizer(await tournament_service.get_tournament(db, tournament_id), current_user)
    return await tournament_service.close_registration(db, tournament_id)


# ================= REGISTRATIONS =================

@router.post(
    "/{tournament_id}/registrations",
    response_model=TournamentTeamResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_team(
    tournament_id: int,
    payload: RegistrationRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Register a team the caller manages."""
    await require_team_manager(db, payload.team_id, current_user)
    return await tournament_service.register_team(db, tournament_id, payload.team_id)


@router.delete("/{tournament_id}/registrations/{team_id}", response_model=TournamentResponse)
async def unregister_team(
    tournament_id: int,
    team_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_team_manager(db, team_id, current_user)
    return await tournament_service.unregister_team(db, tournament_id, team_id)


@router.get("/{tournament_id}/registrations", response_model=List[TournamentTeamResponse])
async def list_registrations(
    tournament_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await tournament_service.get_tournament(db, tournament_id)
    return await tournament_service.list_registrations(db, tournament_id)
