"""
playfield/routes/matches.py
Match endpoints: scheduling, status transitions, lineups and match stats.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.database import get_db
from playfield.orm.match import MatchStatus
from playfield.orm.user import User, UserRole
from playfield.rbac import (
    get_current_user, require_role, require_team_manager, require_match_authority, is_team_manager
)
from playfield.schemas.match import (
    MatchCreate, MatchUpdate, TossRequest, EndMatchRequest, PostponeRequest, ReinstateRequest,
    CancelRequest, AdminOverrideRequest, MatchPlayerCreate, MatchResponse,
    MatchPlayerResponse, build_match_response
)
from playfield.schemas.scoring import PlayerMatchStatResponse
from playfield.services import match_service, stats_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matches", tags=["Matches"])


async def _respond(db: AsyncSession, match) -> MatchResponse:
    return build_match_response(match, await match_service.get_match_teams(db, match.id))


# ================= SCHEDULING =================

@router.post("", response_model=MatchResponse, status_code=status.HTTP_201_CREATED)
async def create_match(
    payload: MatchCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Schedule a match between a team the caller manages and an opponent.
    Stays pending until the opponent confirms, unless the caller manages both.
    """
    await require_team_manager(db, payload.team1_id, current_user)
    awaiting_confirmation = not (
        current_user.role == UserRole.admin.value
        or await is_team_manager(db, payload.team2_id, current_user.id)
    )

    match = await match_service.create_direct_match(
        db,
        created_by_user_id=current_user.id,
        sport_id=payload.sport_id,
        team1_id=payload.team1_id,
        team2_id=payload.team2_id,
        scheduled_at=payload.scheduled_at,
        venue_id=payload.venue_id,
        tournament_id=payload.tournament_id,
        title=payload.title,
        description=payload.description,
        overs_per_innings=payload.overs_per_innings,
        entry_fee=payload.entry_fee,
        prize_description=payload.prize_description,
        custom_rules=payload.custom_rules,
        skill_level=payload.skill_level,
        awaiting_confirmation=awaiting_confirmation,
    )
    return await _respond(db, match)


@router.get("", response_model=List[MatchResponse])
async def list_matches(
    status_filter: Optional[MatchStatus] = Query(None, alias="status"),
    team_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    matches = await match_service.list_matches(
        db,
        status=status_filter.value if status_filter else None,
        team_id=team_id,
        limit=limit,
        offset=offset,
    )
    return [await _respond(db, m) for m in matches]


@router.get("/{match_id}", response_model=MatchResponse)
async def get_match(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _respond(db, await match_service.get_match(db, match_id))


@router.put("/{match_id}", response_model=MatchResponse)
async def update_match(
    match_id: int,
    payload: MatchUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Edit match details; frozen once the match is live."""
    await require_match_authority(db, match_id, current_user)
    match = await match_service.update_match(db, match_id, **payload.model_dump(exclude_unset=True))
    return await _respond(db, match)


@router.delete("/{match_id}", response_model=MatchResponse)
async def delete_match(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_match_authority(db, match_id, current_user)
    match = await match_service.delete_match(db, match_id)
    return await _respond(db, match)


# ================= TRANSITIONS =================

@router.post("/{match_id}/confirm", response_model=MatchResponse)
async def confirm_match(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The opposing (side 2) team confirms a directly scheduled match."""
    teams = await match_service.get_match_teams(db, match_id)
    opponent = next((t.team_id for t in teams if t.side == 2), None)
    if opponent is not None:
        await require_team_manager(db, opponent, current_user)
    else:
        await require_match_authority(db, match_id, current_user)
    match = await match_service.confirm_match(db, match_id)
    return await _respond(db, match)


@router.post("/{match_id}/toss/open", response_model=MatchResponse)
async def open_toss(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_match_authority(db, match_id, current_user)
    return await _respond(db, await match_service.open_toss(db, match_id))


@router.post("/{match_id}/toss", response_model=MatchResponse)
async def record_toss(
    match_id: int,
    payload: TossRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_match_authority(db, match_id, current_user)
    match = await match_service.record_toss(db, match_id, payload.winner_team_id, payload.decision)
    return await _respond(db, match)


@router.post("/{match_id}/start", response_model=MatchResponse)
async def start_match(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_match_authority(db, match_id, current_user)
    return await _respond(db, await match_service.start_match(db, match_id))


@router.post("/{match_id}/end", response_model=MatchResponse)
async def end_match(
    match_id: int,
    payload: EndMatchRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_match_authority(db, match_id, current_user)
    match = await match_service.end_match(db, match_id, payload.winning_team_id)
    return await _respond(db, match)


@router.post("/{match_id}/postpone", response_model=MatchResponse)
async def postpone_match(
    match_id: int,
    payload: PostponeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_match_authority(db, match_id, current_user)
    match = await match_service.postpone_match(db, match_id, payload.new_scheduled_at, reason=payload.reason)
    return await _respond(db, match)


@router.post("/{match_id}/reinstate", response_model=MatchResponse)
async def reinstate_match(
    match_id: int,
    payload: ReinstateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_match_authority(db, match_id, current_user)
    match = await match_service.reinstate_match(db, match_id, payload.new_scheduled_at)
    return await _respond(db, match)


@router.post("/{match_id}/cancel", response_model=MatchResponse)
async def cancel_match(
    match_id: int,
    payload: CancelRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_match_authority(db, match_id, current_user)
    match = await match_service.cancel_match(db, match_id, reason=payload.reason)
    return await _respond(db, match)


@router.post("/{match_id}/override", response_model=MatchResponse)
async def admin_override(
    match_id: int,
    payload: AdminOverrideRequest,
    current_user: User = Depends(require_role([UserRole.admin])),
    db: AsyncSession = Depends(get_db),
):
    """Abandon or forfeit a live match (admin only)."""
    logger.info(f"Admin {current_user.id} overriding match {match_id} to {payload.status.value}")
    match = await match_service.admin_override_status(db, match_id, payload.status, reason=payload.reason)
    return await _respond(db, match)


# ================= LINEUPS =================

@router.post("/{match_id}/players", response_model=MatchPlayerResponse, status_code=status.HTTP_201_CREATED)
async def add_match_player(
    match_id: int,
    payload: MatchPlayerCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_team_manager(db, payload.team_id, current_user)
    return await match_service.add_match_player(
        db,
        match_id,
        payload.team_id,
        payload.user_id,
        is_playing_xi=payload.is_playing_xi,
        is_substitute=payload.is_substitute,
        is_captain=payload.is_captain,
        is_wicket_keeper=payload.is_wicket_keeper,
        batting_order=payload.batting_order,
        bowling_order=payload.bowling_order,
    )


@router.get("/{match_id}/players", response_model=List[MatchPlayerResponse])
async def list_match_players(
    match_id: int,
    team_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await match_service.get_match(db, match_id)
    return await match_service.list_match_players(db, match_id, team_id)


# ================= STATS =================

@router.get("/{match_id}/stats", response_model=List[PlayerMatchStatResponse])
async def match_stats(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await match_service.get_match(db, match_id)
    return await stats_service.get_player_match_stats(db, match_id)


@router.post("/{match_id}/stats/recompute", response_model=List[PlayerMatchStatResponse])
async def recompute_match_stats(
    match_id: int,
    current_user: User = Depends(require_role([UserRole.admin, UserRole.scorer])),
    db: AsyncSession = Depends(get_db),
):
    return await stats_service.recompute_match_stats(db, match_id)
