"""
playfield/routes/challenges.py
Challenge endpoints: create, edit, answer, withdraw, list.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.database import get_db
from playfield.exceptions import ForbiddenError
from playfield.orm.challenge import ChallengeStatus
from playfield.orm.user import User, UserRole
from playfield.rbac import get_current_user, acting_party, is_team_member, is_team_manager
from playfield.schemas.challenge import (
    ChallengeCreate, ChallengeUpdate, ChallengeActingAs, ChallengeResponse
)
from playfield.schemas.match import MatchResponse, build_match_response
from playfield.services import challenge_service
from playfield.services.match_service import get_match_teams
from playfield.services.parties import TeamParty, UserParty

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/challenges", tags=["Challenges"])


@router.post("", response_model=ChallengeResponse, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    payload: ChallengeCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Send a challenge as the caller, or as a team the caller manages."""
    sender = await acting_party(db, current_user, payload.sender_team_id)

    receiver = None
    if payload.receiver_team_id is not None:
        receiver = TeamParty(team_id=payload.receiver_team_id)
    elif payload.receiver_user_id is not None:
        receiver = UserParty(user_id=payload.receiver_user_id)

    challenge = await challenge_service.create_challenge(
        db,
        challenge_type=payload.challenge_type,
        sender=sender,
        receiver=receiver,
        created_by_user_id=current_user.id,
        sport_id=payload.sport_id,
        proposed_at=payload.proposed_at,
        venue_id=payload.venue_id,
        expires_at=payload.expires_at,
        title=payload.title,
        description=payload.description,
        entry_fee=payload.entry_fee,
        prize_description=payload.prize_description,
        custom_rules=payload.custom_rules,
        skill_level=payload.skill_level,
    )
    return challenge


@router.get("", response_model=List[ChallengeResponse])
async def list_challenges(
    status_filter: Optional[ChallengeStatus] = Query(None, alias="status"),
    team_id: Optional[int] = None,
    mine: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List challenges. Filtering by team is limited to that team's members."""
    if team_id is not None and current_user.role != UserRole.admin.value:
        if not (await is_team_member(db, team_id, current_user.id)
                or await is_team_manager(db, team_id, current_user.id)):
            raise ForbiddenError(f"You are not a member of team {team_id}")

    return await challenge_service.list_challenges(
        db,
        status=status_filter.value if status_filter else None,
        team_id=team_id,
        user_id=current_user.id if mine else None,
        limit=limit,
        offset=offset,
    )


@router.get("/{challenge_id}", response_model=ChallengeResponse)
async def get_challenge(
    challenge_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await challenge_service.get_challenge(db, challenge_id)


@router.post("/{challenge_id}/accept", response_model=MatchResponse)
async def accept_challenge(
    challenge_id: int,
    payload: ChallengeActingAs,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Accept a challenge; returns the scheduled match."""
    party = await acting_party(db, current_user, payload.team_id)
    match = await challenge_service.accept_challenge(db, challenge_id, party)
    return build_match_response(match, await get_match_teams(db, match.id))


@router.post("/{challenge_id}/reject", response_model=ChallengeResponse)
async def reject_challenge(
    challenge_id: int,
    payload: ChallengeActingAs,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    party = await acting_party(db, current_user, payload.team_id)
    return await challenge_service.reject_challenge(db, challenge_id, party)


@router.post("/{challenge_id}/cancel", response_model=ChallengeResponse)
async def cancel_challenge(
    challenge_id: int,
    payload: ChallengeActingAs,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    party = await acting_party(db, current_user, payload.team_id)
    return await challenge_service.cancel_challenge(db, challenge_id, party)


@router.put("/{challenge_id}", response_model=ChallengeResponse)
async def update_challenge(
    challenge_id: int,
    payload: ChallengeUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Edit an unanswered challenge as its sender."""
    changes = payload.model_dump(exclude_unset=True)
    party = await acting_party(db, current_user, changes.pop("team_id", None))
    return await challenge_service.update_challenge(db, challenge_id, party, **changes)
