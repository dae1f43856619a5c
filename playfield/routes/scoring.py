"""
playfield/routes/scoring.py
Live scoring endpoints: innings, ball-by-ball deliveries, scorecards.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.config import settings
from playfield.database import get_db
from playfield.limiter import limiter
from playfield.orm.user import User, UserRole
from playfield.rbac import get_current_user, require_role, require_match_authority
from playfield.schemas.scoring import (
    InningCreate, InningResponse, DeliveryCreate, DeliveryRecorded, DeliveryResponse,
    ScorecardResponse, BattingLine, BowlingLine, FallOfWicketResponse, RebuildResponse,
    CareerStatResponse
)
from playfield.services import scoring_service, stats_service
from playfield.services.match_service import get_match
from playfield.services.scoring_service import DeliveryInput

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scoring"])


async def _authorize_inning(db: AsyncSession, inning_id: int, user: User):
    inning = await scoring_service.get_inning(db, inning_id)
    await require_match_authority(db, inning.match_id, user)
    return inning


# ================= INNINGS =================

@router.post("/matches/{match_id}/innings", response_model=InningResponse, status_code=status.HTTP_201_CREATED)
async def create_inning(
    match_id: int,
    payload: InningCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await require_match_authority(db, match_id, current_user)
    return await scoring_service.create_inning(
        db,
        match_id,
        payload.batting_team_id,
        bowling_team_id=payload.bowling_team_id,
        max_overs=payload.max_overs,
        target_score=payload.target_score,
    )


@router.get("/matches/{match_id}/innings", response_model=List[InningResponse])
async def list_innings(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_match(db, match_id)
    return await scoring_service.list_innings(db, match_id)


@router.post("/innings/{inning_id}/declare", response_model=InningResponse)
async def declare_inning(
    inning_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _authorize_inning(db, inning_id, current_user)
    return await scoring_service.declare_inning(db, inning_id)


@router.post("/innings/{inning_id}/forfeit", response_model=InningResponse)
async def forfeit_inning(
    inning_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _authorize_inning(db, inning_id, current_user)
    return await scoring_service.forfeit_inning(db, inning_id)


@router.post("/innings/{inning_id}/complete", response_model=InningResponse)
async def complete_inning(
    inning_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _authorize_inning(db, inning_id, current_user)
    return await scoring_service.complete_inning(db, inning_id)


# ================= DELIVERIES =================

@router.post("/innings/{inning_id}/deliveries", response_model=DeliveryRecorded, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.scoring_rate_limit)
async def record_delivery(
    request: Request,
    inning_id: int,
    payload: DeliveryCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Record the next ball of an inning."""
    await _authorize_inning(db, inning_id, current_user)
    delivery = await scoring_service.record_delivery(db, inning_id, DeliveryInput(**payload.model_dump()))
    inning = await scoring_service.get_inning(db, inning_id)
    return DeliveryRecorded(
        delivery=DeliveryResponse.model_validate(delivery),
        inning=InningResponse.model_validate(inning),
    )


@router.get("/innings/{inning_id}/deliveries", response_model=List[DeliveryResponse])
async def list_deliveries(
    inning_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await scoring_service.get_inning(db, inning_id)
    return await scoring_service.list_deliveries(db, inning_id)


@router.get("/innings/{inning_id}/scorecard", response_model=ScorecardResponse)
async def scorecard(
    inning_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    card = await scoring_service.get_scorecard(db, inning_id)
    return ScorecardResponse(
        inning=InningResponse.model_validate(card.inning),
        batting=[
            BattingLine(
                user_id=user_id,
                runs=f.runs,
                balls_faced=f.balls_faced,
                fours=f.fours,
                sixes=f.sixes,
                out=f.times_out > 0,
                strike_rate=f.strike_rate,
            )
            for user_id, f in card.batting.items()
        ],
        bowling=[
            BowlingLine(
                user_id=user_id,
                overs=f.overs,
                maidens=f.maidens,
                runs_conceded=f.runs_conceded,
                wickets=f.wickets,
                wides=f.wides,
                no_balls=f.no_balls,
                economy=f.economy,
            )
            for user_id, f in card.bowling.items()
        ],
        fall_of_wickets=[FallOfWicketResponse.model_validate(f) for f in card.fall_of_wickets],
        deliveries=[DeliveryResponse.model_validate(d) for d in card.deliveries],
    )


@router.post("/innings/{inning_id}/rebuild", response_model=RebuildResponse)
async def rebuild_inning(
    inning_id: int,
    current_user: User = Depends(require_role([UserRole.admin])),
    db: AsyncSession = Depends(get_db),
):
    """Re-fold the ledger and repair the inning's stored totals (admin only)."""
    result = await scoring_service.rebuild_inning(db, inning_id)
    inning = await scoring_service.get_inning(db, inning_id)
    return RebuildResponse(
        inning_id=result.inning_id,
        drift_detected=result.drift_detected,
        changed_columns=result.changed_columns,
        fall_of_wickets_rewritten=result.fall_of_wickets_rewritten,
        inning=InningResponse.model_validate(inning),
    )


# ================= CAREERS =================

@router.get("/players/{user_id}/career", response_model=CareerStatResponse)
async def career(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await stats_service.get_career_stat(db, user_id)


@router.post("/players/{user_id}/career/recompute", response_model=CareerStatResponse)
async def recompute_career(
    user_id: int,
    current_user: User = Depends(require_role([UserRole.admin])),
    db: AsyncSession = Depends(get_db),
):
    return await stats_service.recompute_career_stat(db, user_id)
