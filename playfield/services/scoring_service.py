"""
Scoring Service

Innings and the append-only delivery ledger.

Recording a ball is one transaction:
1. Validate the delivery on its own (no database access)
2. Lock the inning, check inning + match state and player sides
3. Compute the ledger position from the legal-ball count
4. Insert the BallDelivery, fold it into the inning totals, and insert a
   FallOfWicket row when it took a wicket
5. Complete the inning when it is all out, out of overs, or the target
   has been reached

Rules:
- Deliveries are never updated or deleted here
- Inning totals are only written through InningsTotals, the same fold the
  rebuild path uses, so stored totals always equal the ledger fold
- A caller-supplied sequence number must be the next one; anything else
  is an OrderingError
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.config import settings
from playfield.database import atomic
from playfield.exceptions import (
    ValidationError, InvalidStateError, InvalidReferenceError, OrderingError,
    ConcurrencyConflictError
)
from playfield.orm.innings import (
    Inning, BallDelivery, FallOfWicket, InningStatus, ExtraType, DismissalType
)
from playfield.orm.match import Match, MatchPlayer, MatchStatus
from playfield.services.lookups import get_or_404
from playfield.services.match_service import get_match, get_match_team, get_match_teams
from playfield.services.scoring_math import (
    BALLS_PER_OVER, InningsTotals, BattingFigures, BowlingFigures,
    batting_figures, bowling_figures, fold_innings, format_overs, is_legal, position_for
)
from playfield.state_machines import INNING_TRANSITIONS, InningAction

logger = logging.getLogger(__name__)

# Match statuses in which innings may be set up
_INNING_SETUP_STATUSES = (MatchStatus.TOSS_DONE.value, MatchStatus.LIVE.value)

# Dismissals allowed on an illegal delivery
_WIDE_DISMISSALS = frozenset({DismissalType.RUN_OUT, DismissalType.STUMPED, DismissalType.HIT_WICKET})
_NO_BALL_DISMISSALS = frozenset({DismissalType.RUN_OUT})

# Dismissals that can remove the non-striker
_NON_STRIKER_DISMISSALS = frozenset({
    DismissalType.RUN_OUT,
    DismissalType.OBSTRUCTING_THE_FIELD,
    DismissalType.TIMED_OUT,
    DismissalType.RETIRED_OUT,
})

_NEEDS_CATCHER = frozenset({DismissalType.CAUGHT, DismissalType.STUMPED})


@dataclass
class DeliveryInput:
    """One ball as entered by the scorer."""
    bowler_id: int
    striker_id: int
    non_striker_id: int
    runs_scored: int = 0
    is_four: bool = False
    is_six: bool = False
    is_wicket: bool = False
    dismissal_type: Optional[str] = None
    player_out_id: Optional[int] = None
    fielder1_id: Optional[int] = None
    fielder2_id: Optional[int] = None
    extra_type: Optional[str] = None
    extra_runs: int = 0
    is_extra: Optional[bool] = None
    commentary: Optional[str] = None
    sequence_number: Optional[int] = None


@dataclass
class RebuildResult:
    inning_id: int
    drift_detected: bool
    changed_columns: List[str] = field(default_factory=list)
    fall_of_wickets_rewritten: bool = False


@dataclass
class Scorecard:
    inning: Inning
    deliveries: List[BallDelivery]
    fall_of_wickets: List[FallOfWicket]
    batting: Dict[int, BattingFigures]
    bowling: Dict[int, BowlingFigures]


# =============================================================================
# Validation
# =============================================================================

def validate_delivery(data: DeliveryInput):
    """
    Check a delivery for internal consistency.

    Returns:
        (extra_type, dismissal_type) as enums, either may be None

    Raises:
        ValidationError: On any inconsistency
    """
    if data.runs_scored < 0 or data.extra_runs < 0:
        raise ValidationError("Runs cannot be negative")
    if data.striker_id == data.non_striker_id:
        raise ValidationError("Striker and non-striker must be different players")
    if data.bowler_id in (data.striker_id, data.non_striker_id):
        raise ValidationError("Bowler cannot also be batting")

    try:
        extra_type = ExtraType(data.extra_type) if data.extra_type else None
    except ValueError:
        raise ValidationError(f"Unknown extra type: {data.extra_type}")

    if data.is_extra is not None and data.is_extra != (extra_type is not None):
        raise ValidationError("is_extra does not match extra_type")
    if extra_type is None and data.extra_runs:
        raise ValidationError("Extra runs recorded without an extra type")
    if extra_type in (ExtraType.WIDE, ExtraType.NO_BALL) and data.extra_runs < 1:
        raise ValidationError(f"A {extra_type.value} carries at least one extra run")
    if extra_type in (ExtraType.WIDE, ExtraType.BYE, ExtraType.LEG_BYE) and data.runs_scored:
        raise ValidationError(f"No runs off the bat on a {extra_type.value}")

    if data.is_four and data.is_six:
        raise ValidationError("A delivery cannot be both a four and a six")
    if data.is_four and data.runs_scored != 4:
        raise ValidationError("A boundary four must score 4 runs off the bat")
    if data.is_six and data.runs_scored != 6:
        raise ValidationError("A six must score 6 runs off the bat")

    if not data.is_wicket:
        if data.dismissal_type or data.player_out_id is not None:
            raise ValidationError("Dismissal details given for a delivery without a wicket")
        return extra_type, None

    if not data.dismissal_type:
        raise ValidationError("A wicket needs a dismissal type")
    try:
        dismissal = DismissalType(data.dismissal_type)
    except ValueError:
        raise ValidationError(f"Unknown dismissal type: {data.dismissal_type}")

    if dismissal == DismissalType.RUN_OUT and data.fielder1_id is None and data.fielder2_id is None:
        raise ValidationError("A run out needs at least one fielder")
    if dismissal in _NEEDS_CATCHER and data.fielder1_id is None:
        raise ValidationError(f"A {dismissal.value} dismissal needs a fielder")
    if extra_type == ExtraType.WIDE and dismissal not in _WIDE_DISMISSALS:
        raise ValidationError(f"Cannot be {dismissal.value} off a wide")
    if extra_type == ExtraType.NO_BALL and dismissal not in _NO_BALL_DISMISSALS:
        raise ValidationError(f"Cannot be {dismissal.value} off a no-ball")

    player_out = data.player_out_id if data.player_out_id is not None else data.striker_id
    if player_out not in (data.striker_id, data.non_striker_id):
        raise InvalidReferenceError("Player out must be the striker or the non-striker")
    if player_out == data.non_striker_id and dismissal not in _NON_STRIKER_DISMISSALS:
        raise ValidationError(f"The non-striker cannot be out {dismissal.value}")

    return extra_type, dismissal


async def _lineup(db: AsyncSession, match_id: int, team_id: int) -> set:
    result = await db.execute(
        select(MatchPlayer.user_id).where(
            MatchPlayer.match_id == match_id,
            MatchPlayer.team_id == team_id,
        )
    )
    return {row[0] for row in result.all()}


async def _check_sides(db: AsyncSession, inning: Inning, data: DeliveryInput) -> None:
    """Batters from the batting lineup, bowler and fielders from the bowling lineup."""
    batting = await _lineup(db, inning.match_id, inning.batting_team_id)
    if batting:
        for user_id in (data.striker_id, data.non_striker_id):
            if user_id not in batting:
                raise InvalidReferenceError(f"User {user_id} is not in the batting side's lineup")

    bowling = await _lineup(db, inning.match_id, inning.bowling_team_id)
    if bowling:
        for user_id in (data.bowler_id, data.fielder1_id, data.fielder2_id):
            if user_id is not None and user_id not in bowling:
                raise InvalidReferenceError(f"User {user_id} is not in the bowling side's lineup")

    result = await db.execute(
        select(FallOfWicket.player_out_id).where(FallOfWicket.inning_id == inning.id)
    )
    dismissed = {row[0] for row in result.all()}
    for user_id in (data.striker_id, data.non_striker_id):
        if user_id in dismissed:
            raise ValidationError(f"User {user_id} is already out in this inning")


# =============================================================================
# Innings
# =============================================================================

async def list_innings(db: AsyncSession, match_id: int) -> List[Inning]:
    result = await db.execute(
        select(Inning).where(Inning.match_id == match_id).order_by(Inning.innings_number)
    )
    return list(result.scalars().all())


async def get_inning(db: AsyncSession, inning_id: int, for_update: bool = False) -> Inning:
    return await get_or_404(db, Inning, inning_id, "Inning", for_update=for_update)


async def create_inning(
    db: AsyncSession,
    match_id: int,
    batting_team_id: int,
    bowling_team_id: Optional[int] = None,
    max_overs: Optional[int] = None,
    target_score: Optional[int] = None,
) -> Inning:
    """
    Open the next inning of a match.

    The bowling side defaults to the other MatchTeam and max_overs to the
    match's overs_per_innings. In a limited-overs match the second
    inning's target defaults to the first inning's score plus one.

    Raises:
        InvalidStateError: Match not at toss_done / live, or the previous inning still open
        InvalidReferenceError: A team is not playing in the match
        ValidationError: Same team on both sides, or a bad limit
    """
    try:
        async with atomic(db):
            match = await get_match(db, match_id, for_update=True)
            if match.status not in _INNING_SETUP_STATUSES:
                raise InvalidStateError(
                    f"Cannot open an inning while the match is {match.status}",
                    current_state=match.status,
                    action="create_inning",
                )

            await get_match_team(db, match_id, batting_team_id)
            if bowling_team_id is None:
                others = [mt for mt in await get_match_teams(db, match_id) if mt.team_id != batting_team_id]
                if not others:
                    raise InvalidReferenceError(f"Match {match_id} has no opposing team")
                bowling_team_id = others[0].team_id
            elif bowling_team_id == batting_team_id:
                raise ValidationError("Batting and bowling teams must differ")
            else:
                await get_match_team(db, match_id, bowling_team_id)

            previous = await list_innings(db, match_id)
            if previous and not INNING_TRANSITIONS.is_terminal(previous[-1].status):
                raise InvalidStateError(
                    f"Inning {previous[-1].innings_number} of match {match_id} is still {previous[-1].status}",
                    current_state=previous[-1].status,
                    action="create_inning",
                )

            max_overs = max_overs if max_overs is not None else match.overs_per_innings
            if max_overs is not None and max_overs <= 0:
                raise ValidationError("max_overs must be positive")
            if target_score is not None and target_score <= 0:
                raise ValidationError("target_score must be positive")

            innings_number = len(previous) + 1
            if target_score is None and innings_number == 2 and max_overs is not None:
                target_score = previous[0].score + 1

            batting_xi = await db.execute(
                select(func.count(MatchPlayer.id)).where(
                    MatchPlayer.match_id == match_id,
                    MatchPlayer.team_id == batting_team_id,
                    MatchPlayer.is_playing_xi.is_(True),
                )
            )
            xi_size = batting_xi.scalar_one()
            # a lone batter is all out at the first wicket
            max_wickets = max(xi_size - 1, 1) if xi_size else settings.default_max_wickets

            inning = Inning(
                match_id=match_id,
                innings_number=innings_number,
                batting_team_id=batting_team_id,
                bowling_team_id=bowling_team_id,
                status=InningStatus.NOT_STARTED.value,
                max_overs=max_overs,
                max_wickets=max_wickets,
                target_score=target_score,
            )
            db.add(inning)
            await db.flush()
    except IntegrityError:
        raise ConcurrencyConflictError(f"Another inning was opened for match {match_id} concurrently")

    logger.info(
        f"Inning {inning.innings_number} opened for match {match_id}: "
        f"team {batting_team_id} batting, max_overs={max_overs}, target={target_score}"
    )
    return inning


async def _end_inning(db: AsyncSession, inning_id: int, action: InningAction, now: Optional[datetime] = None) -> Inning:
    now = now or datetime.utcnow()
    async with atomic(db):
        inning = await get_inning(db, inning_id, for_update=True)
        previous = inning.status
        inning.status = INNING_TRANSITIONS.resolve(inning.status, action).value
        inning.ended_at = now

    logger.info(f"Inning {inning_id}: {previous} -[{action.value}]-> {inning.status}")
    return inning


async def declare_inning(db: AsyncSession, inning_id: int, now: Optional[datetime] = None) -> Inning:
    """Batting side declares; no further deliveries are accepted."""
    return await _end_inning(db, inning_id, InningAction.DECLARE, now)


async def forfeit_inning(db: AsyncSession, inning_id: int, now: Optional[datetime] = None) -> Inning:
    return await _end_inning(db, inning_id, InningAction.FORFEIT, now)


async def complete_inning(db: AsyncSession, inning_id: int, now: Optional[datetime] = None) -> Inning:
    return await _end_inning(db, inning_id, InningAction.COMPLETE, now)


def _completion_reason(inning: Inning) -> Optional[str]:
    if inning.wickets >= inning.max_wickets:
        return "all out"
    if inning.max_overs is not None and inning.balls >= inning.max_overs * BALLS_PER_OVER:
        return "overs complete"
    if inning.target_score is not None and inning.score >= inning.target_score:
        return "target reached"
    return None


# =============================================================================
# Deliveries
# =============================================================================

async def record_delivery(
    db: AsyncSession,
    inning_id: int,
    data: DeliveryInput,
    now: Optional[datetime] = None,
) -> BallDelivery:
    """
    Append one delivery to an inning's ledger.

    Returns:
        The stored BallDelivery with its computed ledger position

    Raises:
        ValidationError: Inconsistent delivery, or a dismissed batter batting
        InvalidStateError: Inning finished, or match not live
        InvalidReferenceError: Player on the wrong side
        OrderingError: sequence_number is not the next ledger position
    """
    now = now or datetime.utcnow()
    extra_type, dismissal = validate_delivery(data)
    player_out_id = None
    if data.is_wicket:
        player_out_id = data.player_out_id if data.player_out_id is not None else data.striker_id

    try:
        async with atomic(db):
            inning = await get_inning(db, inning_id, for_update=True)
            if inning.status == InningStatus.NOT_STARTED.value:
                inning.status = INNING_TRANSITIONS.resolve(inning.status, InningAction.START).value
                inning.started_at = now
            elif inning.status != InningStatus.IN_PROGRESS.value:
                raise InvalidStateError(
                    f"Inning {inning_id} is {inning.status}; no more deliveries",
                    current_state=inning.status,
                    action="record_delivery",
                )

            match = await db.get(Match, inning.match_id)
            if match.status != MatchStatus.LIVE.value:
                raise InvalidStateError(
                    f"Match {match.id} is {match.status}; deliveries need a live match",
                    current_state=match.status,
                    action="record_delivery",
                )

            await _check_sides(db, inning, data)

            counts = await db.execute(
                select(func.count(BallDelivery.id)).where(BallDelivery.inning_id == inning_id)
            )
            deliveries_before = counts.scalar_one()
            if data.sequence_number is not None and data.sequence_number != deliveries_before + 1:
                raise OrderingError(
                    f"Delivery {data.sequence_number} is out of order; next is {deliveries_before + 1}",
                    details={"expected": deliveries_before + 1, "received": data.sequence_number},
                )

            over_number = inning.balls // BALLS_PER_OVER + 1
            in_over = await db.execute(
                select(func.count(BallDelivery.id)).where(
                    BallDelivery.inning_id == inning_id,
                    BallDelivery.over_number == over_number,
                )
            )
            position = position_for(deliveries_before, inning.balls, in_over.scalar_one())

            delivery = BallDelivery(
                inning_id=inning_id,
                match_id=inning.match_id,
                sequence_number=position.sequence_number,
                over_number=position.over_number,
                ball_number_in_over=position.ball_number_in_over,
                delivery_in_over=position.delivery_in_over,
                bowler_id=data.bowler_id,
                striker_id=data.striker_id,
                non_striker_id=data.non_striker_id,
                runs_scored=data.runs_scored,
                is_four=data.is_four,
                is_six=data.is_six,
                is_wicket=data.is_wicket,
                dismissal_type=dismissal.value if dismissal else None,
                player_out_id=player_out_id,
                fielder1_id=data.fielder1_id,
                fielder2_id=data.fielder2_id,
                is_extra=extra_type is not None,
                extra_type=extra_type.value if extra_type else None,
                extra_runs=data.extra_runs,
                is_legal_delivery=is_legal(extra_type),
                commentary=data.commentary,
            )
            db.add(delivery)
            await db.flush()

            totals = InningsTotals.from_inning(inning)
            snapshot = totals.apply(delivery)
            for column, value in totals.as_columns().items():
                setattr(inning, column, value)

            if snapshot is not None:
                db.add(FallOfWicket(
                    inning_id=inning_id,
                    delivery_id=delivery.id,
                    player_out_id=snapshot.player_out_id,
                    wicket_number=snapshot.wicket_number,
                    score_at_wicket=snapshot.score_at_wicket,
                    overs_at_wicket=snapshot.overs_at_wicket,
                ))

            reason = _completion_reason(inning)
            if reason is not None:
                inning.status = INNING_TRANSITIONS.resolve(inning.status, InningAction.COMPLETE).value
                inning.ended_at = now

            await db.flush()
    except IntegrityError:
        raise OrderingError(f"Delivery for inning {inning_id} conflicted with a concurrent write; reload and retry")

    logger.info(
        f"Inning {inning_id} delivery #{delivery.sequence_number} "
        f"(over {delivery.over_number}, ball {delivery.ball_number_in_over}): "
        f"{inning.score}/{inning.wickets} in {format_overs(inning.balls)}"
    )
    if reason is not None:
        logger.info(f"Inning {inning_id} completed: {reason}")
    return delivery


async def list_deliveries(db: AsyncSession, inning_id: int) -> List[BallDelivery]:
    result = await db.execute(
        select(BallDelivery)
        .where(BallDelivery.inning_id == inning_id)
        .order_by(BallDelivery.sequence_number)
    )
    return list(result.scalars().all())


async def list_fall_of_wickets(db: AsyncSession, inning_id: int) -> List[FallOfWicket]:
    result = await db.execute(
        select(FallOfWicket)
        .where(FallOfWicket.inning_id == inning_id)
        .order_by(FallOfWicket.wicket_number)
    )
    return list(result.scalars().all())


# =============================================================================
# Rebuild + scorecard
# =============================================================================

async def rebuild_inning(db: AsyncSession, inning_id: int) -> RebuildResult:
    """
    Re-fold an inning's ledger and overwrite its materialized state.

    Rewrites the totals columns and the fall-of-wicket rows, and reports
    which of them had drifted from the ledger.
    """
    async with atomic(db):
        inning = await get_inning(db, inning_id, for_update=True)
        deliveries = await list_deliveries(db, inning_id)
        stored_fow = await list_fall_of_wickets(db, inning_id)

        totals = fold_innings(deliveries)
        expected = totals.as_columns()
        changed = [column for column, value in expected.items() if getattr(inning, column) != value]

        delivery_ids = {d.sequence_number: d.id for d in deliveries}
        rebuilt_fow = [
            (s.wicket_number, delivery_ids[s.sequence_number], s.player_out_id, s.score_at_wicket, s.overs_at_wicket)
            for s in totals.fall_of_wickets
        ]
        existing_fow = [
            (f.wicket_number, f.delivery_id, f.player_out_id, f.score_at_wicket, f.overs_at_wicket)
            for f in stored_fow
        ]
        fow_drift = rebuilt_fow != existing_fow

        for column in changed:
            setattr(inning, column, expected[column])

        if fow_drift:
            for stale in stored_fow:
                await db.delete(stale)
            await db.flush()
            for wicket_number, delivery_id, player_out_id, score, overs in rebuilt_fow:
                db.add(FallOfWicket(
                    inning_id=inning_id,
                    delivery_id=delivery_id,
                    player_out_id=player_out_id,
                    wicket_number=wicket_number,
                    score_at_wicket=score,
                    overs_at_wicket=overs,
                ))
            await db.flush()

    result = RebuildResult(
        inning_id=inning_id,
        drift_detected=bool(changed) or fow_drift,
        changed_columns=changed,
        fall_of_wickets_rewritten=fow_drift,
    )
    if result.drift_detected:
        logger.warning(f"Inning {inning_id} drifted from its ledger; repaired columns={changed} fow={fow_drift}")
    else:
        logger.info(f"Inning {inning_id} matches its ledger")
    return result


async def get_scorecard(db: AsyncSession, inning_id: int) -> Scorecard:
    inning = await get_inning(db, inning_id)
    deliveries = await list_deliveries(db, inning_id)
    fall_of_wickets = await list_fall_of_wickets(db, inning_id)

    batters = []
    for d in deliveries:
        for user_id in (d.striker_id, d.non_striker_id):
            if user_id not in batters:
                batters.append(user_id)
    bowlers = []
    for d in deliveries:
        if d.bowler_id not in bowlers:
            bowlers.append(d.bowler_id)

    return Scorecard(
        inning=inning,
        deliveries=deliveries,
        fall_of_wickets=fall_of_wickets,
        batting={user_id: batting_figures(deliveries, user_id) for user_id in batters},
        bowling={user_id: bowling_figures(deliveries, user_id) for user_id in bowlers},
    )
