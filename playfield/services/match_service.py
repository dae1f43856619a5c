"""
Match Service

Status transitions for a scheduled match, its sides and its lineups.

State Flow (see state_machines/match_state.py):
pending → upcoming → pre_toss → toss_done → live → completed

Rules:
- Every status change goes through MATCH_TRANSITIONS; a rejected
  transition leaves the row untouched
- started_at is stamped on entering live, completed_at and the winner on
  entering completed
- Matches that have ever been live are never deleted
- Stats rollup after end_match is best-effort and never undoes the end
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.config import FeatureFlags
from playfield.database import atomic
from playfield.exceptions import (
    ValidationError, InvalidStateError, InvalidReferenceError, NotFoundError
)
from playfield.orm.challenge import Challenge
from playfield.orm.innings import Inning, InningStatus
from playfield.orm.match import (
    Match, MatchTeam, MatchPlayer, MatchStatus, TossDecision, PLAYED_MATCH_STATUSES
)
from playfield.orm.reference import TeamMember
from playfield.services import stats_service, tournament_service
from playfield.services.lookups import (
    ensure_sport, ensure_venue, ensure_team, ensure_user, get_or_404
)
from playfield.state_machines import (
    MATCH_TRANSITIONS, MatchAction, INNING_TRANSITIONS, InningAction
)

logger = logging.getLogger(__name__)


# =============================================================================
# Lookups
# =============================================================================

async def get_match(db: AsyncSession, match_id: int, for_update: bool = False) -> Match:
    """Load a match that has not been soft-deleted."""
    match = await get_or_404(db, Match, match_id, "Match", for_update=for_update)
    if match.deleted_at is not None:
        raise NotFoundError("Match", match_id)
    return match


async def get_match_teams(db: AsyncSession, match_id: int) -> List[MatchTeam]:
    result = await db.execute(
        select(MatchTeam).where(MatchTeam.match_id == match_id).order_by(MatchTeam.side)
    )
    return list(result.scalars().all())


async def get_match_team(db: AsyncSession, match_id: int, team_id: int) -> MatchTeam:
    """
    The MatchTeam row for one side of a match.

    Raises:
        InvalidReferenceError: Team is not playing in this match
    """
    result = await db.execute(
        select(MatchTeam).where(
            MatchTeam.match_id == match_id,
            MatchTeam.team_id == team_id,
        )
    )
    match_team = result.scalar_one_or_none()
    if match_team is None:
        raise InvalidReferenceError(f"Team {team_id} is not playing in match {match_id}")
    return match_team


async def list_match_players(db: AsyncSession, match_id: int, team_id: Optional[int] = None) -> List[MatchPlayer]:
    stmt = select(MatchPlayer).where(MatchPlayer.match_id == match_id)
    if team_id is not None:
        stmt = stmt.where(MatchPlayer.team_id == team_id)
    result = await db.execute(stmt.order_by(MatchPlayer.team_id, MatchPlayer.batting_order, MatchPlayer.id))
    return list(result.scalars().all())


async def list_matches(
    db: AsyncSession,
    status: Optional[str] = None,
    team_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Match]:
    stmt = select(Match).where(Match.deleted_at.is_(None))
    if status is not None:
        stmt = stmt.where(Match.status == MatchStatus(status).value)
    if team_id is not None:
        stmt = stmt.where(
            Match.id.in_(select(MatchTeam.match_id).where(MatchTeam.team_id == team_id))
        )
    stmt = stmt.order_by(Match.scheduled_at.desc(), Match.id.desc()).limit(limit).offset(offset)
    result = await db.execute(stmt)
    return list(result.scalars().all())


# =============================================================================
# Create
# =============================================================================

async def create_direct_match(
    db: AsyncSession,
    created_by_user_id: int,
    sport_id: int,
    team1_id: int,
    team2_id: int,
    scheduled_at: datetime,
    venue_id: Optional[int] = None,
    tournament_id: Optional[int] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    overs_per_innings: Optional[int] = None,
    entry_fee: Optional[Decimal] = None,
    prize_description: Optional[str] = None,
    custom_rules: Optional[str] = None,
    skill_level: Optional[str] = None,
    awaiting_confirmation: bool = False,
) -> Match:
    """
    Schedule a match between two teams without a challenge.

    The match starts `upcoming`, or `pending` when the opposing team still
    has to confirm it. team1 plays as side 1.

    Raises:
        ValidationError: Same team on both sides, or a bad overs limit
        NotFoundError: Sport, venue, team or tournament does not exist
    """
    if team1_id == team2_id:
        raise ValidationError("A match needs two different teams")
    if overs_per_innings is not None and overs_per_innings <= 0:
        raise ValidationError("overs_per_innings must be positive")

    async with atomic(db):
        await ensure_sport(db, sport_id)
        if venue_id is not None:
            await ensure_venue(db, venue_id)
        if tournament_id is not None:
            await tournament_service.get_tournament(db, tournament_id)
        await ensure_user(db, created_by_user_id)
        await ensure_team(db, team1_id)
        await ensure_team(db, team2_id)

        status = MatchStatus.PENDING if awaiting_confirmation else MatchStatus.UPCOMING
        match = Match(
            sport_id=sport_id,
            venue_id=venue_id,
            tournament_id=tournament_id,
            created_by_user_id=created_by_user_id,
            title=title,
            description=description,
            scheduled_at=scheduled_at,
            status=status.value,
            overs_per_innings=overs_per_innings,
            entry_fee=entry_fee,
            prize_description=prize_description,
            custom_rules=custom_rules,
            skill_level=skill_level,
        )
        db.add(match)
        await db.flush()

        db.add(MatchTeam(match_id=match.id, team_id=team1_id, side=1))
        db.add(MatchTeam(match_id=match.id, team_id=team2_id, side=2))
        await db.flush()

    logger.info(f"Match {match.id} created ({status.value}): team {team1_id} vs team {team2_id}")
    return match


# =============================================================================
# Transitions
# =============================================================================

async def _transition(
    db: AsyncSession,
    match_id: int,
    action: MatchAction,
    reason: Optional[str] = None,
) -> Match:
    """Apply a transition that changes nothing but the status."""
    async with atomic(db):
        match = await get_match(db, match_id, for_update=True)
        previous = match.status
        match.status = MATCH_TRANSITIONS.resolve(match.status, action).value
        if reason is not None:
            match.status_reason = reason

    logger.info(f"Match {match_id}: {previous} -[{action.value}]-> {match.status}")
    return match


async def confirm_match(db: AsyncSession, match_id: int) -> Match:
    return await _transition(db, match_id, MatchAction.CONFIRM)


async def open_toss(db: AsyncSession, match_id: int) -> Match:
    return await _transition(db, match_id, MatchAction.OPEN_TOSS)


async def record_toss(db: AsyncSession, match_id: int, winner_team_id: int, decision) -> Match:
    """
    Record the toss.

    Raises:
        ValidationError: Decision is not bat / bowl
        InvalidReferenceError: Toss winner is not one of the match's teams
    """
    try:
        decision = TossDecision(decision)
    except ValueError:
        raise ValidationError(f"Toss decision must be 'bat' or 'bowl', got {decision!r}")

    async with atomic(db):
        match = await get_match(db, match_id, for_update=True)
        target = MATCH_TRANSITIONS.resolve(match.status, MatchAction.RECORD_TOSS)
        await get_match_team(db, match_id, winner_team_id)

        match.status = target.value
        match.toss_winner_team_id = winner_team_id
        match.toss_decision = decision.value

    logger.info(f"Match {match_id}: toss won by team {winner_team_id}, elected to {decision.value}")
    return match


async def start_match(db: AsyncSession, match_id: int, now: Optional[datetime] = None) -> Match:
    """Move the match to live and stamp started_at."""
    now = now or datetime.utcnow()

    async with atomic(db):
        match = await get_match(db, match_id, for_update=True)
        previous = match.status
        match.status = MATCH_TRANSITIONS.resolve(match.status, MatchAction.START).value
        match.started_at = now

    logger.info(f"Match {match_id}: {previous} -[start]-> live")
    return match


async def end_match(
    db: AsyncSession,
    match_id: int,
    winning_team_id: int,
    now: Optional[datetime] = None,
) -> Match:
    """
    Complete a live match.

    Any inning still in progress is completed with it; innings that never
    saw a ball are dropped. After the commit, per-match player stats are
    recomputed and folded into careers; a failure there is logged and left
    for the background rollup.

    Raises:
        InvalidStateError: Match is not live
        InvalidReferenceError: Winner is not one of the match's teams
    """
    now = now or datetime.utcnow()

    async with atomic(db):
        match = await get_match(db, match_id, for_update=True)
        target = MATCH_TRANSITIONS.resolve(match.status, MatchAction.END)
        await get_match_team(db, match_id, winning_team_id)

        result = await db.execute(
            select(Inning).where(
                Inning.match_id == match_id,
                Inning.status == InningStatus.IN_PROGRESS.value,
            )
        )
        for inning in result.scalars().all():
            inning.status = INNING_TRANSITIONS.resolve(inning.status, InningAction.COMPLETE).value
            inning.ended_at = now
        await db.execute(
            delete(Inning).where(
                Inning.match_id == match_id,
                Inning.status == InningStatus.NOT_STARTED.value,
            )
        )

        match.status = target.value
        match.winning_team_id = winning_team_id
        match.completed_at = now

        if match.challenge_id is not None:
            challenge = await db.get(Challenge, match.challenge_id)
            if challenge is not None:
                challenge.completed_at = now

    logger.info(f"Match {match_id} completed, winner team {winning_team_id}")

    await _refresh_stats_after_match(db, match_id)
    # a failed rollup rolls the session back and expires loaded rows
    await db.refresh(match)
    return match


async def _refresh_stats_after_match(db: AsyncSession, match_id: int) -> None:
    try:
        await stats_service.recompute_match_stats(db, match_id)
        if FeatureFlags.FEATURE_CAREER_ROLLUP_ON_MATCH_END:
            await stats_service.rollup_match_into_careers(db, match_id)
    except Exception as e:
        logger.error(f"Stats rollup for match {match_id} failed, deferred to background task: {e}", exc_info=True)


async def postpone_match(
    db: AsyncSession,
    match_id: int,
    new_scheduled_at: Optional[datetime],
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Match:
    """
    Postpone an upcoming match to a new time.

    Raises:
        ValidationError: No new time, or a time in the past
    """
    now = now or datetime.utcnow()
    if new_scheduled_at is None:
        raise ValidationError("Postponing a match requires a new scheduled time")
    if new_scheduled_at <= now:
        raise ValidationError("New scheduled time must be in the future")

    async with atomic(db):
        match = await get_match(db, match_id, for_update=True)
        match.status = MATCH_TRANSITIONS.resolve(match.status, MatchAction.POSTPONE).value
        match.scheduled_at = new_scheduled_at
        match.status_reason = reason

    logger.info(f"Match {match_id} postponed to {new_scheduled_at.isoformat()}")
    return match


async def reinstate_match(db: AsyncSession, match_id: int, new_scheduled_at: Optional[datetime] = None) -> Match:
    async with atomic(db):
        match = await get_match(db, match_id, for_update=True)
        match.status = MATCH_TRANSITIONS.resolve(match.status, MatchAction.REINSTATE).value
        if new_scheduled_at is not None:
            match.scheduled_at = new_scheduled_at
        match.status_reason = None

    logger.info(f"Match {match_id} reinstated")
    return match


async def cancel_match(db: AsyncSession, match_id: int, reason: Optional[str] = None) -> Match:
    return await _transition(db, match_id, MatchAction.CANCEL, reason=reason)


_ADMIN_OVERRIDES = {
    MatchStatus.ABANDONED: MatchAction.ABANDON,
    MatchStatus.FORFEITED: MatchAction.FORFEIT,
}


async def admin_override_status(db: AsyncSession, match_id: int, target, reason: Optional[str] = None) -> Match:
    """
    Administrative end of a live match: abandoned or forfeited.

    Authorization (admin role) is checked by the caller.

    Raises:
        ValidationError: Target is not abandoned / forfeited
    """
    try:
        action = _ADMIN_OVERRIDES[MatchStatus(target)]
    except (ValueError, KeyError):
        raise ValidationError(f"Administrative override can only abandon or forfeit, not {target!r}")
    return await _transition(db, match_id, action, reason=reason)


async def delete_match(db: AsyncSession, match_id: int, now: Optional[datetime] = None) -> Match:
    """
    Soft-delete a match that never went live.

    A match that is still open is cancelled on the way out.

    Raises:
        InvalidStateError: Match has been live
    """
    now = now or datetime.utcnow()

    async with atomic(db):
        match = await get_match(db, match_id, for_update=True)
        if match.started_at is not None or MatchStatus(match.status) in PLAYED_MATCH_STATUSES:
            raise InvalidStateError(
                f"Match {match_id} has been played and cannot be deleted",
                current_state=match.status,
                action="delete",
            )
        if MATCH_TRANSITIONS.can(match.status, MatchAction.CANCEL):
            match.status = MatchStatus.CANCELLED.value
            match.status_reason = "deleted"
        match.deleted_at = now

    logger.info(f"Match {match_id} deleted")
    return match


# =============================================================================
# Edit
# =============================================================================

EDITABLE_MATCH_FIELDS = (
    "title", "description", "venue_id", "scheduled_at", "overs_per_innings",
    "entry_fee", "prize_description", "custom_rules", "skill_level",
)

_EDITABLE_MATCH_STATUSES = (
    MatchStatus.PENDING, MatchStatus.UPCOMING, MatchStatus.PRE_TOSS,
    MatchStatus.TOSS_DONE, MatchStatus.POSTPONED,
)


async def update_match(db: AsyncSession, match_id: int, **changes) -> Match:
    """
    Edit the details of a match that has not started.

    Status, sides and result are not editable here; they move through
    the transitions above. A postponed match keeps its status when its
    time is edited.

    Args:
        changes: Any of EDITABLE_MATCH_FIELDS

    Raises:
        InvalidStateError: Match is live or finished
        ValidationError: Unknown field, or a bad overs limit / fee
        NotFoundError: New venue does not exist
    """
    unknown = set(changes) - set(EDITABLE_MATCH_FIELDS)
    if unknown:
        raise ValidationError(f"Match fields cannot be edited: {', '.join(sorted(unknown))}")
    overs = changes.get("overs_per_innings")
    if overs is not None and overs <= 0:
        raise ValidationError("overs_per_innings must be positive")
    if "scheduled_at" in changes and changes["scheduled_at"] is None:
        raise ValidationError("A match needs a scheduled time")
    entry_fee = changes.get("entry_fee")
    if entry_fee is not None and entry_fee < 0:
        raise ValidationError("Entry fee cannot be negative")

    async with atomic(db):
        match = await get_match(db, match_id, for_update=True)
        if MatchStatus(match.status) not in _EDITABLE_MATCH_STATUSES:
            raise InvalidStateError(
                f"Match {match_id} has started and its details are frozen",
                current_state=match.status,
                action="update",
            )
        if changes.get("venue_id") is not None:
            await ensure_venue(db, changes["venue_id"])

        for field, value in changes.items():
            setattr(match, field, value)

    logger.info(f"Match {match_id} edited: {sorted(changes)}")
    return match


# =============================================================================
# Lineups
# =============================================================================

async def add_match_player(
    db: AsyncSession,
    match_id: int,
    team_id: int,
    user_id: int,
    is_playing_xi: bool = True,
    is_substitute: bool = False,
    is_captain: bool = False,
    is_wicket_keeper: bool = False,
    batting_order: Optional[int] = None,
    bowling_order: Optional[int] = None,
) -> MatchPlayer:
    """
    Add a roster member to one side's lineup.

    Raises:
        InvalidStateError: Match already finished
        InvalidReferenceError: Team not in the match, or user not on its roster
        ValidationError: User already in this match's lineups
    """
    try:
        async with atomic(db):
            match = await get_match(db, match_id)
            if MATCH_TRANSITIONS.is_terminal(match.status):
                raise InvalidStateError(
                    f"Cannot change lineups of a {match.status} match",
                    current_state=match.status,
                    action="add_player",
                )
            match_team = await get_match_team(db, match_id, team_id)

            result = await db.execute(
                select(TeamMember).where(
                    TeamMember.team_id == team_id,
                    TeamMember.user_id == user_id,
                    TeamMember.is_active.is_(True),
                )
            )
            if result.scalar_one_or_none() is None:
                raise InvalidReferenceError(f"User {user_id} is not on the roster of team {team_id}")

            player = MatchPlayer(
                match_id=match_id,
                match_team_id=match_team.id,
                team_id=team_id,
                user_id=user_id,
                is_playing_xi=is_playing_xi,
                is_substitute=is_substitute,
                is_captain=is_captain,
                is_wicket_keeper=is_wicket_keeper,
                batting_order=batting_order,
                bowling_order=bowling_order,
            )
            db.add(player)
            await db.flush()
    except IntegrityError:
        raise ValidationError(f"User {user_id} is already in a lineup for match {match_id}")

    logger.info(f"User {user_id} added to team {team_id} lineup for match {match_id}")
    return player

