"""
Tournament Service

Tournament setup, edits, soft delete and capacity-bounded team registration.

Register is one transaction:
1. Read the tournament with SELECT ... FOR UPDATE
2. Check status, deadline, capacity and duplicates
3. Claim a slot with a conditional UPDATE
   (current_teams = current_teams + 1 WHERE current_teams < max_teams)
4. Insert the TournamentTeam row

Step 3 is the guard that holds even where row locks are ignored
(SQLite): two racing registrations cannot both claim the last slot, and
the loser sees rowcount 0. current_teams and the TournamentTeam rows are
only ever changed together.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.database import atomic
from playfield.exceptions import (
    ValidationError, InvalidStateError, NotFoundError, NotOpenError, DeadlineExpiredError,
    CapacityExceededError, AlreadyRegisteredError, ConcurrencyConflictError
)
from playfield.orm.tournament import Tournament, TournamentTeam, TournamentStatus, TournamentFormat
from playfield.services.lookups import ensure_sport, ensure_team, ensure_user, get_or_404

logger = logging.getLogger(__name__)


# =============================================================================
# Setup
# =============================================================================

async def create_tournament(
    db: AsyncSession,
    name: str,
    sport_id: int,
    created_by_user_id: int,
    max_teams: int = 0,
    registration_deadline: Optional[datetime] = None,
    format=TournamentFormat.KNOCKOUT,
    description: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    entry_fee: Optional[Decimal] = None,
    prize_pool: Optional[Decimal] = None,
) -> Tournament:
    """
    Create a tournament in draft.

    Args:
        max_teams: Capacity; 0 means uncapped

    Raises:
        ValidationError: Negative capacity, bad format or inverted dates
    """
    if not name or not name.strip():
        raise ValidationError("Tournament name is required")
    if max_teams < 0:
        raise ValidationError("max_teams cannot be negative")
    try:
        tournament_format = TournamentFormat(format)
    except ValueError:
        raise ValidationError(f"Unknown tournament format: {format}")
    if start_date and end_date and end_date < start_date:
        raise ValidationError("Tournament cannot end before it starts")
    if registration_deadline and start_date and registration_deadline > start_date:
        raise ValidationError("Registration must close before the tournament starts")

    async with atomic(db):
        await ensure_sport(db, sport_id)
        await ensure_user(db, created_by_user_id)
        tournament = Tournament(
            name=name.strip(),
            description=description,
            sport_id=sport_id,
            created_by_user_id=created_by_user_id,
            format=tournament_format.value,
            start_date=start_date,
            end_date=end_date,
            registration_deadline=registration_deadline,
            max_teams=max_teams,
            current_teams=0,
            entry_fee=entry_fee,
            prize_pool=prize_pool,
            status=TournamentStatus.DRAFT.value,
        )
        db.add(tournament)
        await db.flush()

    logger.info(f"Tournament {tournament.id} created: {tournament.name} (max_teams={max_teams})")
    return tournament


async def _set_status(db: AsyncSession, tournament_id: int, allowed_from: tuple, target: TournamentStatus, action: str) -> Tournament:
    async with atomic(db):
        tournament = await get_tournament(db, tournament_id, for_update=True)
        if tournament.status not in [s.value for s in allowed_from]:
            logger.warning(f"Rejected tournament {tournament_id} {action} from {tournament.status}")
            raise InvalidStateError(
                f"Cannot {action} tournament in {tournament.status} status",
                current_state=tournament.status,
                action=action,
            )
        tournament.status = target.value

    logger.info(f"Tournament {tournament_id} -> {target.value}")
    return tournament


async def open_registration(db: AsyncSession, tournament_id: int) -> Tournament:
    return await _set_status(
        db, tournament_id,
        (TournamentStatus.DRAFT, TournamentStatus.REGISTRATION_CLOSED),
        TournamentStatus.REGISTRATION_OPEN,
        "open_registration",
    )


async def close_registration(db: AsyncSession, tournament_id: int) -> Tournament:
    return await _set_status(
        db, tournament_id,
        (TournamentStatus.REGISTRATION_OPEN,),
        TournamentStatus.REGISTRATION_CLOSED,
        "close_registration",
    )


# =============================================================================
# Registration
# =============================================================================

async def register_team(
    db: AsyncSession,
    tournament_id: int,
    team_id: int,
    now: Optional[datetime] = None,
) -> TournamentTeam:
    """
    Register a team into a tournament.

    Raises:
        NotOpenError: Tournament is not registration_open
        DeadlineExpiredError: now is past the registration deadline
        CapacityExceededError: No slot left (including losing the last slot to a concurrent registration)
        AlreadyRegisteredError: Team already registered
        ConcurrencyConflictError: Lost a lock race at the database; safe to retry
    """
    now = now or datetime.utcnow()

    try:
        async with atomic(db):
            tournament = await get_tournament(db, tournament_id, for_update=True)

            if tournament.status != TournamentStatus.REGISTRATION_OPEN.value:
                raise NotOpenError(
                    f"Tournament {tournament_id} is not open for registration ({tournament.status})"
                )
            if tournament.registration_deadline is not None and now > tournament.registration_deadline:
                raise DeadlineExpiredError(
                    f"Registration for tournament {tournament_id} closed at "
                    f"{tournament.registration_deadline.isoformat()}"
                )
            if tournament.max_teams and tournament.current_teams >= tournament.max_teams:
                raise CapacityExceededError(
                    f"Tournament {tournament_id} is full ({tournament.current_teams}/{tournament.max_teams})"
                )

            existing = await db.execute(
                select(TournamentTeam.id).where(
                    TournamentTeam.tournament_id == tournament_id,
                    TournamentTeam.team_id == team_id,
                )
            )
            if existing.first() is not None:
                raise AlreadyRegisteredError(f"Team {team_id} is already registered for tournament {tournament_id}")
            await ensure_team(db, team_id)

            claimed = await db.execute(
                update(Tournament)
                .where(
                    Tournament.id == tournament_id,
                    or_(Tournament.max_teams == 0, Tournament.current_teams < Tournament.max_teams),
                )
                .values(current_teams=Tournament.current_teams + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                raise CapacityExceededError(f"Tournament {tournament_id} filled up during registration")

            registration = TournamentTeam(
                tournament_id=tournament_id,
                team_id=team_id,
                registered_at=now,
                status="approved",
            )
            db.add(registration)
            await db.flush()
            await db.refresh(tournament)
    except IntegrityError:
        raise AlreadyRegisteredError(f"Team {team_id} is already registered for tournament {tournament_id}")
    except OperationalError as e:
        logger.warning(f"Registration of team {team_id} in tournament {tournament_id} hit lock contention: {e}")
        raise ConcurrencyConflictError(f"Tournament {tournament_id} is busy; retry the registration")

    logger.info(
        f"Team {team_id} registered for tournament {tournament_id} "
        f"({tournament.current_teams}/{tournament.max_teams or 'uncapped'})"
    )
    return registration


async def unregister_team(db: AsyncSession, tournament_id: int, team_id: int) -> Tournament:
    """
    Withdraw a team; the counter is decremented only while positive.

    Raises:
        NotOpenError: Registration is no longer open
        NotFoundError: Team is not registered
    """
    try:
        async with atomic(db):
            tournament = await get_tournament(db, tournament_id, for_update=True)
            if tournament.status != TournamentStatus.REGISTRATION_OPEN.value:
                raise NotOpenError(
                    f"Tournament {tournament_id} registrations are frozen ({tournament.status})"
                )

            result = await db.execute(
                select(TournamentTeam).where(
                    TournamentTeam.tournament_id == tournament_id,
                    TournamentTeam.team_id == team_id,
                )
            )
            registration = result.scalar_one_or_none()
            if registration is None:
                raise NotFoundError("Registration for team", team_id)

            await db.execute(
                update(Tournament)
                .where(Tournament.id == tournament_id, Tournament.current_teams > 0)
                .values(current_teams=Tournament.current_teams - 1)
                .execution_options(synchronize_session=False)
            )
            await db.delete(registration)
            await db.flush()
            await db.refresh(tournament)
    except OperationalError as e:
        logger.warning(f"Unregistration of team {team_id} in tournament {tournament_id} hit lock contention: {e}")
        raise ConcurrencyConflictError(f"Tournament {tournament_id} is busy; retry")

    logger.info(f"Team {team_id} withdrew from tournament {tournament_id}")
    return tournament


async def count_registered_teams(db: AsyncSession, tournament_id: int) -> int:
    result = await db.execute(
        select(func.count(TournamentTeam.id)).where(TournamentTeam.tournament_id == tournament_id)
    )
    return result.scalar_one()


async def list_registrations(db: AsyncSession, tournament_id: int) -> List[TournamentTeam]:
    result = await db.execute(
        select(TournamentTeam)
        .where(TournamentTeam.tournament_id == tournament_id)
        .order_by(TournamentTeam.registered_at, TournamentTeam.id)
    )
    return list(result.scalars().all())


async def get_tournament(db: AsyncSession, tournament_id: int, for_update: bool = False) -> Tournament:
    """Load a tournament that has not been soft-deleted."""
    tournament = await get_or_404(db, Tournament, tournament_id, "Tournament", for_update=for_update)
    if tournament.deleted_at is not None:
        raise NotFoundError("Tournament", tournament_id)
    return tournament


# =============================================================================
# Edit / Delete
# =============================================================================

EDITABLE_TOURNAMENT_FIELDS = (
    "name", "description", "format", "start_date", "end_date",
    "registration_deadline", "max_teams", "entry_fee", "prize_pool",
)

_EDITABLE_TOURNAMENT_STATUSES = (
    TournamentStatus.DRAFT.value,
    TournamentStatus.REGISTRATION_OPEN.value,
)


async def update_tournament(db: AsyncSession, tournament_id: int, **changes) -> Tournament:
    """
    Edit a tournament while it is in draft or open for registration.

    Status moves only through open/close registration; current_teams is
    owned by the registration path. Dates are checked after the edit is
    applied, so a partial edit cannot leave them inverted.

    Args:
        changes: Any of EDITABLE_TOURNAMENT_FIELDS

    Raises:
        InvalidStateError: Registration closed, or the tournament has begun or ended
        ValidationError: Unknown field, bad format, inverted dates, or a
            capacity below the teams already registered
    """
    unknown = set(changes) - set(EDITABLE_TOURNAMENT_FIELDS)
    if unknown:
        raise ValidationError(f"Tournament fields cannot be edited: {', '.join(sorted(unknown))}")
    if "name" in changes:
        if not changes["name"] or not changes["name"].strip():
            raise ValidationError("Tournament name is required")
        changes["name"] = changes["name"].strip()
    if "format" in changes:
        try:
            changes["format"] = TournamentFormat(changes["format"]).value
        except ValueError:
            raise ValidationError(f"Unknown tournament format: {changes['format']}")
    if changes.get("max_teams") is not None and changes["max_teams"] < 0:
        raise ValidationError("max_teams cannot be negative")

    async with atomic(db):
        tournament = await get_tournament(db, tournament_id, for_update=True)
        if tournament.status not in _EDITABLE_TOURNAMENT_STATUSES:
            raise InvalidStateError(
                f"Cannot edit tournament in {tournament.status} status",
                current_state=tournament.status,
                action="update",
            )

        max_teams = changes.get("max_teams", tournament.max_teams)
        if max_teams and max_teams < tournament.current_teams:
            raise ValidationError(
                f"Tournament {tournament_id} already has {tournament.current_teams} teams; "
                f"max_teams cannot drop to {max_teams}"
            )
        start_date = changes.get("start_date", tournament.start_date)
        end_date = changes.get("end_date", tournament.end_date)
        deadline = changes.get("registration_deadline", tournament.registration_deadline)
        if start_date and end_date and end_date < start_date:
            raise ValidationError("Tournament cannot end before it starts")
        if deadline and start_date and deadline > start_date:
            raise ValidationError("Registration must close before the tournament starts")

        for field, value in changes.items():
            setattr(tournament, field, value)

    logger.info(f"Tournament {tournament_id} edited: {sorted(changes)}")
    return tournament


async def delete_tournament(db: AsyncSession, tournament_id: int, now: Optional[datetime] = None) -> Tournament:
    """
    Soft-delete a tournament that is not ongoing or completed.

    The tournament is cancelled and stamped deleted_at; registrations are
    kept for the record but no lookup returns the tournament again.

    Raises:
        InvalidStateError: Tournament is ongoing or completed
    """
    now = now or datetime.utcnow()

    async with atomic(db):
        tournament = await get_tournament(db, tournament_id, for_update=True)
        if tournament.status in (TournamentStatus.ONGOING.value, TournamentStatus.COMPLETED.value):
            raise InvalidStateError(
                f"Cannot delete tournament in {tournament.status} status",
                current_state=tournament.status,
                action="delete",
            )
        tournament.status = TournamentStatus.CANCELLED.value
        tournament.deleted_at = now

    logger.info(f"Tournament {tournament_id} deleted")
    return tournament
