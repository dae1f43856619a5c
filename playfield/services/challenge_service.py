"""
Challenge Service

Lifecycle of a proposed match between two teams or two players:
- Create open / direct challenges
- Edit terms while unanswered (sender side only)
- Accept (atomically schedules the Match and its MatchTeam rows)
- Reject / cancel
- Expiry sweep

Rules:
- Every status change goes through CHALLENGE_TRANSITIONS
- Accept is all-or-nothing: challenge update, Match insert and MatchTeam
  inserts commit together or not at all
- The expiry sweep is a single conditional UPDATE and is idempotent
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.config import settings
from playfield.database import atomic
from playfield.exceptions import (
    ValidationError, InvalidReferenceError, InvalidStateError, ForbiddenError
)
from playfield.orm.challenge import Challenge, ChallengeType, ChallengeStatus
from playfield.orm.match import Match, MatchTeam, MatchStatus
from playfield.services.lookups import (
    get_or_404, ensure_sport, ensure_venue, ensure_team, ensure_user
)
from playfield.services.parties import (
    Party, TeamParty, UserParty, sender_of, receiver_of, set_sender, set_receiver
)
from playfield.state_machines import CHALLENGE_TRANSITIONS, ChallengeAction

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def _coerce_type(challenge_type) -> ChallengeType:
    try:
        return ChallengeType(challenge_type)
    except ValueError:
        raise ValidationError(f"Unknown challenge type: {challenge_type}")


def _check_party_kind(challenge_type: ChallengeType, party: Party, role: str) -> None:
    expected = TeamParty if challenge_type.is_team else UserParty
    if not isinstance(party, expected):
        raise ValidationError(
            f"{challenge_type.value} challenge needs a {expected.kind} {role}, got {party.kind}"
        )


async def _ensure_party(db: AsyncSession, party: Party) -> None:
    if isinstance(party, TeamParty):
        await ensure_team(db, party.team_id)
    else:
        await ensure_user(db, party.user_id)


async def _schedule_match(db: AsyncSession, challenge: Challenge, acceptor: Party) -> Match:
    """Create the Match an accepted challenge turns into, plus its sides."""
    match = Match(
        sport_id=challenge.sport_id,
        venue_id=challenge.venue_id,
        created_by_user_id=challenge.created_by_user_id,
        challenge_id=challenge.id,
        title=challenge.title,
        description=challenge.description,
        scheduled_at=challenge.proposed_at,
        status=MatchStatus.UPCOMING.value,
        entry_fee=challenge.entry_fee,
        prize_description=challenge.prize_description,
        custom_rules=challenge.custom_rules,
        skill_level=challenge.skill_level,
    )
    db.add(match)
    await db.flush()

    if challenge.type.is_team:
        sender = sender_of(challenge)
        db.add(MatchTeam(match_id=match.id, team_id=sender.team_id, side=1))
        db.add(MatchTeam(match_id=match.id, team_id=acceptor.team_id, side=2))
        await db.flush()

    return match


# =============================================================================
# Create
# =============================================================================

async def create_challenge(
    db: AsyncSession,
    challenge_type,
    sender: Party,
    receiver: Optional[Party],
    created_by_user_id: int,
    sport_id: int,
    proposed_at: datetime,
    venue_id: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    entry_fee: Optional[Decimal] = None,
    prize_description: Optional[str] = None,
    custom_rules: Optional[str] = None,
    skill_level: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Challenge:
    """
    Create a challenge.

    Open challenges start `open` with no receiver; direct challenges start
    `pending` addressed to one receiver of the same kind as the sender.

    Raises:
        ValidationError: Inconsistent type / sender / receiver, or bad dates
        NotFoundError: Sport, venue, team or user does not exist
    """
    now = now or datetime.utcnow()
    ctype = _coerce_type(challenge_type)

    _check_party_kind(ctype, sender, "sender")
    if ctype.is_open:
        if receiver is not None:
            raise ValidationError(f"{ctype.value} challenge cannot name a receiver")
    else:
        if receiver is None:
            raise ValidationError(f"{ctype.value} challenge needs a receiver")
        _check_party_kind(ctype, receiver, "receiver")
        if receiver == sender:
            raise ValidationError("A challenge cannot be sent to its own sender")

    if proposed_at <= now:
        raise ValidationError("Proposed match time must be in the future")
    if expires_at is None:
        expires_at = min(now + timedelta(hours=settings.challenge_default_ttl_hours), proposed_at)
    if expires_at <= now:
        raise ValidationError("Challenge expiry must be in the future")
    if expires_at > proposed_at:
        raise ValidationError("Challenge cannot expire after the proposed match time")
    if entry_fee is not None and entry_fee < 0:
        raise ValidationError("Entry fee cannot be negative")

    async with atomic(db):
        await ensure_sport(db, sport_id)
        if venue_id is not None:
            await ensure_venue(db, venue_id)
        await ensure_user(db, created_by_user_id)
        await _ensure_party(db, sender)
        if receiver is not None:
            await _ensure_party(db, receiver)

        challenge = Challenge(
            challenge_type=ctype.value,
            status=(ChallengeStatus.OPEN if ctype.is_open else ChallengeStatus.PENDING).value,
            title=title,
            description=description,
            created_by_user_id=created_by_user_id,
            sport_id=sport_id,
            venue_id=venue_id,
            proposed_at=proposed_at,
            expires_at=expires_at,
            entry_fee=entry_fee,
            prize_description=prize_description,
            custom_rules=custom_rules,
            skill_level=skill_level,
        )
        set_sender(challenge, sender)
        set_receiver(challenge, receiver)
        db.add(challenge)
        await db.flush()

    logger.info(f"Challenge {challenge.id} created: {ctype.value} by user {created_by_user_id}")
    return challenge


# =============================================================================
# Accept / Reject / Cancel
# =============================================================================

async def accept_challenge(
    db: AsyncSession,
    challenge_id: int,
    acting_party: Party,
    now: Optional[datetime] = None,
) -> Match:
    """
    Accept a challenge and schedule its match.

    For open challenges the acceptor becomes the receiver. The status
    change, the new Match, its MatchTeam rows and the challenge link are
    written in one transaction.

    Returns:
        The created Match (status `upcoming`)

    Raises:
        InvalidStateError: Challenge not open/pending, or past its expiry
        ValidationError: Acceptor is the wrong kind of party, or the sender
        InvalidReferenceError: Acceptor is not the receiver of a direct challenge
    """
    now = now or datetime.utcnow()

    async with atomic(db):
        challenge = await get_or_404(db, Challenge, challenge_id, "Challenge", for_update=True)
        target = CHALLENGE_TRANSITIONS.resolve(challenge.status, ChallengeAction.ACCEPT)

        if challenge.expires_at <= now:
            raise InvalidStateError(
                f"Challenge {challenge_id} expired at {challenge.expires_at.isoformat()}",
                current_state=challenge.status,
                action=ChallengeAction.ACCEPT.value,
            )

        ctype = challenge.type
        _check_party_kind(ctype, acting_party, "acceptor")
        if acting_party == sender_of(challenge):
            raise ValidationError("A challenge cannot be accepted by its sender")
        if not ctype.is_open and acting_party != receiver_of(challenge):
            raise InvalidReferenceError(
                f"Challenge {challenge_id} is addressed to another {acting_party.kind}"
            )
        await _ensure_party(db, acting_party)

        challenge.status = target.value
        challenge.accepted_at = now
        if ctype.is_open:
            set_receiver(challenge, acting_party)

        match = await _schedule_match(db, challenge, acting_party)
        challenge.scheduled_match_id = match.id

    logger.info(f"Challenge {challenge_id} accepted by {acting_party}: match {match.id} scheduled")
    return match


async def reject_challenge(db: AsyncSession, challenge_id: int, acting_party: Party) -> Challenge:
    """
    Reject a challenge. Only its designated receiver may reject.

    Raises:
        InvalidStateError: Challenge not open/pending
        ValidationError: Rejector is the wrong kind of party
        InvalidReferenceError: Rejector is not the receiver
    """
    async with atomic(db):
        challenge = await get_or_404(db, Challenge, challenge_id, "Challenge", for_update=True)
        target = CHALLENGE_TRANSITIONS.resolve(challenge.status, ChallengeAction.REJECT)

        _check_party_kind(challenge.type, acting_party, "rejector")
        receiver = receiver_of(challenge)
        if receiver is None:
            raise InvalidReferenceError(f"Challenge {challenge_id} has no designated receiver")
        if receiver != acting_party:
            raise InvalidReferenceError(
                f"Challenge {challenge_id} is addressed to another {acting_party.kind}"
            )

        challenge.status = target.value

    logger.info(f"Challenge {challenge_id} rejected by {acting_party}")
    return challenge


async def cancel_challenge(db: AsyncSession, challenge_id: int, acting_party: Party) -> Challenge:
    """
    Withdraw a challenge. Only the sender side may cancel.

    Raises:
        InvalidStateError: Challenge not open/pending
        ForbiddenError: Acting party is not the sender
    """
    async with atomic(db):
        challenge = await get_or_404(db, Challenge, challenge_id, "Challenge", for_update=True)
        target = CHALLENGE_TRANSITIONS.resolve(challenge.status, ChallengeAction.CANCEL)

        if sender_of(challenge) != acting_party:
            raise ForbiddenError(f"Only the sender may cancel challenge {challenge_id}")

        challenge.status = target.value

    logger.info(f"Challenge {challenge_id} cancelled by {acting_party}")
    return challenge


# =============================================================================
# Edit
# =============================================================================

EDITABLE_CHALLENGE_FIELDS = (
    "title", "description", "venue_id", "proposed_at", "expires_at",
    "entry_fee", "prize_description", "custom_rules", "skill_level",
)


async def update_challenge(
    db: AsyncSession,
    challenge_id: int,
    acting_party: Party,
    now: Optional[datetime] = None,
    **changes,
) -> Challenge:
    """
    Edit the terms of a challenge that nobody has answered yet.

    Only the sender side may edit, and only while the challenge is
    `open` or `pending`. Keys left out of `changes` are untouched; the
    resulting proposed time and expiry obey the same rules as on create.

    Args:
        changes: Any of EDITABLE_CHALLENGE_FIELDS

    Raises:
        InvalidStateError: Challenge already answered, cancelled or expired
        ForbiddenError: Acting party is not the sender
        ValidationError: Unknown field, or bad dates / fee
        NotFoundError: New venue does not exist
    """
    now = now or datetime.utcnow()
    unknown = set(changes) - set(EDITABLE_CHALLENGE_FIELDS)
    if unknown:
        raise ValidationError(f"Challenge fields cannot be edited: {', '.join(sorted(unknown))}")
    for required in ("proposed_at", "expires_at"):
        if required in changes and changes[required] is None:
            raise ValidationError(f"{required} cannot be cleared")

    async with atomic(db):
        challenge = await get_or_404(db, Challenge, challenge_id, "Challenge", for_update=True)
        if challenge.status not in (ChallengeStatus.OPEN.value, ChallengeStatus.PENDING.value):
            raise InvalidStateError(
                f"Challenge {challenge_id} can no longer be edited",
                current_state=challenge.status,
                action="update",
            )
        if sender_of(challenge) != acting_party:
            raise ForbiddenError(f"Only the sender may edit challenge {challenge_id}")

        proposed_at = changes.get("proposed_at", challenge.proposed_at)
        expires_at = changes.get("expires_at", challenge.expires_at)
        if "proposed_at" in changes and proposed_at <= now:
            raise ValidationError("Proposed match time must be in the future")
        if "expires_at" in changes and expires_at <= now:
            raise ValidationError("Challenge expiry must be in the future")
        if expires_at > proposed_at:
            raise ValidationError("Challenge cannot expire after the proposed match time")
        entry_fee = changes.get("entry_fee")
        if entry_fee is not None and entry_fee < 0:
            raise ValidationError("Entry fee cannot be negative")
        if changes.get("venue_id") is not None:
            await ensure_venue(db, changes["venue_id"])

        for field, value in changes.items():
            setattr(challenge, field, value)
        challenge.updated_at = now

    logger.info(f"Challenge {challenge_id} edited by {acting_party}: {sorted(changes)}")
    return challenge


# =============================================================================
# Expiry sweep
# =============================================================================

async def expire_challenges(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Move every open/pending challenge at or past its expiry to `expired`,
    the same boundary accept_challenge refuses at.

    Idempotent: a second run finds nothing left to expire.

    Returns:
        Number of challenges expired
    """
    now = now or datetime.utcnow()
    expirable = [s.value for s in CHALLENGE_TRANSITIONS.states_accepting(ChallengeAction.EXPIRE)]

    async with atomic(db):
        result = await db.execute(
            update(Challenge)
            .where(
                Challenge.status.in_(expirable),
                Challenge.expires_at <= now,
            )
            .values(status=ChallengeStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount

    if count:
        logger.info(f"Expired {count} challenges")
    return count


# =============================================================================
# Queries
# =============================================================================

async def get_challenge(db: AsyncSession, challenge_id: int) -> Challenge:
    return await get_or_404(db, Challenge, challenge_id, "Challenge")


async def list_challenges(
    db: AsyncSession,
    status: Optional[str] = None,
    team_id: Optional[int] = None,
    user_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Challenge]:
    """List challenges, newest first, optionally filtered by status or participant."""
    stmt = select(Challenge)
    if status is not None:
        stmt = stmt.where(Challenge.status == ChallengeStatus(status).value)
    if team_id is not None:
        stmt = stmt.where(or_(
            Challenge.sender_team_id == team_id,
            Challenge.receiver_team_id == team_id,
        ))
    if user_id is not None:
        stmt = stmt.where(or_(
            Challenge.sender_user_id == user_id,
            Challenge.receiver_user_id == user_id,
            Challenge.created_by_user_id == user_id,
        ))
    stmt = stmt.order_by(Challenge.created_at.desc(), Challenge.id.desc()).limit(limit).offset(offset)

    result = await db.execute(stmt)
    return list(result.scalars().all())
