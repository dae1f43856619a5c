"""
Stats Service

Derived player statistics.

PlayerMatchStat rows are recomputed from the delivery ledger;
PlayerOverallCricketStat rows are folds over a player's completed-match
PlayerMatchStat rows. Two paths maintain careers:

- rollup_match_into_careers: incremental, folds only match rows not yet
  rolled up and stamps them
- recompute_career_stat: refolds everything from zero

Both use CareerTotals.add, so they always agree. Nothing here is called
inside the delivery write path; failures are retried by the background
rollup task.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, exists, and_
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.database import atomic
from playfield.exceptions import NotFoundError
from playfield.orm.innings import BallDelivery, Inning
from playfield.orm.match import Match, MatchPlayer, MatchStatus
from playfield.orm.player_stats import PlayerMatchStat, PlayerOverallCricketStat
from playfield.services.lookups import get_or_404
from playfield.services.scoring_math import (
    CareerTotals, batting_figures, bowling_figures, fielding_figures, participants
)

logger = logging.getLogger(__name__)

# Columns of PlayerMatchStat derived from the ledger
_MATCH_STAT_COLUMNS = (
    "team_id",
    "innings_batted", "runs_scored", "balls_faced", "fours", "sixes", "times_out",
    "highest_score", "fifties", "hundreds", "strike_rate",
    "balls_bowled", "overs_bowled", "runs_conceded", "wickets_taken", "maidens",
    "wides_bowled", "no_balls_bowled", "economy",
    "catches", "stumpings", "run_outs",
)


def player_match_columns(deliveries: List[BallDelivery], user_id: int, team_id: Optional[int]) -> Dict[str, object]:
    """PlayerMatchStat values for one player, folded from the match ledger."""
    batting = batting_figures(deliveries, user_id)
    bowling = bowling_figures(deliveries, user_id)
    fielding = fielding_figures(deliveries, user_id)
    return {
        "team_id": team_id,
        "innings_batted": batting.innings_batted,
        "runs_scored": batting.runs,
        "balls_faced": batting.balls_faced,
        "fours": batting.fours,
        "sixes": batting.sixes,
        "times_out": batting.times_out,
        "highest_score": batting.highest_score,
        "fifties": batting.fifties,
        "hundreds": batting.hundreds,
        "strike_rate": batting.strike_rate,
        "balls_bowled": bowling.balls_bowled,
        "overs_bowled": bowling.overs,
        "runs_conceded": bowling.runs_conceded,
        "wickets_taken": bowling.wickets,
        "maidens": bowling.maidens,
        "wides_bowled": bowling.wides,
        "no_balls_bowled": bowling.no_balls,
        "economy": bowling.economy,
        "catches": fielding.catches,
        "stumpings": fielding.stumpings,
        "run_outs": fielding.run_outs,
    }


async def _match_ledger(db: AsyncSession, match_id: int) -> List[BallDelivery]:
    result = await db.execute(
        select(BallDelivery)
        .where(BallDelivery.match_id == match_id)
        .order_by(BallDelivery.inning_id, BallDelivery.sequence_number)
    )
    return list(result.scalars().all())


async def _team_of_players(db: AsyncSession, match_id: int, deliveries: List[BallDelivery]) -> Dict[int, int]:
    """Which team each participant played for: lineup first, then the ledger."""
    teams: Dict[int, int] = {}

    innings = await db.execute(select(Inning).where(Inning.match_id == match_id))
    sides = {i.id: (i.batting_team_id, i.bowling_team_id) for i in innings.scalars().all()}
    for d in deliveries:
        batting_team, bowling_team = sides[d.inning_id]
        teams.setdefault(d.striker_id, batting_team)
        teams.setdefault(d.non_striker_id, batting_team)
        teams.setdefault(d.bowler_id, bowling_team)

    lineup = await db.execute(
        select(MatchPlayer.user_id, MatchPlayer.team_id).where(MatchPlayer.match_id == match_id)
    )
    for user_id, team_id in lineup.all():
        teams[user_id] = team_id
    return teams


async def _upsert_match_stat(
    db: AsyncSession,
    match_id: int,
    user_id: int,
    columns: Dict[str, object],
) -> Tuple[PlayerMatchStat, bool]:
    """Write one PlayerMatchStat row; returns (row, changed_after_rollup)."""
    result = await db.execute(
        select(PlayerMatchStat).where(
            PlayerMatchStat.match_id == match_id,
            PlayerMatchStat.user_id == user_id,
        )
    )
    stat = result.scalar_one_or_none()
    if stat is None:
        stat = PlayerMatchStat(match_id=match_id, user_id=user_id, **columns)
        db.add(stat)
        return stat, False

    changed = any(getattr(stat, column) != columns[column] for column in _MATCH_STAT_COLUMNS)
    for column, value in columns.items():
        setattr(stat, column, value)
    return stat, changed and stat.rolled_up_at is not None


# =============================================================================
# Per-match stats
# =============================================================================

async def recompute_player_match_stat(db: AsyncSession, match_id: int, user_id: int) -> PlayerMatchStat:
    """
    Recompute one player's stats for one match from the ledger.

    Idempotent: running it twice writes identical values.
    """
    async with atomic(db):
        await get_or_404(db, Match, match_id, "Match")
        deliveries = await _match_ledger(db, match_id)
        teams = await _team_of_players(db, match_id, deliveries)
        stat, stale_career = await _upsert_match_stat(
            db, match_id, user_id, player_match_columns(deliveries, user_id, teams.get(user_id))
        )
        await db.flush()

    if stale_career:
        await recompute_career_stat(db, user_id)
    return stat


async def recompute_match_stats(db: AsyncSession, match_id: int) -> List[PlayerMatchStat]:
    """
    Recompute PlayerMatchStat for everyone who took part in a match.

    A player whose already rolled-up row changed gets a full career
    recompute, so careers never keep a stale contribution.
    """
    stale_careers = []
    async with atomic(db):
        await get_or_404(db, Match, match_id, "Match")
        deliveries = await _match_ledger(db, match_id)
        teams = await _team_of_players(db, match_id, deliveries)

        stats = []
        for user_id in sorted(participants(deliveries) | set(teams)):
            stat, stale = await _upsert_match_stat(
                db, match_id, user_id, player_match_columns(deliveries, user_id, teams.get(user_id))
            )
            stats.append(stat)
            if stale:
                stale_careers.append(user_id)
        await db.flush()

    logger.info(f"Recomputed stats for {len(stats)} players in match {match_id}")

    for user_id in stale_careers:
        await recompute_career_stat(db, user_id)
    return stats


async def get_player_match_stats(db: AsyncSession, match_id: int) -> List[PlayerMatchStat]:
    result = await db.execute(
        select(PlayerMatchStat)
        .where(PlayerMatchStat.match_id == match_id)
        .order_by(PlayerMatchStat.team_id, PlayerMatchStat.user_id)
    )
    return list(result.scalars().all())


# =============================================================================
# Career stats
# =============================================================================

def _completed_match_rows(user_id: Optional[int] = None, match_id: Optional[int] = None):
    stmt = (
        select(PlayerMatchStat)
        .join(Match, Match.id == PlayerMatchStat.match_id)
        .where(
            Match.status == MatchStatus.COMPLETED.value,
            Match.deleted_at.is_(None),
        )
    )
    if user_id is not None:
        stmt = stmt.where(PlayerMatchStat.user_id == user_id)
    if match_id is not None:
        stmt = stmt.where(PlayerMatchStat.match_id == match_id)
    return stmt.order_by(PlayerMatchStat.match_id)


async def _career_row(db: AsyncSession, user_id: int) -> Optional[PlayerOverallCricketStat]:
    result = await db.execute(
        select(PlayerOverallCricketStat)
        .where(PlayerOverallCricketStat.user_id == user_id)
        .with_for_update()
    )
    return result.scalar_one_or_none()


def _write_career(career: PlayerOverallCricketStat, totals: CareerTotals) -> None:
    for column, value in totals.as_columns().items():
        setattr(career, column, value)


async def recompute_career_stat(
    db: AsyncSession,
    user_id: int,
    now: Optional[datetime] = None,
) -> PlayerOverallCricketStat:
    """
    Refold a player's career from all of their completed-match rows.

    Every folded row is stamped as rolled up, so a later incremental
    rollup does not count it again.
    """
    now = now or datetime.utcnow()

    async with atomic(db):
        result = await db.execute(_completed_match_rows(user_id=user_id))
        rows = list(result.scalars().all())

        totals = CareerTotals()
        for row in rows:
            totals.add(row)
            row.rolled_up_at = now

        career = await _career_row(db, user_id)
        if career is None:
            career = PlayerOverallCricketStat(user_id=user_id)
            db.add(career)
        _write_career(career, totals)
        career.last_recomputed_at = now
        await db.flush()

    logger.info(f"Career stats recomputed for user {user_id}: {totals.matches} matches")
    return career


async def rollup_match_into_careers(
    db: AsyncSession,
    match_id: int,
    now: Optional[datetime] = None,
) -> int:
    """
    Fold a completed match's not-yet-rolled-up rows into careers.

    Returns:
        Number of player rows folded (0 when nothing was pending)
    """
    now = now or datetime.utcnow()

    async with atomic(db):
        result = await db.execute(
            _completed_match_rows(match_id=match_id).where(PlayerMatchStat.rolled_up_at.is_(None))
        )
        rows = list(result.scalars().all())

        for row in rows:
            career = await _career_row(db, row.user_id)
            if career is None:
                career = PlayerOverallCricketStat(user_id=row.user_id)
                db.add(career)
                totals = CareerTotals()
            else:
                totals = CareerTotals.from_career(career)
            totals.add(row)
            _write_career(career, totals)
            row.rolled_up_at = now
            await db.flush()

    if rows:
        logger.info(f"Rolled match {match_id} into {len(rows)} careers")
    return len(rows)


async def rollup_pending_matches(db: AsyncSession, limit: int = 50) -> int:
    """
    Retry path for the background task.

    Recomputes stats for completed matches that never got them, then rolls
    every completed match with pending rows into careers. One failing
    match does not stop the batch.

    Returns:
        Number of matches processed without error
    """
    missing_stats = await db.execute(
        select(Match.id)
        .where(
            Match.status == MatchStatus.COMPLETED.value,
            Match.deleted_at.is_(None),
            exists().where(BallDelivery.match_id == Match.id),
            ~exists().where(PlayerMatchStat.match_id == Match.id),
        )
        .order_by(Match.id)
        .limit(limit)
    )
    unrolled = await db.execute(
        select(PlayerMatchStat.match_id)
        .join(Match, and_(Match.id == PlayerMatchStat.match_id, Match.status == MatchStatus.COMPLETED.value))
        .where(PlayerMatchStat.rolled_up_at.is_(None))
        .distinct()
        .order_by(PlayerMatchStat.match_id)
        .limit(limit)
    )
    needs_stats = [row[0] for row in missing_stats.all()]
    match_ids = sorted(set(needs_stats) | {row[0] for row in unrolled.all()})
    # release the read transaction before per-match writes
    await db.commit()

    processed = 0
    for match_id in match_ids:
        try:
            if match_id in needs_stats:
                await recompute_match_stats(db, match_id)
            await rollup_match_into_careers(db, match_id)
            processed += 1
        except Exception as e:
            logger.error(f"Deferred stats rollup for match {match_id} failed: {e}", exc_info=True)

    if match_ids:
        logger.info(f"Deferred stats rollup: {processed}/{len(match_ids)} matches processed")
    return processed


async def get_career_stat(db: AsyncSession, user_id: int) -> PlayerOverallCricketStat:
    result = await db.execute(
        select(PlayerOverallCricketStat).where(PlayerOverallCricketStat.user_id == user_id)
    )
    career = result.scalar_one_or_none()
    if career is None:
        raise NotFoundError("Career stats for user", user_id)
    return career
