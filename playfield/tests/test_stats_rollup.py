"""
Player stats tests

Per-match stats are recomputed from the ledger; careers are maintained
incrementally on match end and must always equal a full recompute.
"""
import pytest
from datetime import datetime, timedelta
from sqlalchemy import select, func

from playfield.config import FeatureFlags
from playfield.exceptions import NotFoundError
from playfield.orm import MatchStatus, PlayerMatchStat
from playfield.services import match_service, scoring_service, stats_service
from playfield.services.scoring_math import CareerTotals
from playfield.services.scoring_service import DeliveryInput

CAREER_COLUMNS = list(CareerTotals().as_columns())


def _snapshot(career) -> dict:
    return {column: getattr(career, column) for column in CAREER_COLUMNS}


async def play_match(db, world, runs, wicket_on_last=True):
    """Home bats one inning against away; returns the completed match."""
    match = await match_service.create_direct_match(
        db,
        created_by_user_id=world.home_captain.id,
        sport_id=world.sport.id,
        team1_id=world.home.id,
        team2_id=world.away.id,
        scheduled_at=datetime.utcnow() + timedelta(days=1),
    )
    await match_service.record_toss(db, match.id, world.home.id, "bat")
    await match_service.start_match(db, match.id)
    inning = await scoring_service.create_inning(db, match.id, world.home.id)

    for i, r in enumerate(runs):
        last = i == len(runs) - 1
        await scoring_service.record_delivery(db, inning.id, DeliveryInput(
            bowler_id=world.away_players[0].id,
            striker_id=world.home_players[0].id,
            non_striker_id=world.home_players[1].id,
            runs_scored=r,
            is_four=r == 4,
            is_six=r == 6,
            is_wicket=last and wicket_on_last,
            dismissal_type="caught" if last and wicket_on_last else None,
            fielder1_id=world.away_players[1].id if last and wicket_on_last else None,
        ))

    return await match_service.end_match(db, match.id, world.away.id)


async def _stat_rows(db, match_id: int) -> int:
    result = await db.execute(select(func.count(PlayerMatchStat.id)).where(PlayerMatchStat.match_id == match_id))
    return result.scalar_one()


# =============================================================================
# Per-match stats
# =============================================================================

class TestMatchStats:

    @pytest.mark.asyncio
    async def test_end_match_writes_player_stats(self, db, world):
        match = await play_match(db, world, [4, 6, 1, 0])

        stats = {s.user_id: s for s in await stats_service.get_player_match_stats(db, match.id)}

        batter = stats[world.home_players[0].id]
        assert (batter.runs_scored, batter.balls_faced, batter.fours, batter.sixes, batter.times_out) == (11, 4, 1, 1, 1)
        assert batter.team_id == world.home.id

        bowler = stats[world.away_players[0].id]
        assert (bowler.overs_bowled, bowler.runs_conceded, bowler.wickets_taken) == ("0.4", 11, 1)
        assert bowler.team_id == world.away.id

        assert stats[world.away_players[1].id].catches == 1
        assert stats[world.home_players[1].id].innings_batted == 1

    @pytest.mark.asyncio
    async def test_recompute_is_idempotent(self, db, world):
        match = await play_match(db, world, [1, 2, 3, 0])
        before = {s.user_id: (s.runs_scored, s.wickets_taken, s.economy) for s in await stats_service.get_player_match_stats(db, match.id)}

        await stats_service.recompute_match_stats(db, match.id)
        await stats_service.recompute_match_stats(db, match.id)

        after = {s.user_id: (s.runs_scored, s.wickets_taken, s.economy) for s in await stats_service.get_player_match_stats(db, match.id)}
        assert after == before
        assert await _stat_rows(db, match.id) == len(before)


# =============================================================================
# Careers
# =============================================================================

class TestCareerRollup:

    @pytest.mark.asyncio
    async def test_rollup_is_idempotent(self, db, world):
        match = await play_match(db, world, [4, 4, 0])
        career = await stats_service.get_career_stat(db, world.home_players[0].id)
        before = _snapshot(career)

        assert await stats_service.rollup_match_into_careers(db, match.id) == 0

        career = await stats_service.get_career_stat(db, world.home_players[0].id)
        assert _snapshot(career) == before
        assert career.matches == 1
        assert career.runs_scored == 8

    @pytest.mark.asyncio
    async def test_incremental_equals_recompute(self, db, world):
        await play_match(db, world, [4, 6, 1, 0])
        await play_match(db, world, [1, 1, 1], wicket_on_last=False)
        await play_match(db, world, [6, 6, 6, 6, 6, 6, 6, 6, 6, 0])

        for user in (world.home_players[0], world.away_players[0], world.away_players[1]):
            incremental = _snapshot(await stats_service.get_career_stat(db, user.id))
            recomputed = _snapshot(await stats_service.recompute_career_stat(db, user.id))
            assert incremental == recomputed

        opener = await stats_service.get_career_stat(db, world.home_players[0].id)
        assert opener.matches == 3
        assert opener.runs_scored == 11 + 3 + 54
        assert opener.not_outs == 1
        assert opener.highest_score == 54
        assert opener.fifties == 1

    @pytest.mark.asyncio
    async def test_deferred_rollup_catches_up(self, db, world, monkeypatch):
        monkeypatch.setattr(FeatureFlags, "FEATURE_CAREER_ROLLUP_ON_MATCH_END", False)
        await play_match(db, world, [2, 2, 0])

        with pytest.raises(NotFoundError):
            await stats_service.get_career_stat(db, world.home_players[0].id)

        assert await stats_service.rollup_pending_matches(db) == 1
        career = await stats_service.get_career_stat(db, world.home_players[0].id)
        assert career.runs_scored == 4
        assert await stats_service.rollup_pending_matches(db) == 0

    @pytest.mark.asyncio
    async def test_failed_stats_do_not_undo_match_end(self, db, world, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("stats store unavailable")

        monkeypatch.setattr(stats_service, "recompute_match_stats", broken)
        match = await play_match(db, world, [3, 0])
        monkeypatch.undo()

        assert match.status == MatchStatus.COMPLETED.value
        assert await _stat_rows(db, match.id) == 0

        assert await stats_service.rollup_pending_matches(db) == 1
        assert await _stat_rows(db, match.id) > 0
        career = await stats_service.get_career_stat(db, world.home_players[0].id)
        assert career.runs_scored == 3

    @pytest.mark.asyncio
    async def test_changed_match_row_refreshes_career(self, db, world):
        match = await play_match(db, world, [4, 4, 0])
        inning = (await scoring_service.list_innings(db, match.id))[0]
        # scorer corrects the ledger after the match: a dropped boundary becomes a six
        delivery = (await scoring_service.list_deliveries(db, inning.id))[0]
        delivery.runs_scored = 6
        delivery.is_four = False
        delivery.is_six = True
        await db.commit()

        await stats_service.recompute_match_stats(db, match.id)

        career = await stats_service.get_career_stat(db, world.home_players[0].id)
        assert career.runs_scored == 10
        assert career.matches == 1
