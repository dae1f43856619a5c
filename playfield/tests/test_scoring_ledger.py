"""
Scoring ledger tests

Covers:
- Totals and fall of wickets folded from the delivery ledger
- Over / ball numbering with wides and no-balls
- Rejected deliveries leave the ledger untouched
- Automatic inning completion
- Rebuild detecting and repairing drift
"""
import logging

import pytest
from datetime import datetime, timedelta
from sqlalchemy import select, func

from playfield.exceptions import (
    ValidationError, InvalidStateError, InvalidReferenceError, OrderingError
)
from playfield.orm import BallDelivery, InningStatus
from playfield.services import match_service, scoring_service
from playfield.services.scoring_service import DeliveryInput


def ball(world, striker=0, non_striker=1, bowler=0, **kwargs) -> DeliveryInput:
    return DeliveryInput(
        bowler_id=world.away_player_ids[bowler],
        striker_id=world.home_player_ids[striker],
        non_striker_id=world.home_player_ids[non_striker],
        **kwargs,
    )


async def _ledger_size(db, inning_id: int) -> int:
    result = await db.execute(select(func.count(BallDelivery.id)).where(BallDelivery.inning_id == inning_id))
    return result.scalar_one()


async def _over_of_runs(db, world, inning_id, runs=(1, 4, 0, 6, 1)):
    for r in runs:
        await scoring_service.record_delivery(
            db, inning_id, ball(world, runs_scored=r, is_four=r == 4, is_six=r == 6)
        )
    await scoring_service.record_delivery(
        db, inning_id, ball(world, is_wicket=True, dismissal_type="bowled")
    )


# =============================================================================
# Totals + fall of wickets
# =============================================================================

class TestLedgerFold:

    @pytest.mark.asyncio
    async def test_one_over_totals(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)

        await _over_of_runs(db, world, inning.id)

        inning = await scoring_service.get_inning(db, inning.id)
        assert inning.status == InningStatus.IN_PROGRESS.value
        assert inning.score == 12
        assert inning.wickets == 1
        assert inning.balls == 6
        assert inning.overs == "1.0"

        fow = await scoring_service.list_fall_of_wickets(db, inning.id)
        assert len(fow) == 1
        assert fow[0].wicket_number == 1
        assert fow[0].score_at_wicket == 12
        assert fow[0].overs_at_wicket == "1.0"
        assert fow[0].player_out_id == world.home_players[0].id

    @pytest.mark.asyncio
    async def test_extras_columns(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)

        await scoring_service.record_delivery(db, inning.id, ball(world, extra_type="wide", extra_runs=1))
        await scoring_service.record_delivery(db, inning.id, ball(world, extra_type="no_ball", extra_runs=1, runs_scored=4, is_four=True))
        await scoring_service.record_delivery(db, inning.id, ball(world, extra_type="leg_bye", extra_runs=2))

        inning = await scoring_service.get_inning(db, inning.id)
        assert inning.score == 8
        assert inning.balls == 1
        assert inning.wide_runs == 1
        assert inning.no_ball_runs == 1
        assert inning.leg_bye_runs == 2

    @pytest.mark.asyncio
    async def test_first_inning_starts_on_first_ball(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)
        assert inning.status == InningStatus.NOT_STARTED.value
        assert inning.bowling_team_id == world.away.id
        assert inning.max_wickets == 10

        await scoring_service.record_delivery(db, inning.id, ball(world))

        inning = await scoring_service.get_inning(db, inning.id)
        assert inning.status == InningStatus.IN_PROGRESS.value
        assert inning.started_at is not None


    @pytest.mark.asyncio
    async def test_fall_of_wickets_numbered_in_order_until_all_out(self, db, world, live_match):
        match_id, home_id = live_match.id, world.home_id
        captain_id = world.home_captain.id
        opener, partner, first_drop = world.home_player_ids
        for user_id in (captain_id, opener, partner, first_drop):
            await match_service.add_match_player(db, match_id, home_id, user_id)
        inning = await scoring_service.create_inning(db, match_id, home_id)
        inning_id = inning.id
        # four in the XI: the third wicket ends it
        assert inning.max_wickets == 3

        for striker_id in (opener, first_drop, captain_id):
            await scoring_service.record_delivery(db, inning_id, DeliveryInput(
                bowler_id=world.away_player_ids[0],
                striker_id=striker_id,
                non_striker_id=partner,
                runs_scored=0,
                is_wicket=True,
                dismissal_type="bowled",
            ))

        fow = await scoring_service.list_fall_of_wickets(db, inning_id)
        assert [(w.wicket_number, w.player_out_id, w.score_at_wicket, w.overs_at_wicket) for w in fow] == [
            (1, opener, 0, "0.1"),
            (2, first_drop, 0, "0.2"),
            (3, captain_id, 0, "0.3"),
        ]

        inning = await scoring_service.get_inning(db, inning_id)
        assert inning.wickets == 3
        assert inning.status == InningStatus.COMPLETED.value
        assert inning.ended_at is not None

    @pytest.mark.asyncio
    async def test_lone_batter_is_all_out_at_first_wicket(self, db, world, live_match):
        await match_service.add_match_player(db, live_match.id, world.home_id, world.home_player_ids[0])

        inning = await scoring_service.create_inning(db, live_match.id, world.home_id)

        assert inning.max_wickets == 1

    @pytest.mark.asyncio
    async def test_delivery_log_shows_overs_after_the_ball(self, db, world, live_match, caplog):
        inning = await scoring_service.create_inning(db, live_match.id, world.home_id)

        with caplog.at_level(logging.INFO, logger="playfield.services.scoring_service"):
            for _ in range(6):
                await scoring_service.record_delivery(db, inning.id, ball(world))

        lines = [r.getMessage() for r in caplog.records if "delivery #" in r.getMessage()]
        assert lines[-1].endswith("(over 1, ball 6): 0/0 in 1.0")
        assert lines[0].endswith("(over 1, ball 1): 0/0 in 0.1")

# =============================================================================
# Numbering
# =============================================================================

class TestNumbering:

    @pytest.mark.asyncio
    async def test_illegal_deliveries_repeat_ball_number(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)

        wide = await scoring_service.record_delivery(db, inning.id, ball(world, extra_type="wide", extra_runs=1))
        legal = await scoring_service.record_delivery(db, inning.id, ball(world))

        assert (wide.sequence_number, wide.over_number, wide.ball_number_in_over, wide.delivery_in_over) == (1, 1, 1, 1)
        assert (legal.sequence_number, legal.over_number, legal.ball_number_in_over, legal.delivery_in_over) == (2, 1, 1, 2)
        assert wide.is_legal_delivery is False
        assert legal.is_legal_delivery is True

    @pytest.mark.asyncio
    async def test_seventh_legal_ball_opens_next_over(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)
        for _ in range(6):
            await scoring_service.record_delivery(db, inning.id, ball(world))

        no_ball = await scoring_service.record_delivery(
            db, inning.id, ball(world, bowler=1, extra_type="no_ball", extra_runs=1)
        )

        assert (no_ball.over_number, no_ball.ball_number_in_over, no_ball.delivery_in_over) == (2, 1, 1)

    @pytest.mark.asyncio
    async def test_stale_sequence_number_rejected(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)
        inning_id = inning.id
        await scoring_service.record_delivery(db, inning_id, ball(world, sequence_number=1))

        with pytest.raises(OrderingError) as exc:
            await scoring_service.record_delivery(db, inning_id, ball(world, sequence_number=1))

        assert exc.value.details == {"expected": 2, "received": 1}
        assert await _ledger_size(db, inning_id) == 1

        inning = await scoring_service.get_inning(db, inning_id)
        await db.refresh(inning)
        assert inning.balls == 1


# =============================================================================
# Rejected deliveries
# =============================================================================

class TestRejectedDeliveries:

    @pytest.mark.asyncio
    async def test_wicket_without_dismissal_type(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)

        with pytest.raises(ValidationError):
            await scoring_service.record_delivery(db, inning.id, ball(world, is_wicket=True))

        assert await _ledger_size(db, inning.id) == 0

    @pytest.mark.asyncio
    async def test_four_must_score_four(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)

        with pytest.raises(ValidationError):
            await scoring_service.record_delivery(db, inning.id, ball(world, runs_scored=3, is_four=True))

    @pytest.mark.asyncio
    async def test_stumped_off_no_ball_not_allowed(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)

        with pytest.raises(ValidationError):
            await scoring_service.record_delivery(db, inning.id, ball(
                world, extra_type="no_ball", extra_runs=1, is_wicket=True,
                dismissal_type="stumped", fielder1_id=world.away_players[1].id,
            ))

    @pytest.mark.asyncio
    async def test_player_out_must_be_batting(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)

        with pytest.raises(InvalidReferenceError):
            await scoring_service.record_delivery(db, inning.id, ball(
                world, is_wicket=True, dismissal_type="run_out",
                player_out_id=world.home_players[2].id, fielder1_id=world.away_players[1].id,
            ))

    @pytest.mark.asyncio
    async def test_run_out_needs_a_fielder(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home_id)
        inning_id = inning.id

        with pytest.raises(ValidationError):
            await scoring_service.record_delivery(db, inning_id, ball(
                world, runs_scored=1, is_wicket=True, dismissal_type="run_out",
            ))

        assert await _ledger_size(db, inning_id) == 0

    @pytest.mark.asyncio
    async def test_dismissed_batter_cannot_bat_again(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)
        inning_id = inning.id
        await scoring_service.record_delivery(db, inning_id, ball(world, is_wicket=True, dismissal_type="lbw"))

        with pytest.raises(ValidationError):
            await scoring_service.record_delivery(db, inning_id, ball(world))

        await scoring_service.record_delivery(db, inning_id, ball(world, striker=2))
        assert await _ledger_size(db, inning_id) == 2

    @pytest.mark.asyncio
    async def test_bowler_must_be_in_bowling_lineup(self, db, world, live_match):
        await match_service.add_match_player(db, live_match.id, world.away.id, world.away_players[0].id)
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)

        with pytest.raises(InvalidReferenceError):
            await scoring_service.record_delivery(db, inning.id, ball(world, bowler=1))

    @pytest.mark.asyncio
    async def test_match_must_be_live(self, db, world):
        match = await match_service.create_direct_match(
            db,
            created_by_user_id=world.home_captain.id,
            sport_id=world.sport.id,
            team1_id=world.home.id,
            team2_id=world.away.id,
            scheduled_at=datetime.utcnow() + timedelta(days=1),
        )
        await match_service.record_toss(db, match.id, world.home.id, "bat")
        inning = await scoring_service.create_inning(db, match.id, world.home.id)
        inning_id = inning.id

        with pytest.raises(InvalidStateError):
            await scoring_service.record_delivery(db, inning_id, ball(world))

        inning = await scoring_service.get_inning(db, inning_id)
        await db.refresh(inning)
        assert inning.status == InningStatus.NOT_STARTED.value
        assert await _ledger_size(db, inning_id) == 0


# =============================================================================
# Inning completion
# =============================================================================

class TestInningCompletion:

    @pytest.mark.asyncio
    async def test_overs_limit_completes_inning(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id, max_overs=1)
        await _over_of_runs(db, world, inning.id)

        inning = await scoring_service.get_inning(db, inning.id)
        assert inning.status == InningStatus.COMPLETED.value

        with pytest.raises(InvalidStateError):
            await scoring_service.record_delivery(db, inning.id, ball(world, striker=2))

    @pytest.mark.asyncio
    async def test_second_inning_chases_target(self, db, world, live_match):
        first = await scoring_service.create_inning(db, live_match.id, world.home.id, max_overs=1)
        await _over_of_runs(db, world, first.id)

        second = await scoring_service.create_inning(db, live_match.id, world.away.id, max_overs=1)
        assert second.innings_number == 2
        assert second.bowling_team_id == world.home.id
        assert second.target_score == 13
        assert second.max_overs == 1

        chase = DeliveryInput(
            bowler_id=world.home_players[0].id,
            striker_id=world.away_players[0].id,
            non_striker_id=world.away_players[1].id,
            runs_scored=6,
            is_six=True,
        )
        await scoring_service.record_delivery(db, second.id, chase)
        await scoring_service.record_delivery(db, second.id, chase)
        second = await scoring_service.get_inning(db, second.id)
        assert second.status == InningStatus.IN_PROGRESS.value

        await scoring_service.record_delivery(db, second.id, chase)
        second = await scoring_service.get_inning(db, second.id)
        assert second.score == 18
        assert second.status == InningStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_next_inning_waits_for_previous(self, db, world, live_match):
        await scoring_service.create_inning(db, live_match.id, world.home.id)

        with pytest.raises(InvalidStateError):
            await scoring_service.create_inning(db, live_match.id, world.away.id)

    @pytest.mark.asyncio
    async def test_declared_inning_takes_no_more_balls(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)
        await scoring_service.record_delivery(db, inning.id, ball(world, runs_scored=2))

        inning = await scoring_service.declare_inning(db, inning.id)
        assert inning.status == InningStatus.DECLARED.value

        with pytest.raises(InvalidStateError):
            await scoring_service.record_delivery(db, inning.id, ball(world))


# =============================================================================
# Rebuild + scorecard
# =============================================================================

class TestRebuild:

    @pytest.mark.asyncio
    async def test_rebuild_of_consistent_inning_reports_no_drift(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)
        await _over_of_runs(db, world, inning.id)

        result = await scoring_service.rebuild_inning(db, inning.id)

        assert result.drift_detected is False
        assert result.changed_columns == []
        assert result.fall_of_wickets_rewritten is False

    @pytest.mark.asyncio
    async def test_rebuild_after_several_wickets_reports_no_drift(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home_id)
        inning_id = inning.id
        await scoring_service.record_delivery(db, inning_id, ball(world, runs_scored=3))
        await scoring_service.record_delivery(db, inning_id, ball(world, is_wicket=True, dismissal_type="bowled"))
        await scoring_service.record_delivery(db, inning_id, ball(
            world, striker=2, runs_scored=1, is_wicket=True, dismissal_type="run_out",
            player_out_id=world.home_player_ids[1], fielder1_id=world.away_player_ids[1],
        ))

        result = await scoring_service.rebuild_inning(db, inning_id)

        assert result.drift_detected is False
        assert result.fall_of_wickets_rewritten is False
        fow = await scoring_service.list_fall_of_wickets(db, inning_id)
        assert [(w.wicket_number, w.score_at_wicket, w.overs_at_wicket) for w in fow] == [
            (1, 3, "0.2"),
            (2, 4, "0.3"),
        ]

    @pytest.mark.asyncio
    async def test_rebuild_repairs_tampered_totals(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)
        await _over_of_runs(db, world, inning.id)
        inning.score = 99
        inning.wickets = 0
        await db.commit()

        result = await scoring_service.rebuild_inning(db, inning.id)

        assert result.drift_detected is True
        assert set(result.changed_columns) == {"score", "wickets"}
        inning = await scoring_service.get_inning(db, inning.id)
        assert inning.score == 12
        assert inning.wickets == 1

    @pytest.mark.asyncio
    async def test_scorecard_figures(self, db, world, live_match):
        inning = await scoring_service.create_inning(db, live_match.id, world.home.id)
        await _over_of_runs(db, world, inning.id)

        card = await scoring_service.get_scorecard(db, inning.id)

        opener = card.batting[world.home_players[0].id]
        assert (opener.runs, opener.balls_faced, opener.fours, opener.sixes, opener.times_out) == (12, 6, 1, 1, 1)
        assert opener.strike_rate == 200.0

        bowler = card.bowling[world.away_players[0].id]
        assert (bowler.overs, bowler.runs_conceded, bowler.wickets, bowler.maidens) == ("1.0", 12, 1, 0)
        assert bowler.economy == 12.0
        assert len(card.deliveries) == 6
