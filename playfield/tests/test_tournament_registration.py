"""
Tournament registration tests

current_teams must always equal the number of registrations and never
exceed max_teams.
"""
import pytest
from datetime import datetime, timedelta

from playfield.exceptions import (
    ValidationError, InvalidStateError, NotFoundError, NotOpenError,
    DeadlineExpiredError, CapacityExceededError, AlreadyRegisteredError
)
from playfield.orm import TournamentStatus
from playfield.services import tournament_service
from playfield.tests.factories import make_team, make_user


async def _open_tournament(db, world, max_teams=2, **kwargs):
    tournament = await tournament_service.create_tournament(
        db, "Monsoon Cup", world.sport.id, world.admin.id, max_teams=max_teams, **kwargs
    )
    return await tournament_service.open_registration(db, tournament.id)


async def _extra_team(db, world, name: str):
    captain = await make_user(db, f"{name.lower()}cap")
    team = await make_team(db, name, world.sport, captain, [])
    await db.commit()
    return team


class TestSetup:

    @pytest.mark.asyncio
    async def test_created_in_draft(self, db, world):
        tournament = await tournament_service.create_tournament(db, "Cup", world.sport.id, world.admin.id)

        assert tournament.status == TournamentStatus.DRAFT.value
        assert tournament.current_teams == 0
        assert tournament.max_teams == 0

    @pytest.mark.asyncio
    async def test_negative_capacity_rejected(self, db, world):
        with pytest.raises(ValidationError):
            await tournament_service.create_tournament(db, "Cup", world.sport.id, world.admin.id, max_teams=-1)

    @pytest.mark.asyncio
    async def test_registration_can_be_reopened(self, db, world):
        tournament = await _open_tournament(db, world)

        tournament = await tournament_service.close_registration(db, tournament.id)
        assert tournament.status == TournamentStatus.REGISTRATION_CLOSED.value

        tournament = await tournament_service.open_registration(db, tournament.id)
        assert tournament.status == TournamentStatus.REGISTRATION_OPEN.value

    @pytest.mark.asyncio
    async def test_closing_a_draft_fails(self, db, world):
        tournament = await tournament_service.create_tournament(db, "Cup", world.sport.id, world.admin.id)

        with pytest.raises(InvalidStateError):
            await tournament_service.close_registration(db, tournament.id)


class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_until_full(self, db, world):
        tournament = await _open_tournament(db, world, max_teams=2)
        third = await _extra_team(db, world, "Third")
        tournament_id, third_id = tournament.id, third.id

        await tournament_service.register_team(db, tournament_id, world.home_id)
        await tournament_service.register_team(db, tournament_id, world.away_id)

        with pytest.raises(CapacityExceededError):
            await tournament_service.register_team(db, tournament_id, third_id)

        tournament = await tournament_service.get_tournament(db, tournament_id)
        await db.refresh(tournament)
        assert tournament.current_teams == 2
        assert await tournament_service.count_registered_teams(db, tournament_id) == 2

    @pytest.mark.asyncio
    async def test_uncapped_tournament(self, db, world):
        tournament = await _open_tournament(db, world, max_teams=0)

        await tournament_service.register_team(db, tournament.id, world.home.id)
        await tournament_service.register_team(db, tournament.id, world.away.id)

        tournament = await tournament_service.get_tournament(db, tournament.id)
        assert tournament.current_teams == 2

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, db, world):
        tournament = await _open_tournament(db, world)
        tournament_id = tournament.id
        await tournament_service.register_team(db, tournament_id, world.home_id)

        with pytest.raises(AlreadyRegisteredError):
            await tournament_service.register_team(db, tournament_id, world.home_id)

        assert await tournament_service.count_registered_teams(db, tournament_id) == 1
        tournament = await tournament_service.get_tournament(db, tournament_id)
        await db.refresh(tournament)
        assert tournament.current_teams == 1

    @pytest.mark.asyncio
    async def test_registration_needs_open_tournament(self, db, world):
        tournament = await tournament_service.create_tournament(db, "Cup", world.sport.id, world.admin.id)

        with pytest.raises(NotOpenError):
            await tournament_service.register_team(db, tournament.id, world.home.id)

    @pytest.mark.asyncio
    async def test_registration_after_deadline(self, db, world):
        deadline = datetime.utcnow() + timedelta(days=1)
        tournament = await _open_tournament(db, world, registration_deadline=deadline)

        with pytest.raises(DeadlineExpiredError):
            await tournament_service.register_team(
                db, tournament.id, world.home.id, now=deadline + timedelta(minutes=1)
            )

    @pytest.mark.asyncio
    async def test_unknown_team(self, db, world):
        tournament = await _open_tournament(db, world)
        tournament_id = tournament.id

        with pytest.raises(NotFoundError):
            await tournament_service.register_team(db, tournament_id, 9999)

        tournament = await tournament_service.get_tournament(db, tournament_id)
        await db.refresh(tournament)
        assert tournament.current_teams == 0


class TestUnregister:

    @pytest.mark.asyncio
    async def test_unregister_frees_slot(self, db, world):
        tournament = await _open_tournament(db, world, max_teams=2)
        third = await _extra_team(db, world, "Third")
        await tournament_service.register_team(db, tournament.id, world.home.id)
        await tournament_service.register_team(db, tournament.id, world.away.id)

        tournament = await tournament_service.unregister_team(db, tournament.id, world.home.id)
        assert tournament.current_teams == 1

        await tournament_service.register_team(db, tournament.id, third.id)
        registered = [r.team_id for r in await tournament_service.list_registrations(db, tournament.id)]
        assert sorted(registered) == sorted([world.away.id, third.id])

    @pytest.mark.asyncio
    async def test_unregister_unknown_registration(self, db, world):
        tournament = await _open_tournament(db, world)

        with pytest.raises(NotFoundError):
            await tournament_service.unregister_team(db, tournament.id, world.home.id)

    @pytest.mark.asyncio
    async def test_unregister_after_close(self, db, world):
        tournament = await _open_tournament(db, world)
        await tournament_service.register_team(db, tournament.id, world.home.id)
        await tournament_service.close_registration(db, tournament.id)

        with pytest.raises(NotOpenError):
            await tournament_service.unregister_team(db, tournament.id, world.home.id)


class TestEditAndDelete:

    @pytest.mark.asyncio
    async def test_edit_draft(self, db, world):
        tournament = await tournament_service.create_tournament(db, "Cup", world.sport.id, world.admin.id)

        tournament = await tournament_service.update_tournament(
            db, tournament.id, name="  Monsoon Cup  ", format="league", max_teams=8
        )

        assert tournament.name == "Monsoon Cup"
        assert tournament.format == "league"
        assert tournament.max_teams == 8
        assert tournament.status == TournamentStatus.DRAFT.value

    @pytest.mark.asyncio
    async def test_capacity_cannot_drop_below_registered(self, db, world):
        tournament = await _open_tournament(db, world, max_teams=4)
        tournament_id = tournament.id
        await tournament_service.register_team(db, tournament_id, world.home_id)
        await tournament_service.register_team(db, tournament_id, world.away_id)

        with pytest.raises(ValidationError):
            await tournament_service.update_tournament(db, tournament_id, max_teams=1)

        tournament = await tournament_service.update_tournament(db, tournament_id, max_teams=2)
        assert tournament.max_teams == 2
        assert tournament.current_teams == 2

    @pytest.mark.asyncio
    async def test_closed_registration_freezes_details(self, db, world):
        tournament = await _open_tournament(db, world)
        tournament_id = tournament.id
        await tournament_service.close_registration(db, tournament_id)

        with pytest.raises(InvalidStateError):
            await tournament_service.update_tournament(db, tournament_id, name="Renamed")

    @pytest.mark.asyncio
    async def test_edit_cannot_invert_dates(self, db, world):
        start = datetime.utcnow() + timedelta(days=10)
        tournament = await tournament_service.create_tournament(
            db, "Cup", world.sport.id, world.admin.id, start_date=start
        )

        with pytest.raises(ValidationError):
            await tournament_service.update_tournament(
                db, tournament.id, registration_deadline=start + timedelta(days=1)
            )

    @pytest.mark.asyncio
    async def test_delete_cancels_and_hides(self, db, world):
        tournament = await _open_tournament(db, world)
        tournament_id = tournament.id
        await tournament_service.register_team(db, tournament_id, world.home_id)

        tournament = await tournament_service.delete_tournament(db, tournament_id)
        assert tournament.status == TournamentStatus.CANCELLED.value
        assert tournament.deleted_at is not None

        with pytest.raises(NotFoundError):
            await tournament_service.get_tournament(db, tournament_id)
        with pytest.raises(NotFoundError):
            await tournament_service.register_team(db, tournament_id, world.away_id)
        assert await tournament_service.count_registered_teams(db, tournament_id) == 1

    @pytest.mark.asyncio
    async def test_ongoing_tournament_cannot_be_deleted(self, db, world):
        tournament = await tournament_service.create_tournament(db, "Cup", world.sport.id, world.admin.id)
        tournament_id = tournament.id
        tournament.status = TournamentStatus.ONGOING.value
        await db.commit()

        with pytest.raises(InvalidStateError):
            await tournament_service.delete_tournament(db, tournament_id)

        tournament = await tournament_service.get_tournament(db, tournament_id)
        await db.refresh(tournament)
        assert tournament.deleted_at is None
