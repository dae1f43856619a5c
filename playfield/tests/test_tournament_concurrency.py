"""
Tournament capacity under concurrent registration.

Two sessions on a file-backed SQLite database race for the last slot;
exactly one may win and the counter must stay within capacity.
"""
import asyncio

import pytest
from sqlalchemy import select, func

from playfield.database import build_engine, build_sessionmaker
from playfield.exceptions import CapacityExceededError, ConcurrencyConflictError
from playfield.orm import Base, Tournament, TournamentTeam, UserRole, Sport
from playfield.services import tournament_service
from playfield.tests.factories import make_team, make_user


@pytest.fixture
async def file_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def race_setup(file_engine):
    """A tournament with one slot left and two teams wanting it."""
    async with build_sessionmaker(file_engine)() as db:
        admin = await make_user(db, "admin", UserRole.admin)
        sport = Sport(name="Cricket")
        db.add(sport)
        await db.flush()
        teams = []
        for name in ("First", "Second", "Third"):
            captain = await make_user(db, f"{name.lower()}cap")
            teams.append(await make_team(db, name, sport, captain, []))
        await db.commit()

        tournament = await tournament_service.create_tournament(db, "Race Cup", sport.id, admin.id, max_teams=2)
        await tournament_service.open_registration(db, tournament.id)
        await tournament_service.register_team(db, tournament.id, teams[0].id)
        return tournament.id, teams[1].id, teams[2].id


async def _register(engine, tournament_id: int, team_id: int):
    async with build_sessionmaker(engine)() as db:
        try:
            await tournament_service.register_team(db, tournament_id, team_id)
            return "registered"
        except CapacityExceededError:
            return "full"
        except ConcurrencyConflictError:
            return "conflict"


@pytest.mark.asyncio
async def test_last_slot_goes_to_exactly_one_team(file_engine, race_setup):
    tournament_id, second_id, third_id = race_setup

    outcomes = await asyncio.gather(
        _register(file_engine, tournament_id, second_id),
        _register(file_engine, tournament_id, third_id),
    )

    assert outcomes.count("registered") == 1
    assert sorted(outcomes) in (["full", "registered"], ["conflict", "registered"])

    async with build_sessionmaker(file_engine)() as db:
        tournament = await db.get(Tournament, tournament_id)
        rows = await db.execute(
            select(func.count(TournamentTeam.id)).where(TournamentTeam.tournament_id == tournament_id)
        )
        assert tournament.current_teams == 2
        assert rows.scalar_one() == 2
