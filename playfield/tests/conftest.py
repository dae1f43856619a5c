"""
Shared fixtures: an in-memory SQLite database per test and a small
cricket world (sport, venue, two teams with rosters, an admin).
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from playfield.database import build_sessionmaker
from playfield.orm import Base, UserRole, Sport, Venue
from playfield.services import match_service
from playfield.tests.factories import World, make_team, make_user


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine) -> AsyncSession:
    async with build_sessionmaker(engine)() as session:
        yield session


@pytest.fixture
async def world(db: AsyncSession) -> World:
    admin = await make_user(db, "admin", UserRole.admin)
    sport = Sport(name="Cricket", is_team_sport=True, players_per_side=11)
    venue = Venue(name="Oval Ground", city="Pune")
    db.add_all([sport, venue])
    await db.flush()

    home_captain = await make_user(db, "homecap")
    away_captain = await make_user(db, "awaycap")
    home_players = [await make_user(db, f"home{i}") for i in range(1, 4)]
    away_players = [await make_user(db, f"away{i}") for i in range(1, 4)]

    home = await make_team(db, "Home XI", sport, home_captain, home_players)
    away = await make_team(db, "Away XI", sport, away_captain, away_players)
    await db.commit()

    return World(
        admin=admin,
        sport=sport,
        venue=venue,
        home_captain=home_captain,
        away_captain=away_captain,
        home=home,
        away=away,
        home_players=home_players,
        away_players=away_players,
    )


@pytest.fixture
async def live_match(db: AsyncSession, world: World):
    """A live match between home and away; home won the toss and bats."""
    match = await match_service.create_direct_match(
        db,
        created_by_user_id=world.home_captain.id,
        sport_id=world.sport.id,
        team1_id=world.home.id,
        team2_id=world.away.id,
        scheduled_at=datetime.utcnow() + timedelta(days=1),
        venue_id=world.venue.id,
    )
    await match_service.record_toss(db, match.id, world.home.id, "bat")
    await match_service.start_match(db, match.id)
    return match
