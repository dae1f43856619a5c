"""
playfield/services/lookups.py
Existence checks against aggregates and reference data.
"""
from typing import Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.exceptions import NotFoundError
from playfield.orm.base import BaseModel
from playfield.orm.reference import Sport, Team, Venue
from playfield.orm.user import User

ModelT = TypeVar("ModelT", bound=BaseModel)


async def get_or_404(
    db: AsyncSession,
    model: Type[ModelT],
    identifier: int,
    resource: str,
    for_update: bool = False,
) -> ModelT:
    """
    Load one row by primary key.

    Args:
        for_update: Take a row lock (SELECT ... FOR UPDATE) where the backend supports it

    Raises:
        NotFoundError: If no row has that id
    """
    stmt = select(model).where(model.id == identifier)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError(resource, identifier)
    return row


async def ensure_sport(db: AsyncSession, sport_id: int) -> Sport:
    return await get_or_404(db, Sport, sport_id, "Sport")


async def ensure_venue(db: AsyncSession, venue_id: int) -> Venue:
    venue = await get_or_404(db, Venue, venue_id, "Venue")
    if not venue.is_active:
        raise NotFoundError("Venue", venue_id)
    return venue


async def ensure_team(db: AsyncSession, team_id: int) -> Team:
    team = await get_or_404(db, Team, team_id, "Team")
    if not team.is_active:
        raise NotFoundError("Team", team_id)
    return team


async def ensure_user(db: AsyncSession, user_id: int) -> User:
    user = await get_or_404(db, User, user_id, "User")
    if not user.is_active:
        raise NotFoundError("User", user_id)
    return user
