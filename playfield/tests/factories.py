"""
Row factories shared by the test modules.
"""
from dataclasses import dataclass, field
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from playfield.orm import User, UserRole, Sport, Venue, Team, TeamMember, TeamMemberRole
from playfield.rbac import hash_password

PASSWORD = "secret"
_PASSWORD_HASH = hash_password(PASSWORD)


async def make_user(db: AsyncSession, name: str, role: UserRole = UserRole.player) -> User:
    user = User(
        email=f"{name}@playfield.test",
        full_name=name.title(),
        hashed_password=_PASSWORD_HASH,
        role=role.value,
    )
    db.add(user)
    await db.flush()
    return user


async def make_team(db: AsyncSession, name: str, sport: Sport, captain: User, players: List[User]) -> Team:
    team = Team(name=name, sport_id=sport.id, created_by_user_id=captain.id)
    db.add(team)
    await db.flush()
    db.add(TeamMember(team_id=team.id, user_id=captain.id, role=TeamMemberRole.CAPTAIN.value))
    for player in players:
        db.add(TeamMember(team_id=team.id, user_id=player.id, role=TeamMemberRole.MEMBER.value))
    await db.flush()
    return team


@dataclass
class World:
    """
    The shared cricket world. Plain ids are copied at construction: a
    rolled-back service call expires every loaded instance, and reading an
    expired attribute outside the session's greenlet fails.
    """
    admin: User
    sport: Sport
    venue: Venue
    home_captain: User
    away_captain: User
    home: Team
    away: Team
    home_players: List[User] = field(default_factory=list)
    away_players: List[User] = field(default_factory=list)

    def __post_init__(self):
        self.admin_id = self.admin.id
        self.sport_id = self.sport.id
        self.home_id = self.home.id
        self.away_id = self.away.id
        self.home_player_ids = [p.id for p in self.home_players]
        self.away_player_ids = [p.id for p in self.away_players]
