"""
playfield/rbac.py
Authentication and team authority checks.

Supplies the identity collaborator the services rely on:
- the authenticated user (JWT bearer token, `sub` = email)
- platform role checks (admin / scorer / player)
- "manages team X" and "is a member of team X" predicates
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.config import settings
from playfield.database import get_db
from playfield.errors import ErrorCode, error_body
from playfield.exceptions import ForbiddenError
from playfield.orm.match import MatchTeam
from playfield.orm.reference import Team, TeamMember, MANAGER_ROLES
from playfield.orm.user import User, UserRole
from playfield.services.parties import Party, TeamParty, UserParty

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

TOKEN_TYPE = "access"


# ================= PASSWORDS + TOKENS =================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(claims: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign `claims` as a short-lived access token."""
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {**claims, "exp": datetime.utcnow() + lifetime, "type": TOKEN_TYPE}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Claims of a valid, unexpired token; None otherwise."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


# ================= AUTH DEPENDENCIES =================

def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=error_body("Unauthorized", message, ErrorCode.AUTH_INVALID),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """The active user named by the bearer token's `sub` claim."""
    claims = decode_token(token)
    if not claims or claims.get("type") != TOKEN_TYPE or not claims.get("sub"):
        raise _unauthorized("Invalid or expired token")

    result = await db.execute(select(User).where(User.email == claims["sub"]))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise _unauthorized("Token does not belong to an active user")
    return user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for platform roles.

        current_user: User = Depends(require_role([UserRole.admin]))
    """
    allowed = {r.value for r in allowed_roles}

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            logger.warning(f"User {current_user.id} ({current_user.role}) denied; needs one of {sorted(allowed)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=error_body(
                    "Forbidden",
                    f"This action requires one of: {', '.join(sorted(allowed))}",
                    ErrorCode.PERMISSION_DENIED,
                    {"current_role": current_user.role},
                ),
            )
        return current_user

    return checker


# ================= TEAM AUTHORITY =================

async def is_team_manager(db: AsyncSession, team_id: int, user_id: int) -> bool:
    """Creator, captain, vice captain or moderator of the team."""
    team = await db.get(Team, team_id)
    if team is None:
        return False
    if team.created_by_user_id == user_id:
        return True
    result = await db.execute(
        select(TeamMember.id).where(
            TeamMember.team_id == team_id,
            TeamMember.user_id == user_id,
            TeamMember.is_active.is_(True),
            TeamMember.role.in_(MANAGER_ROLES),
        )
    )
    return result.first() is not None


async def is_team_member(db: AsyncSession, team_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(TeamMember.id).where(
            TeamMember.team_id == team_id,
            TeamMember.user_id == user_id,
            TeamMember.is_active.is_(True),
        )
    )
    return result.first() is not None


async def require_team_manager(db: AsyncSession, team_id: int, user: User) -> None:
    if user.role == UserRole.admin.value:
        return
    if not await is_team_manager(db, team_id, user.id):
        logger.warning(f"User {user.id} is not a manager of team {team_id}")
        raise ForbiddenError(f"You must be a manager of team {team_id}")


async def acting_party(db: AsyncSession, user: User, team_id: Optional[int] = None) -> Party:
    """
    The party a request acts for: a managed team when team_id is given,
    otherwise the user themself.
    """
    if team_id is None:
        return UserParty(user_id=user.id)
    await require_team_manager(db, team_id, user)
    return TeamParty(team_id=team_id)


async def require_match_authority(db: AsyncSession, match_id: int, user: User) -> None:
    """Admins and scorers run any match; otherwise the caller must manage one of its teams."""
    if user.role in (UserRole.admin.value, UserRole.scorer.value):
        return
    result = await db.execute(select(MatchTeam.team_id).where(MatchTeam.match_id == match_id))
    for (team_id,) in result.all():
        if await is_team_manager(db, team_id, user.id):
            return
    logger.warning(f"User {user.id} has no authority over match {match_id}")
    raise ForbiddenError(f"You must manage a team in match {match_id}")
