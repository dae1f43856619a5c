"""
playfield/routes/auth.py
Token issuing for the scoring API.

Accounts are provisioned by the identity collaborator; this router only
exchanges credentials for a bearer token and reports who the token
belongs to.
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from playfield.database import get_db
from playfield.errors import APIError, ErrorCode
from playfield.limiter import limiter
from playfield.orm.user import User
from playfield.rbac import create_access_token, get_current_user, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

BCRYPT_MAX_BYTES = 72


class UserLogin(BaseModel):
    email: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: int


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str
    role: str

    class Config:
        from_attributes = True


def _bcrypt_input(password: str) -> str:
    # bcrypt ignores everything past 72 bytes; cut on a character boundary
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore")


async def _check_password(plain: str, hashed: str) -> bool:
    # bcrypt is CPU bound; keep it off the event loop
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, verify_password, _bcrypt_input(plain), hashed)


@router.post("/login", response_model=Token)
@limiter.limit("30/minute")
async def login(
    request: Request,
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
):
    """Exchange email and password for an access token."""
    email = credentials.email.strip().lower()
    if not email or not credentials.password:
        raise APIError(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Bad Request",
            message="Email and password are both required",
            code=ErrorCode.INVALID_INPUT,
        )

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active or not await _check_password(credentials.password, user.hashed_password):
        logger.warning(f"Failed login for {email}")
        raise APIError(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="Unauthorized",
            message="Invalid email or password",
            code=ErrorCode.AUTH_INVALID,
        )

    token = create_access_token({"sub": user.email, "user_id": user.id, "role": user.role})
    logger.info(f"User {user.id} logged in")
    return Token(access_token=token, role=user.role, user_id=user.id)


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    return current_user
