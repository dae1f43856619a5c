"""
playfield/config/settings.py
Environment-backed settings.
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./playfield.db")
    jwt_secret_key: str = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = get_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 30)

    # Challenges
    challenge_default_ttl_hours: int = get_int_env("CHALLENGE_DEFAULT_TTL_HOURS", 72)
    challenge_expiry_interval_seconds: int = get_int_env("CHALLENGE_EXPIRY_INTERVAL_SECONDS", 300)

    # Scoring / stats
    default_max_wickets: int = get_int_env("DEFAULT_MAX_WICKETS", 10)
    stats_rollup_interval_seconds: int = get_int_env("STATS_ROLLUP_INTERVAL_SECONDS", 600)
    scoring_rate_limit: str = os.getenv("SCORING_RATE_LIMIT", "120/minute")


settings = Settings()
