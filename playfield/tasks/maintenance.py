"""
playfield/tasks/maintenance.py
Periodic sweeps: challenge expiry and deferred career rollup.

Each cycle opens its own engine so the sweeps can also be run from a
cron job outside the API process.
"""

import logging
import asyncio

from playfield.database import build_engine, build_sessionmaker
from playfield.services.challenge_service import expire_challenges
from playfield.services.stats_service import rollup_pending_matches

logger = logging.getLogger(__name__)


async def run_challenge_expiry_once(database_url: str) -> int:
    """Expire every open or pending challenge past its deadline."""
    engine = build_engine(database_url)
    async_session = build_sessionmaker(engine)

    async with async_session() as db:
        try:
            count = await expire_challenges(db)
            logger.info(f"Challenge expiry completed: {count} challenges expired")
            return count
        except Exception as e:
            logger.error(f"Challenge expiry failed: {str(e)}")
            return 0
        finally:
            await engine.dispose()


async def run_stats_rollup_once(database_url: str, limit: int = 50) -> int:
    """Retry stats for completed matches whose rollup never finished."""
    engine = build_engine(database_url)
    async_session = build_sessionmaker(engine)

    async with async_session() as db:
        try:
            return await rollup_pending_matches(db, limit=limit)
        except Exception as e:
            logger.error(f"Stats rollup failed: {str(e)}")
            return 0
        finally:
            await engine.dispose()


async def challenge_expiry_loop(database_url: str, interval_seconds: int = 300):
    logger.info(f"Starting challenge expiry loop with interval {interval_seconds}s")

    while True:
        try:
            await run_challenge_expiry_once(database_url)
        except Exception as e:
            logger.error(f"Challenge expiry loop error: {str(e)}")

        await asyncio.sleep(interval_seconds)


async def stats_rollup_loop(database_url: str, interval_seconds: int = 600):
    logger.info(f"Starting stats rollup loop with interval {interval_seconds}s")

    while True:
        try:
            await run_stats_rollup_once(database_url)
        except Exception as e:
            logger.error(f"Stats rollup loop error: {str(e)}")

        await asyncio.sleep(interval_seconds)


def start_maintenance_tasks(database_url: str, expiry_interval: int = 300, rollup_interval: int = 600):
    """Start both sweeps as background coroutines; returns the tasks."""
    return [
        asyncio.create_task(challenge_expiry_loop(database_url, expiry_interval)),
        asyncio.create_task(stats_rollup_loop(database_url, rollup_interval)),
    ]


if __name__ == "__main__":
    from playfield.config import settings

    logging.basicConfig(level=logging.INFO)

    async def _main():
        await run_challenge_expiry_once(settings.database_url)
        await run_stats_rollup_once(settings.database_url)

    asyncio.run(_main())
