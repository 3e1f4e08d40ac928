"""Expiry sweep: expire every ACTIVE enrollment past its deadline.

Meant to run periodically (cron, Kubernetes CronJob). Each enrollment is
expired under its own distributed lock, so the sweep can overlap with live
traffic and with another sweep; expiring an enrollment twice is a no-op.

The sweep refuses to run without Redis: process-local locks cannot keep it
apart from API workers, and the process exits with status 1.

Usage:
    cd api && uv run python -m scripts.expire_enrollments
"""

import asyncio
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog
from redis.exceptions import RedisError

from src.config.settings import get_settings
from src.core.context import RequestContext
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.redis import init_redis, shutdown_redis
from src.progression.dependencies import create_progression_services


logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_REDIS_UNAVAILABLE = 1


async def run(redis_client) -> int:
    """Run one sweep with the given Redis client. Returns how many expired."""
    settings = get_settings()
    session = await init_async_cassandra()
    try:
        services = create_progression_services(session, settings, redis=redis_client)
        expired = await services.lifecycle.expire_overdue()
        logger.info("expiry_sweep_completed", expired=expired)
        return expired
    finally:
        await shutdown_async_cassandra()


async def main() -> int:
    """Connect to Redis, sweep, and return the process exit status."""
    with RequestContext(correlation_id="expiry-sweep"):
        try:
            redis_client = await init_redis()
        except (RedisError, OSError) as e:
            logger.error(
                "expiry_sweep_aborted", reason="redis_unavailable", error=str(e)
            )
            return EXIT_REDIS_UNAVAILABLE

        try:
            await run(redis_client)
        finally:
            await shutdown_redis()
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
