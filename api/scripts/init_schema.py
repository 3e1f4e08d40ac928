"""Create the keyspace and every table of the certification API.

Safe to re-run: all statements are IF NOT EXISTS.

Usage:
    cd api && uv run python -m scripts.init_schema
"""

import asyncio
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from src.config.settings import get_settings
from src.core.database import init_async_cassandra, shutdown_async_cassandra


logger = structlog.get_logger(__name__)


async def run() -> None:
    """Connect and create the schema."""
    settings = get_settings()
    logger.info(
        "schema_init_starting",
        keyspace=settings.cassandra_keyspace,
        hosts=settings.cassandra_hosts,
    )
    try:
        await init_async_cassandra()
        logger.info("schema_init_completed", keyspace=settings.cassandra_keyspace)
    finally:
        await shutdown_async_cassandra()


if __name__ == "__main__":
    asyncio.run(run())
