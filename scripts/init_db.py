import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import build_engine, build_session_maker
from core.logging import setup_logging
from indexer.checkpoint import CheckpointStore
from models import Base  # registers every model on Base.metadata

logger = logging.getLogger(__name__)


async def init_database():
    logger.info(f"Connecting to {settings.redacted_database_url()}")
    engine = build_engine(settings.DATABASE_URL)

    try:
        async with engine.begin() as conn:
            logger.info("Creating tables...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Tables created successfully.")

        async with build_session_maker(engine)() as session:
            last_block = await CheckpointStore(session).get_last_processed_block()
            logger.info(f"Checkpoint row ready at block {last_block}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
