"""
Run the raffle indexer without the HTTP API
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.exceptions import FatalError
from core.logging import setup_logging
from indexer.service import IndexerService

logger = logging.getLogger(__name__)


async def run_indexer():
    service = IndexerService(settings)

    try:
        await service.start()
        # Returns only if the loop dies, e.g. a chain id mismatch found after an RPC outage
        await service.wait()
    except FatalError as e:
        logger.critical(f"Indexer cannot run: {e}", extra={"error_context": e.to_dict()})
        sys.exit(1)
    finally:
        await service.stop()


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(run_indexer())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
