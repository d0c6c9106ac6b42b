"""
Checkpoint store: the single indexer_state row
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import CheckpointError
from indexer.loaders.projection_loader import insert_ignore
from models.checkpoint import IndexerState, CHECKPOINT_ROW_ID

logger = logging.getLogger(__name__)


class CheckpointStore:
    """
    Reads and advances last_processed_block.

    The row is created at 0 on first read. Writes never move it backwards.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_last_processed_block(self) -> int:
        try:
            result = await self.db.execute(
                select(IndexerState.last_processed_block).where(IndexerState.id == CHECKPOINT_ROW_ID)
            )
            value = result.scalar_one_or_none()

            if value is None:
                logger.info("No checkpoint row found, creating it at block 0")
                await insert_ignore(
                    self.db,
                    IndexerState,
                    {"id": CHECKPOINT_ROW_ID, "last_processed_block": 0, "updated_at": datetime.utcnow()},
                    index_elements=["id"]
                )
                value = 0

            await self.db.commit()
            return value

        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to read checkpoint",
                context={"operation": "read"},
                original_exception=e
            )

    async def set_last_processed_block(self, block: int) -> None:
        try:
            result = await self.db.execute(
                update(IndexerState)
                .where(
                    IndexerState.id == CHECKPOINT_ROW_ID,
                    IndexerState.last_processed_block <= block
                )
                .values(last_processed_block=block, updated_at=datetime.utcnow())
            )

            if result.rowcount == 0:
                current = await self.db.execute(
                    select(IndexerState.last_processed_block).where(IndexerState.id == CHECKPOINT_ROW_ID)
                )
                current_block = current.scalar_one_or_none()
                if current_block is None:
                    await insert_ignore(
                        self.db,
                        IndexerState,
                        {"id": CHECKPOINT_ROW_ID, "last_processed_block": block, "updated_at": datetime.utcnow()},
                        index_elements=["id"]
                    )
                else:
                    logger.warning(
                        f"Checkpoint not moved backwards: stored={current_block}, requested={block}"
                    )

            await self.db.commit()
            logger.debug(f"Checkpoint advanced to block {block}")

        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to write checkpoint",
                context={"operation": "write", "block": block},
                original_exception=e
            )
