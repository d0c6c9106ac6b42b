"""
Health check endpoint with database and indexer status
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db
from schemas.api import HealthResponse
from models.checkpoint import IndexerState, CHECKPOINT_ROW_ID
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Last block the indexer fully processed
    - Whether the in-process indexer task is running
    """
    db_connected = False
    last_processed_block = None

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True

        result = await db.execute(
            select(IndexerState.last_processed_block).where(IndexerState.id == CHECKPOINT_ROW_ID)
        )
        last_processed_block = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Health check database query failed: {type(e).__name__}")

    indexer = getattr(request.app.state, "indexer", None)

    return HealthResponse(
        status="healthy",  # validator downgrades when the database is unreachable
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        last_processed_block=last_processed_block,
        indexer_running=bool(indexer and indexer.running)
    )
