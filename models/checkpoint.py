from sqlalchemy import Column, Integer, BigInteger, DateTime
from datetime import datetime
from models.base import Base

CHECKPOINT_ROW_ID = 1


class IndexerState(Base):
    """
    Single-row checkpoint for the polling loop.

    Purpose:
    - Resume indexing from the last fully committed block after restart

    Design:
    - Exactly one row, id = 1
    - last_processed_block is monotonically non-decreasing
    """
    __tablename__ = "indexer_state"

    id = Column(Integer, primary_key=True, autoincrement=False, default=CHECKPOINT_ROW_ID)
    last_processed_block = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
