from sqlalchemy import Column, String, BigInteger, Integer, Text, DateTime, JSON, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from models.base import Base, BigIntPK


class RawEvent(Base):
    """
    Verbatim copy of every recognized log.

    Purpose:
    - Write-once audit trail independent of projection logic
    - Replay and debugging

    Design Decisions:
    - (tx_hash, log_index) unique, so redelivered logs are detected here first
    - JSONB topics on PostgreSQL, plain JSON elsewhere
    """
    __tablename__ = "events_raw"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    address = Column(String(42), nullable=False, index=True)
    event_name = Column(String(64), nullable=False, index=True)
    topic0 = Column(String(66), nullable=False)
    topics = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    data = Column(Text, nullable=False)

    tx_hash = Column(String(66), nullable=False)
    log_index = Column(Integer, nullable=False)
    block_number = Column(BigInteger, nullable=False)

    ingested_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_events_raw_log"),
        Index("idx_events_raw_block", "block_number", "log_index"),
    )
