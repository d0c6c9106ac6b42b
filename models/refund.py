from sqlalchemy import Column, String, BigInteger, Integer, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime
from models.base import Base, BigIntPK, UInt256


class Refund(Base):
    """One RefundClaimed event. Immutable; keyed by (tx_hash, log_index)."""
    __tablename__ = "refunds"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    raffle_id = Column(BigInteger, ForeignKey("raffles.raffle_id"), nullable=False, index=True)

    buyer = Column(String(42), nullable=False, index=True)
    ticket_count = Column(BigInteger, nullable=True)
    amount = Column(UInt256, nullable=False)

    tx_hash = Column(String(66), nullable=False)
    log_index = Column(Integer, nullable=False)
    block_number = Column(BigInteger, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_refunds_log"),
    )
