from sqlalchemy import Column, String, BigInteger, Boolean, Integer, DateTime, ForeignKey, Index, UniqueConstraint
from datetime import datetime
from models.base import Base, BigIntPK, UInt256


class Purchase(Base):
    """
    One TicketsBought event: a contiguous range of ticket indexes.

    Immutable once inserted. (tx_hash, log_index) is the idempotency key.
    """
    __tablename__ = "purchases"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    raffle_id = Column(BigInteger, ForeignKey("raffles.raffle_id"), nullable=False, index=True)

    buyer = Column(String(42), nullable=False, index=True)
    start_index = Column(BigInteger, nullable=False)
    end_index = Column(BigInteger, nullable=False)
    count = Column(BigInteger, nullable=False)
    amount = Column(UInt256, nullable=False)
    # Recorded while the raffle was no longer ACTIVE
    out_of_order = Column(Boolean, nullable=False, default=False)

    # Log identity
    tx_hash = Column(String(66), nullable=False)
    log_index = Column(Integer, nullable=False)
    block_number = Column(BigInteger, nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_purchases_log"),
        Index("idx_purchases_range", "raffle_id", "start_index", "end_index"),
    )
