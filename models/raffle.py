from sqlalchemy import Column, String, BigInteger, Enum, Text, DateTime, Index
from datetime import datetime
from models.base import Base, RaffleStatus, UInt256


class Raffle(Base):
    """
    Projected state of one raffle contract.

    Creation terms are written once by RaffleCreated. Status, totals and the
    randomness/settlement columns are mutated by later raffle-scoped events.
    Rows are never deleted.
    """
    __tablename__ = "raffles"

    raffle_id = Column(BigInteger, primary_key=True, autoincrement=False)
    raffle_address = Column(String(42), nullable=False, unique=True, index=True)

    # Creation terms (immutable)
    creator = Column(String(42), nullable=False, index=True)
    end_time = Column(DateTime, nullable=True)
    ticket_price = Column(UInt256, nullable=False)
    max_tickets = Column(BigInteger, nullable=False)
    fee_bps = Column(BigInteger, nullable=False)
    fee_recipient = Column(String(42), nullable=False)
    created_tx = Column(String(66), nullable=True)
    created_block = Column(BigInteger, nullable=True)

    # Projection
    status = Column(Enum(RaffleStatus, name="raffle_status"), nullable=False, default=RaffleStatus.ACTIVE, index=True)
    total_tickets = Column(BigInteger, nullable=False, default=0)
    pot = Column(UInt256, nullable=False, default=0)

    # Randomness and settlement
    request_id = Column(String(80), nullable=True)  # decimal text
    request_tx = Column(String(66), nullable=True)
    randomness = Column(String(80), nullable=True)  # decimal text
    randomness_tx = Column(String(66), nullable=True)
    randomness_total_tickets = Column(BigInteger, nullable=True)  # divisor snapshot at fulfillment
    winning_index = Column(BigInteger, nullable=True)
    winner = Column(String(42), nullable=True)
    finalized_tx = Column(String(66), nullable=True)

    # External randomness provider
    provider_request_id = Column(String(80), nullable=True)
    provider_request_tx = Column(String(66), nullable=True)
    provider_fulfill_tx = Column(String(66), nullable=True)
    proof_data = Column(Text, nullable=True)  # 0x-prefixed hex

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_raffles_status_id", "status", "raffle_id"),
    )

    def __repr__(self):
        return f"<Raffle(raffle_id={self.raffle_id}, status={self.status}, total_tickets={self.total_tickets})>"
