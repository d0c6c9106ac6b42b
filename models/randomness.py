from sqlalchemy import Column, String, BigInteger, Integer, Text, DateTime, UniqueConstraint
from datetime import datetime
from models.base import Base, BigIntPK


class RandomnessRequest(Base):
    """RandomnessRequested emitted by the external randomness provider"""
    __tablename__ = "randomness_requests"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    request_id = Column(String(80), nullable=False, index=True)  # decimal text
    raffle_id = Column(BigInteger, nullable=True, index=True)  # NULL when it does not fit 64 bits
    raffle_address = Column(String(42), nullable=True)
    provider_address = Column(String(42), nullable=False)

    tx_hash = Column(String(66), nullable=False)
    log_index = Column(Integer, nullable=False)
    block_number = Column(BigInteger, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_randomness_requests_log"),
    )


class RandomnessFulfillment(Base):
    """RandomnessDelivered emitted by the external randomness provider"""
    __tablename__ = "randomness_fulfillments"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    request_id = Column(String(80), nullable=False, index=True)
    raffle_address = Column(String(42), nullable=True, index=True)
    provider_address = Column(String(42), nullable=False)
    randomness = Column(String(80), nullable=False)
    proof_data = Column(Text, nullable=True)

    tx_hash = Column(String(66), nullable=False)
    log_index = Column(Integer, nullable=False)
    block_number = Column(BigInteger, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_randomness_fulfillments_log"),
    )
