"""
SQLAlchemy ORM models for the projected raffle store.

Models:
    base: Declarative base, RaffleStatus enum and the UInt256 column type
    raffle: Raffle projection (status, totals, randomness and settlement)
    purchase: Ticket purchase ranges
    refund: Refund claims
    randomness: Provider-side randomness requests and fulfillments
    raw_event: Archive of every recognized log
    checkpoint: Single-row indexer checkpoint

Database Schema:
    Every log-derived table is unique on (tx_hash, log_index), which makes
    redelivery of a log a no-op. Amounts use UInt256 and never lose precision.

Usage:
    from models import Raffle, Purchase, IndexerState
    from models.base import RaffleStatus
"""

from models.base import Base, RaffleStatus, UInt256
from models.raffle import Raffle
from models.purchase import Purchase
from models.refund import Refund
from models.randomness import RandomnessRequest, RandomnessFulfillment
from models.raw_event import RawEvent
from models.checkpoint import IndexerState, CHECKPOINT_ROW_ID

__all__ = [
    "Base",
    "RaffleStatus",
    "UInt256",
    "Raffle",
    "Purchase",
    "Refund",
    "RandomnessRequest",
    "RandomnessFulfillment",
    "RawEvent",
    "IndexerState",
    "CHECKPOINT_ROW_ID",
]
