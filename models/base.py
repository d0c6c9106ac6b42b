from decimal import Decimal
from sqlalchemy import BigInteger, Integer, Numeric, String
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class RaffleStatus(str, enum.Enum):
    """Raffle lifecycle status"""
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    RANDOM_REQUESTED = "RANDOM_REQUESTED"
    RANDOM_FULFILLED = "RANDOM_FULFILLED"
    FINALIZED = "FINALIZED"
    REFUNDING = "REFUNDING"


# ============================================================================
# COLUMN TYPES
# ============================================================================

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class UInt256(TypeDecorator):
    """
    Full-precision unsigned 256-bit integer.

    Stored as NUMERIC(78, 0) on PostgreSQL and as decimal text elsewhere.
    Python always sees ``int``.
    """

    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(78, 0))
        return dialect.type_descriptor(String(80))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        if dialect.name == "postgresql":
            return Decimal(value)
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)
