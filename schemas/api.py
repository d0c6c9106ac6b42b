"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import datetime
from models.base import RaffleStatus


def _amount_text(v):
    """Amounts are exposed as decimal strings to keep full precision"""
    if v is None:
        return None
    return str(int(v))


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model"""
    database_connected: bool
    status: str = Field(..., description="Overall system status: healthy or unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    last_processed_block: Optional[int] = None
    indexer_running: bool = False

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        if not values.get("database_connected", False):
            return "unhealthy"
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2026-01-15T10:30:00Z",
                "database_connected": True,
                "last_processed_block": 1234567,
                "indexer_running": True
            }
        }


# ============================================================================
# Raffle Schemas
# ============================================================================

class RaffleSummary(BaseModel):
    """Raffle as listed by /v1/raffles"""
    raffle_id: int
    raffle_address: str
    status: RaffleStatus
    end_time: Optional[datetime]
    ticket_price: str
    total_tickets: int
    pot: str
    winner: Optional[str] = None

    @validator("ticket_price", "pot", pre=True)
    def amounts_as_text(cls, v):
        return _amount_text(v)

    class Config:
        from_attributes = True
        use_enum_values = True


class RaffleDetails(RaffleSummary):
    """Full projected state of one raffle"""
    creator: str
    max_tickets: int
    fee_bps: int
    fee_recipient: str
    request_id: Optional[str] = None
    request_tx: Optional[str] = None
    randomness: Optional[str] = None
    randomness_tx: Optional[str] = None
    winning_index: Optional[int] = None
    finalized_tx: Optional[str] = None
    provider_request_id: Optional[str] = None
    provider_request_tx: Optional[str] = None
    provider_fulfill_tx: Optional[str] = None
    proof_data: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "raffle_id": 1,
                "raffle_address": "0x5fbdb2315678afecb367f032d93f642f64180aa3",
                "creator": "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266",
                "status": "FINALIZED",
                "end_time": "2026-01-15T12:00:00",
                "ticket_price": "10000000000000000",
                "max_tickets": 1000,
                "fee_bps": 250,
                "fee_recipient": "0x70997970c51812dc3a010c7d01b50e0d17dc79c8",
                "total_tickets": 20,
                "pot": "0",
                "randomness": "1234",
                "winning_index": 14,
                "winner": "0x0000000000000000000000000000000000000abc"
            }
        }


class PurchaseRangeResponse(BaseModel):
    """One ticket purchase: buyer owns [start_index, end_index]"""
    buyer: str
    start_index: int
    end_index: int
    count: int
    amount: str
    out_of_order: bool = False
    tx_hash: str
    log_index: int
    block_number: int
    created_at: datetime

    @validator("amount", pre=True)
    def amount_as_text(cls, v):
        return _amount_text(v)

    class Config:
        from_attributes = True


# ============================================================================
# Proof Schemas
# ============================================================================

class WinningRange(BaseModel):
    buyer: str
    start_index: int
    end_index: int

    class Config:
        from_attributes = True


class TxLinks(BaseModel):
    request_tx: Optional[str] = None
    request_url: Optional[str] = None
    randomness_tx: Optional[str] = None
    randomness_url: Optional[str] = None
    finalized_tx: Optional[str] = None
    finalized_url: Optional[str] = None


class ProofResponse(BaseModel):
    """
    Everything a client needs to check a draw:
    winning_index == randomness mod total_tickets
    """
    raffle_id: int
    request_id: Optional[str] = None
    randomness: Optional[str] = None
    total_tickets: int
    winning_index: Optional[int] = None
    winner: Optional[str] = None
    winning_range: Optional[WinningRange] = None
    txs: TxLinks


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str

    class Config:
        json_schema_extra = {
            "example": {
                "error": "raffle not found"
            }
        }
