"""
Pydantic schema for logs returned by eth_getLogs
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Tuple

from indexer.normalizer import normalize_address, normalize_hash, parse_quantity


class ChainLog(BaseModel):
    """
    One raw log as delivered by the RPC source.

    Hex quantities are parsed to int and hashes/addresses are lower-cased on
    the way in. Identity fields are optional because pending logs omit them.
    """

    address: str
    topics: List[str] = Field(default_factory=list)
    data: str = "0x"
    transaction_hash: Optional[str] = Field(None, alias="transactionHash")
    log_index: Optional[int] = Field(None, alias="logIndex")
    block_number: Optional[int] = Field(None, alias="blockNumber")

    @validator("address", pre=True)
    def clean_address(cls, v):
        return normalize_address(v)

    @validator("topics", pre=True)
    def clean_topics(cls, v):
        if v is None:
            return []
        return [normalize_hash(t) for t in v]

    @validator("data", pre=True)
    def clean_data(cls, v):
        if v is None or v == "":
            return "0x"
        v = str(v).lower()
        return v if v.startswith("0x") else "0x" + v

    @validator("transaction_hash", pre=True)
    def clean_transaction_hash(cls, v):
        if v is None:
            return None
        return normalize_hash(v)

    @validator("log_index", "block_number", pre=True)
    def clean_quantity(cls, v):
        if v is None:
            return None
        return parse_quantity(v)

    @property
    def topic0(self) -> Optional[str]:
        return self.topics[0] if self.topics else None

    @property
    def sort_key(self) -> Tuple[int, int]:
        """Chain order; logs without a position sort last"""
        return (
            self.block_number if self.block_number is not None else 2 ** 63,
            self.log_index if self.log_index is not None else 2 ** 63,
        )

    @property
    def has_identity(self) -> bool:
        return (
            self.transaction_hash is not None
            and self.log_index is not None
            and self.block_number is not None
        )

    class Config:
        populate_by_name = True
