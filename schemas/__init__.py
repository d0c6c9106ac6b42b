"""
Pydantic schemas for data validation and serialization.

Schemas:
    chain: Raw logs as returned by eth_getLogs (hex quantities parsed,
           hashes and addresses lower-cased)
    api: API endpoint response models

Features:
    - Validation of untrusted RPC payloads before they reach the processor
    - Amounts serialized as decimal strings so 256-bit values survive JSON
    - OpenAPI schema generation for FastAPI

Usage:
    from schemas.chain import ChainLog
    from schemas.api import RaffleDetails, ProofResponse

Example:
    log = ChainLog(**rpc_entry)
    assert log.block_number == int(rpc_entry["blockNumber"], 16)
"""

__all__ = [
    "ChainLog",
    "HealthResponse",
    "RaffleSummary",
    "RaffleDetails",
    "PurchaseRangeResponse",
    "ProofResponse",
    "ErrorResponse",
]
