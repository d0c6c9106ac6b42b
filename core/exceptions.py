"""
Custom exceptions for the raffle indexer with structured error context.

Errors fall into three tiers that decide how far a failure travels:

Exception Hierarchy:
    IndexerException (base)
    ├── FatalError              - abort before the polling loop starts
    │   ├── ConfigurationError
    │   ├── AbiLoadError
    │   └── ChainIdMismatchError
    ├── RetryableError          - abort the cycle, back off, retry
    │   ├── RpcError
    │   │   └── RpcTimeoutError
    │   ├── StoreError
    │   └── CheckpointError
    └── LogProcessingError      - warn, skip a single log
        ├── DecodeError
        ├── MissingParameterError
        ├── NumericOverflowError
        ├── MalformedProofError
        └── UnknownRaffleError
"""

from typing import Optional, Dict, Any
from datetime import datetime


class IndexerException(Exception):
    """
    Base exception for all indexer errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (tx hash, block, event kind, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {self.original_exception}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Fatal Errors
# ============================================================================

class FatalError(IndexerException):
    """Startup errors that stop the process before the loop begins."""
    pass


class ConfigurationError(FatalError):
    """
    Required configuration is missing or malformed.

    Context should include:
        - setting: Name of the offending setting
    """
    pass


class AbiLoadError(FatalError):
    """
    A contract interface could not be loaded or lacks a required event.

    Context should include:
        - path: Artifact path
        - contract: Contract name
        - event: Missing event name (if applicable)
    """
    pass


class ChainIdMismatchError(FatalError):
    """
    The RPC endpoint serves a different chain than configured.

    Context should include:
        - expected: Configured chain id
        - observed: Chain id reported by the RPC endpoint
    """
    pass


# ============================================================================
# Retryable Errors
# ============================================================================

class RetryableError(IndexerException):
    """
    Transient errors that abort the current cycle without advancing the
    checkpoint. The orchestrator backs off and retries indefinitely.
    """
    pass


class RpcError(RetryableError):
    """
    JSON-RPC call failed (transport error, HTTP status or error object).

    Context should include:
        - method: JSON-RPC method name
        - status_code: HTTP status code (if applicable)
        - rpc_code: JSON-RPC error code (if applicable)
    """
    pass


class RpcTimeoutError(RpcError):
    """JSON-RPC call exceeded the per-call timeout."""
    pass


class StoreError(RetryableError):
    """
    Database operation failed while projecting a log.

    Context should include:
        - tx_hash / log_index / block_number: Log being processed
        - event: Event kind
    """
    pass


class CheckpointError(RetryableError):
    """
    Reading or writing the checkpoint row failed.

    Context should include:
        - operation: read or write
        - block: Block number being written (if applicable)
    """
    pass


# ============================================================================
# Per-log Errors
# ============================================================================

class LogProcessingError(IndexerException):
    """Errors confined to a single log; the log is skipped."""
    pass


class DecodeError(LogProcessingError):
    """Topics or data could not be decoded against the event ABI."""
    pass


class MissingParameterError(LogProcessingError):
    """A decoded event lacks a parameter its projection needs."""
    pass


class NumericOverflowError(LogProcessingError):
    """
    A count or identifier does not fit a signed 64-bit integer.

    Context should include:
        - field: Parameter name
        - value: Offending value
    """
    pass


class MalformedProofError(LogProcessingError):
    """A randomness proof is present but is not a byte string."""
    pass


class UnknownRaffleError(LogProcessingError):
    """A raffle-scoped event references a raffle the store does not know."""
    pass
