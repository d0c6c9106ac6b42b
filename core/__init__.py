"""
Core utilities and configuration for the raffle indexer.

Modules:
    config: Application configuration and environment variable management
    database: Database engine and session management
    exceptions: Exception hierarchy split into fatal, retryable and per-log tiers
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import RpcError, StoreError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "IndexerException",
    "FatalError",
    "ConfigurationError",
    "AbiLoadError",
    "ChainIdMismatchError",
    "RetryableError",
    "RpcError",
    "RpcTimeoutError",
    "StoreError",
    "CheckpointError",
    "LogProcessingError",
    "DecodeError",
    "MissingParameterError",
    "NumericOverflowError",
    "MalformedProofError",
    "UnknownRaffleError",
]
