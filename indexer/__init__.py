"""
Chain event indexer for raffle contracts.

Modules:
    abi_registry: topic0 -> event decoder built from contract ABIs
    normalizer: Numeric narrowing, decimal text and address normalization
    rpc_client: JSON-RPC client with per-call timeouts
    fetcher: Chunked, ordered log fetching
    checkpoint: Single-row checkpoint store
    handlers: Per-event projections (the raffle state machine)
    processor: One transaction per log, archive plus projection
    runner: Polling cycle orchestrator
    service: Startup checks and background task lifecycle

Subpackages:
    loaders: Idempotent insert-or-ignore writes

Architecture:
    Each cycle processes a block range in a fixed order:

    1. Factory logs (new raffles)
    2. Randomness provider logs (optional)
    3. Logs of every known raffle

    The checkpoint advances only after the whole range is committed. Every
    log-derived row is unique on (tx_hash, log_index), so re-fetching a range
    after a failure is safe.

Usage:
    from indexer.service import IndexerService

    service = IndexerService()
    await service.start()
    ...
    await service.stop()
"""

__all__ = [
    "EventRegistry",
    "JsonRpcClient",
    "LogFetcher",
    "CheckpointStore",
    "EventProcessor",
    "IndexerRunner",
    "IndexerService",
]
