# ============================================================================
# File: indexer/runner.py
# Description: Polling cycle orchestrator for the raffle indexer
# ============================================================================
"""
Indexer Runner - drives one polling cycle at a time.

Cycle:
1. Read checkpoint, compute from = max(checkpoint + 1, start_block)
2. Read chain head; idle if from > head
3. to = min(from + batch_size - 1, head)
4. Fetch and process factory logs, then provider logs, then raffle logs
5. Advance the checkpoint to ``to``

Any RPC or store failure aborts the cycle before the checkpoint moves, so the
same range is fetched again after the backoff.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import ChainIdMismatchError, RetryableError, StoreError
from indexer.abi_registry import EventRegistry
from indexer.checkpoint import CheckpointStore
from indexer.fetcher import DEFAULT_MAX_ADDRESSES_PER_QUERY, LogFetcher
from indexer.loaders.projection_loader import ProjectionLoader
from indexer.processor import EventProcessor, ProcessingStats

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    """What a single cycle did"""
    from_block: int
    head: int
    to_block: Optional[int] = None
    idle: bool = False
    raffle_count: int = 0
    stats: ProcessingStats = field(default_factory=ProcessingStats)


class IndexerRunner:
    """
    Sequential polling loop.

    Responsibilities:
    - Compute block ranges from the checkpoint
    - Process address groups in a fixed order
    - Advance the checkpoint only after a whole range is committed
    - Back off and retry on any cycle failure
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        rpc,
        registry: EventRegistry,
        factory_address: str,
        provider_address: Optional[str] = None,
        start_block: int = 0,
        batch_size: int = 2000,
        poll_interval: float = 3.0,
        error_backoff: float = 5.0,
        max_addresses_per_query: int = DEFAULT_MAX_ADDRESSES_PER_QUERY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        self.session_factory = session_factory
        self.rpc = rpc
        self.registry = registry
        self.factory_address = factory_address.lower()
        self.provider_address = provider_address.lower() if provider_address else None
        self.start_block = start_block
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff
        self.fetcher = LogFetcher(rpc, max_addresses_per_query)
        self._sleep = sleep

    async def verify_chain(self, expected_chain_id: int) -> int:
        """
        Compare the RPC endpoint's chain id with the configured one.

        Raises:
            ChainIdMismatchError: the endpoint serves another chain
            RpcError: the chain id could not be read
        """
        observed = await self.rpc.get_chain_id()
        if observed != expected_chain_id:
            raise ChainIdMismatchError(
                f"RPC chain id {observed} does not match configured chain id {expected_chain_id}",
                context={"expected": expected_chain_id, "observed": observed}
            )
        logger.info(f"Connected to chain {observed}")
        return observed

    async def wait_for_chain(self, expected_chain_id: int) -> int:
        """Retry verify_chain through RPC failures; a mismatch still raises"""
        while True:
            try:
                return await self.verify_chain(expected_chain_id)
            except RetryableError as e:
                logger.warning(
                    f"Chain id check failed, retrying in {self.error_backoff}s: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                await self._sleep(self.error_backoff)

    async def _process_group(
        self,
        processor: EventProcessor,
        addresses: Sequence[str],
        from_block: int,
        to_block: int
    ) -> ProcessingStats:
        logs = await self.fetcher.fetch(addresses, from_block, to_block)
        return await processor.process_logs(logs)

    async def _load_raffle_addresses(self, session: AsyncSession) -> List[str]:
        try:
            addresses = await ProjectionLoader(session).raffle_addresses()
            await session.commit()
            return addresses
        except SQLAlchemyError as e:
            await session.rollback()
            raise StoreError(
                "Failed to load raffle addresses",
                context={"operation": "SELECT", "table_name": "raffles"},
                original_exception=e
            )

    async def run_cycle(self) -> CycleResult:
        async with self.session_factory() as session:
            checkpoint = CheckpointStore(session)

            last_processed = await checkpoint.get_last_processed_block()
            from_block = max(last_processed + 1, self.start_block)
            head = await self.rpc.get_block_number()

            if from_block > head:
                logger.debug(f"No new blocks (next={from_block}, head={head})")
                return CycleResult(from_block=from_block, head=head, idle=True)

            to_block = min(from_block + self.batch_size - 1, head)
            logger.info(f"Processing blocks {from_block}..{to_block} (head={head})")

            processor = EventProcessor(session, self.registry)
            stats = ProcessingStats()

            # --------------------------------------------------
            # 1. Factory (RaffleCreated)
            # --------------------------------------------------
            stats.merge(await self._process_group(processor, [self.factory_address], from_block, to_block))

            # --------------------------------------------------
            # 2. Randomness provider (optional)
            # --------------------------------------------------
            if self.provider_address:
                stats.merge(await self._process_group(processor, [self.provider_address], from_block, to_block))

            # --------------------------------------------------
            # 3. Known raffles, read after the factory so raffles created
            #    in this range are included
            # --------------------------------------------------
            raffle_addresses = await self._load_raffle_addresses(session)
            if raffle_addresses:
                stats.merge(await self._process_group(processor, raffle_addresses, from_block, to_block))

            # --------------------------------------------------
            # 4. Checkpoint
            # --------------------------------------------------
            await checkpoint.set_last_processed_block(to_block)

            logger.info(f"Indexed blocks {from_block}..{to_block}: {stats}")
            return CycleResult(
                from_block=from_block,
                head=head,
                to_block=to_block,
                raffle_count=len(raffle_addresses),
                stats=stats,
            )

    async def run_forever(self, expected_chain_id: Optional[int] = None) -> None:
        """
        Loop until cancelled; failures back off and retry.

        With ``expected_chain_id`` the chain is verified first, retrying RPC
        failures. A chain id mismatch ends the loop with ChainIdMismatchError.
        """
        if expected_chain_id is not None:
            await self.wait_for_chain(expected_chain_id)

        logger.info(
            f"Indexer loop started (factory={self.factory_address}, "
            f"provider={self.provider_address}, start_block={self.start_block}, "
            f"batch_size={self.batch_size})"
        )
        while True:
            try:
                result = await self.run_cycle()
            except Exception as e:
                error_context = e.to_dict() if hasattr(e, "to_dict") else {"error": str(e)}
                logger.error(
                    f"Indexing cycle failed, retrying in {self.error_backoff}s: {e}",
                    extra={"error_context": error_context}
                )
                await self._sleep(self.error_backoff)
                continue

            if result.idle:
                await self._sleep(self.poll_interval)
