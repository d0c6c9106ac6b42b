import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import Settings, settings
from core.database import build_engine, build_session_maker
from core.exceptions import ConfigurationError, FatalError, RetryableError
from indexer.abi_registry import EventRegistry
from indexer.rpc_client import JsonRpcClient
from indexer.runner import IndexerRunner

logger = logging.getLogger(__name__)


class IndexerService:
    """Startup checks and lifecycle of the background indexing task"""

    def __init__(self, config: Settings = settings):
        self.config = config
        self.engine: Optional[AsyncEngine] = None
        self.rpc: Optional[JsonRpcClient] = None
        self.runner: Optional[IndexerRunner] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """
        Validate configuration, load ABIs, verify the chain and spawn the loop.

        Raises:
            ConfigurationError: factory address not configured
            AbiLoadError: a required contract interface is unusable
            ChainIdMismatchError: RPC endpoint serves another chain

        If the chain id cannot be read yet, the check is retried with backoff
        inside the background task instead of failing startup.
        """
        if not self.config.RAFFLE_FACTORY_ADDRESS:
            raise ConfigurationError(
                "RAFFLE_FACTORY_ADDRESS must be set to run the indexer",
                context={"setting": "RAFFLE_FACTORY_ADDRESS"}
            )

        registry = EventRegistry.from_artifacts(self.config.ABI_DIR)
        if self.config.RANDOMNESS_PROVIDER_ADDRESS and not registry.has_provider_events():
            logger.warning("Randomness provider address set but its ABI is unavailable; provider logs will be skipped")

        self.engine = build_engine(self.config.DATABASE_URL)
        self.rpc = JsonRpcClient(self.config.RPC_URL, timeout=self.config.RPC_TIMEOUT_SECONDS)
        self.runner = IndexerRunner(
            session_factory=build_session_maker(self.engine),
            rpc=self.rpc,
            registry=registry,
            factory_address=self.config.RAFFLE_FACTORY_ADDRESS,
            provider_address=self.config.RANDOMNESS_PROVIDER_ADDRESS,
            start_block=self.config.START_BLOCK,
            batch_size=self.config.INDEXER_BATCH_SIZE,
            poll_interval=self.config.INDEXER_POLL_INTERVAL_MS / 1000,
            error_backoff=self.config.INDEXER_ERROR_BACKOFF_SECONDS,
            max_addresses_per_query=self.config.MAX_ADDRESSES_PER_QUERY,
        )

        pending_chain_id = None
        try:
            await self.runner.verify_chain(self.config.CHAIN_ID)
        except RetryableError as e:
            logger.warning(
                f"Chain id check failed at startup, retrying in the indexing loop: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            pending_chain_id = self.config.CHAIN_ID
        except Exception:
            await self._close()
            raise

        logger.info(
            f"Indexer starting against {self.config.redacted_database_url()} "
            f"(chain={self.config.CHAIN_ID}, rpc={self.config.RPC_URL})"
        )
        self._task = asyncio.create_task(self.runner.run_forever(pending_chain_id), name="raffle-indexer")
        self._task.add_done_callback(self._log_task_exit)

    def _log_task_exit(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            context = error.to_dict() if hasattr(error, "to_dict") else {"error": str(error)}
            logger.critical(f"Indexer loop stopped: {error}", extra={"error_context": context})

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        """Cancel the loop; an interrupted cycle is re-fetched on next start"""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except FatalError:
                # reported by _log_task_exit
                pass
            self._task = None
        await self._close()
        logger.info("Indexer stopped")

    async def _close(self) -> None:
        if self.rpc is not None:
            await self.rpc.aclose()
            self.rpc = None
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
