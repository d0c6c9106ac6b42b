"""
Event processor: one database transaction per recognized log.

Within the transaction the raw log is archived (insert-or-ignore) and the
event's projection is applied; both commit together or roll back together.

- Unknown signatures are skipped silently
- Events the raffle's status does not admit are archived and counted as
  out of order
- Per-log failures (decode, missing parameter, overflow, unknown raffle)
  roll back that log only and are logged as warnings
- Database errors roll back and propagate as StoreError so the cycle aborts
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import DecodeError, LogProcessingError, StoreError
from indexer.abi_registry import DecodedEvent, EventRegistry
from indexer.handlers import HANDLERS
from indexer.loaders.projection_loader import ProjectionLoader
from schemas.chain import ChainLog

logger = logging.getLogger(__name__)


class LogOutcome(str, enum.Enum):
    UNKNOWN = "unknown"
    APPLIED = "applied"
    # Archived, but the raffle's status did not admit the event
    OUT_OF_ORDER = "out_of_order"
    REPLAYED = "replayed"
    SKIPPED = "skipped"


@dataclass
class ProcessingStats:
    """Outcome counts for a batch of logs"""
    counts: Dict[LogOutcome, int] = field(default_factory=lambda: {outcome: 0 for outcome in LogOutcome})

    def record(self, outcome: LogOutcome) -> None:
        self.counts[outcome] += 1

    def merge(self, other: "ProcessingStats") -> "ProcessingStats":
        for outcome, count in other.counts.items():
            self.counts[outcome] += count
        return self

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def applied(self) -> int:
        return self.counts[LogOutcome.APPLIED]

    @property
    def out_of_order(self) -> int:
        return self.counts[LogOutcome.OUT_OF_ORDER]

    @property
    def replayed(self) -> int:
        return self.counts[LogOutcome.REPLAYED]

    @property
    def skipped(self) -> int:
        return self.counts[LogOutcome.SKIPPED]

    @property
    def unknown(self) -> int:
        return self.counts[LogOutcome.UNKNOWN]

    def __str__(self) -> str:
        return (
            f"total={self.total} applied={self.applied} out_of_order={self.out_of_order} "
            f"replayed={self.replayed} skipped={self.skipped} unknown={self.unknown}"
        )


def _log_context(log: ChainLog, **extra: Any) -> Dict[str, Any]:
    context = {
        "address": log.address,
        "tx_hash": log.transaction_hash,
        "log_index": log.log_index,
        "block_number": log.block_number,
    }
    context.update(extra)
    return context


def _raw_values(event: DecodedEvent) -> Dict[str, Any]:
    log = event.log
    return {
        "address": log.address,
        "event_name": event.name,
        "topic0": log.topic0,
        "topics": list(log.topics),
        "data": log.data,
        "tx_hash": log.transaction_hash,
        "log_index": log.log_index,
        "block_number": log.block_number,
        "ingested_at": datetime.utcnow(),
    }


class EventProcessor:
    """
    Apply logs to the projected store in the order given.

    Usage:
        processor = EventProcessor(session, registry)
        stats = await processor.process_logs(logs)
    """

    def __init__(self, db_session: AsyncSession, registry: EventRegistry):
        self.db = db_session
        self.registry = registry

    async def process_log(self, log: ChainLog) -> LogOutcome:
        decoder = self.registry.lookup(log.topic0)
        if decoder is None:
            logger.debug(f"Skipping unrecognized log topic0={log.topic0} from {log.address}")
            return LogOutcome.UNKNOWN

        event_name = decoder.spec.event_name

        try:
            if not log.has_identity:
                raise DecodeError(
                    f"{event_name} log has no transaction hash, log index or block number",
                    context=_log_context(log, event=event_name)
                )
            event = decoder.decode(log)
        except LogProcessingError as e:
            logger.warning(
                f"Skipping {event_name} at {log.transaction_hash}:{log.log_index} "
                f"(block {log.block_number}): {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return LogOutcome.SKIPPED

        loader = ProjectionLoader(self.db)

        try:
            first_delivery = await loader.archive_raw(_raw_values(event))
            fits = await HANDLERS[event.kind](loader, event, first_delivery)
            await self.db.commit()

        except LogProcessingError as e:
            await self.db.rollback()
            logger.warning(
                f"Skipping {event_name} at {log.transaction_hash}:{log.log_index} "
                f"(block {log.block_number}): {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return LogOutcome.SKIPPED

        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(
                f"Database error while projecting {event_name}",
                context=_log_context(log, event=event_name),
                original_exception=e
            )

        except Exception:
            await self.db.rollback()
            raise

        if first_delivery and fits is False:
            return LogOutcome.OUT_OF_ORDER

        if first_delivery:
            logger.debug(f"Applied {event_name} at {log.transaction_hash}:{log.log_index}")
            return LogOutcome.APPLIED

        logger.debug(f"Replayed {event_name} at {log.transaction_hash}:{log.log_index}")
        return LogOutcome.REPLAYED

    async def process_logs(self, logs: Iterable[ChainLog]) -> ProcessingStats:
        stats = ProcessingStats()
        for log in logs:
            stats.record(await self.process_log(log))
        return stats
