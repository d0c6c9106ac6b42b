"""
Idempotent store writes used by the event projections.

Every log-derived insert is INSERT ... ON CONFLICT DO NOTHING on
(tx_hash, log_index), and reports whether a row was actually written so the
caller can decide whether aggregates should move.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import RaffleStatus
from models.purchase import Purchase
from models.raffle import Raffle
from models.randomness import RandomnessFulfillment, RandomnessRequest
from models.raw_event import RawEvent
from models.refund import Refund
import logging

logger = logging.getLogger(__name__)

LOG_IDENTITY = ["tx_hash", "log_index"]


def _insert_for(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"insert-or-ignore is not supported on {dialect}")


async def insert_ignore(
    session: AsyncSession,
    model,
    values: Dict[str, Any],
    index_elements: Optional[Sequence[str]] = None
) -> bool:
    """
    INSERT ... ON CONFLICT DO NOTHING.

    Returns:
        True if a row was inserted, False if it already existed
    """
    insert = _insert_for(session)
    stmt = insert(model).values(**values)
    if index_elements:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(index_elements))
    else:
        stmt = stmt.on_conflict_do_nothing()
    result = await session.execute(stmt)
    return result.rowcount > 0


class ProjectionLoader:
    """
    Writes for a single log's transaction.

    Never commits; the processor owns the transaction boundary.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Append-only rows
    # ------------------------------------------------------------------

    async def archive_raw(self, values: Dict[str, Any]) -> bool:
        return await insert_ignore(self.db, RawEvent, values, LOG_IDENTITY)

    async def insert_raffle(self, values: Dict[str, Any]) -> bool:
        # Conflicts on raffle_id or raffle_address; an existing raffle is never reset
        return await insert_ignore(self.db, Raffle, values)

    async def insert_purchase(self, values: Dict[str, Any]) -> bool:
        return await insert_ignore(self.db, Purchase, values, LOG_IDENTITY)

    async def insert_refund(self, values: Dict[str, Any]) -> bool:
        return await insert_ignore(self.db, Refund, values, LOG_IDENTITY)

    async def insert_randomness_request(self, values: Dict[str, Any]) -> bool:
        return await insert_ignore(self.db, RandomnessRequest, values, LOG_IDENTITY)

    async def insert_randomness_fulfillment(self, values: Dict[str, Any]) -> bool:
        return await insert_ignore(self.db, RandomnessFulfillment, values, LOG_IDENTITY)

    # ------------------------------------------------------------------
    # Raffle reads
    # ------------------------------------------------------------------

    async def get_raffle(self, raffle_id: int, for_update: bool = False) -> Optional[Raffle]:
        stmt = select(Raffle).where(Raffle.raffle_id == raffle_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def raffle_addresses(self) -> List[str]:
        result = await self.db.execute(select(Raffle.raffle_address).order_by(Raffle.raffle_id))
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Raffle updates
    # ------------------------------------------------------------------

    async def transition(
        self,
        raffle_id: int,
        allowed: Iterable[RaffleStatus],
        target: RaffleStatus,
        **values: Any
    ) -> bool:
        """
        Move a raffle to ``target`` only if its status is one of ``allowed``.

        Returns:
            True if the raffle was updated
        """
        stmt = (
            update(Raffle)
            .where(Raffle.raffle_id == raffle_id, Raffle.status.in_(list(allowed)))
            .values(status=target, updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def stamp_raffle(self, raffle_id: int, **values: Any) -> bool:
        stmt = (
            update(Raffle)
            .where(Raffle.raffle_id == raffle_id)
            .values(updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def stamp_raffle_by_address(self, raffle_address: str, **values: Any) -> bool:
        stmt = (
            update(Raffle)
            .where(Raffle.raffle_address == raffle_address)
            .values(updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0
