"""
Pytest configuration and fixtures
"""

import itertools
from pathlib import Path
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from eth_abi import encode
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from core.exceptions import RpcError
from indexer.abi_registry import EventKind, EventRegistry, canonical_type
from models import Base
from schemas.chain import ChainLog

ABI_DIR = Path(__file__).resolve().parent.parent / "abis"

FACTORY_ADDRESS = "0x" + "f0" * 20
PROVIDER_ADDRESS = "0x" + "d0" * 20
RAFFLE_ADDRESS = "0x" + "a1" * 20
OTHER_RAFFLE_ADDRESS = "0x" + "a2" * 20
CREATOR = "0x" + "c1" * 20
FEE_RECIPIENT = "0x" + "fe" * 20
ALICE = "0x" + "11" * 20
BOB = "0x" + "22" * 20

END_TIME = 1767225600  # 2026-01-01T00:00:00Z
TICKET_PRICE = 10 ** 16


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine; each test gets a fresh schema"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'indexer_test.db'}",
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="session")
def registry() -> EventRegistry:
    return EventRegistry.from_artifacts(ABI_DIR)


class LogBuilder:
    """
    Encodes chain logs the way a node returns them, using the registry's
    own event definitions.
    """

    def __init__(self, registry: EventRegistry):
        self.registry = registry
        self._tx_counter = itertools.count(1)

    def next_tx_hash(self) -> str:
        return "0x" + format(next(self._tx_counter), "064x")

    def build(
        self,
        kind: EventKind,
        address: str,
        block_number: int,
        log_index: int = 0,
        tx_hash: Optional[str] = None,
        **params
    ) -> ChainLog:
        decoder = self.registry.decoder_for(kind)
        assert decoder is not None, f"no decoder registered for {kind}"

        topics = [decoder.topic0]
        for param in decoder.indexed:
            topics.append("0x" + encode([canonical_type(param)], [params[param["name"]]]).hex())

        data_types = [canonical_type(p) for p in decoder.non_indexed]
        data_values = [params[p["name"]] for p in decoder.non_indexed]
        data = "0x" + encode(data_types, data_values).hex()

        return ChainLog(
            address=address,
            topics=topics,
            data=data,
            transaction_hash=tx_hash or self.next_tx_hash(),
            log_index=log_index,
            block_number=block_number,
        )

    # ------------------------------------------------------------------
    # Shortcuts for the common lifecycle
    # ------------------------------------------------------------------

    def raffle_created(self, block: int, raffle_id: int = 1, raffle: str = RAFFLE_ADDRESS, **overrides) -> ChainLog:
        params = dict(
            raffleId=raffle_id,
            raffle=raffle,
            creator=CREATOR,
            endTime=END_TIME,
            ticketPrice=TICKET_PRICE,
            maxTickets=1000,
            feeBps=250,
            feeRecipient=FEE_RECIPIENT,
        )
        params.update(overrides)
        return self.build(EventKind.RAFFLE_CREATED, FACTORY_ADDRESS, block, **params)

    def tickets_bought(
        self,
        block: int,
        buyer: str,
        start: int,
        count: int,
        raffle_id: int = 1,
        raffle: str = RAFFLE_ADDRESS,
        log_index: int = 0,
        tx_hash: Optional[str] = None
    ) -> ChainLog:
        return self.build(
            EventKind.TICKETS_BOUGHT, raffle, block, log_index=log_index, tx_hash=tx_hash,
            raffleId=raffle_id, buyer=buyer, startIndex=start, endIndex=start + count - 1,
            count=count, amountPaid=count * TICKET_PRICE,
        )

    def raffle_closed(self, block: int, total: int, pot: int, raffle_id: int = 1, raffle: str = RAFFLE_ADDRESS) -> ChainLog:
        return self.build(EventKind.RAFFLE_CLOSED, raffle, block, raffleId=raffle_id, totalTickets=total, pot=pot)

    def randomness_requested(self, block: int, request_id: int, raffle_id: int = 1, raffle: str = RAFFLE_ADDRESS) -> ChainLog:
        return self.build(EventKind.RANDOMNESS_REQUESTED, raffle, block, raffleId=raffle_id, requestId=request_id)

    def randomness_fulfilled(
        self, block: int, request_id: int, randomness: int, raffle_id: int = 1, raffle: str = RAFFLE_ADDRESS
    ) -> ChainLog:
        return self.build(
            EventKind.RANDOMNESS_FULFILLED, raffle, block,
            raffleId=raffle_id, requestId=request_id, randomness=randomness,
        )

    def winner_selected(
        self, block: int, winner: str, winning_index: int, raffle_id: int = 1, raffle: str = RAFFLE_ADDRESS
    ) -> ChainLog:
        return self.build(
            EventKind.WINNER_SELECTED, raffle, block,
            raffleId=raffle_id, winner=winner, winningIndex=winning_index, prize=0, fee=0,
        )


@pytest.fixture
def logs(registry) -> LogBuilder:
    return LogBuilder(registry)


class FakeChain:
    """In-memory RPC source: serves logs by address and block range"""

    def __init__(self, chain_id: int = 5042002, head: int = 0, logs: Optional[List[ChainLog]] = None):
        self.chain_id = chain_id
        self.head = head
        self.logs: List[ChainLog] = list(logs or [])
        self.get_logs_calls = []
        self.fail_on_addresses = None

    def add(self, *logs: ChainLog) -> None:
        self.logs.extend(logs)

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def get_block_number(self) -> int:
        return self.head

    async def get_logs(self, addresses: List[str], from_block: int, to_block: int) -> List[ChainLog]:
        self.get_logs_calls.append((list(addresses), from_block, to_block))
        if self.fail_on_addresses is not None and set(addresses) & set(self.fail_on_addresses):
            raise RpcError("eth_getLogs failed: upstream unavailable", context={"method": "eth_getLogs"})
        wanted = set(addresses)
        return [
            log for log in self.logs
            if log.address in wanted and from_block <= log.block_number <= to_block
        ]


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()
