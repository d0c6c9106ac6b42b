"""
API endpoint tests
"""

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from api.main import app
from conftest import ALICE, BOB, OTHER_RAFFLE_ADDRESS, RAFFLE_ADDRESS, TICKET_PRICE
from core.config import settings
from indexer.checkpoint import CheckpointStore
from indexer.processor import EventProcessor

RANDOMNESS = 10 ** 70 + 789
THIRD_RAFFLE_ADDRESS = "0x" + "a3" * 20


@pytest_asyncio.fixture
async def client(session_factory):
    """ASGI client with the database dependency pointed at the test store"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def seeded(session_factory, registry, logs):
    """
    Raffle 1: 1000 tickets, randomness fulfilled, winner not yet selected
    Raffle 2: finalized
    Raffle 3: active, no purchases
    """
    async with session_factory() as session:
        processor = EventProcessor(session, registry)
        await processor.process_logs([
            logs.raffle_created(block=10),
            logs.tickets_bought(block=11, buyer=ALICE, start=0, count=600),
            logs.tickets_bought(block=12, buyer=BOB, start=600, count=400),
            logs.raffle_closed(block=13, total=1000, pot=1000 * TICKET_PRICE),
            logs.randomness_requested(block=14, request_id=77),
            logs.randomness_fulfilled(block=15, request_id=77, randomness=RANDOMNESS),

            logs.raffle_created(block=20, raffle_id=2, raffle=OTHER_RAFFLE_ADDRESS),
            logs.tickets_bought(block=21, buyer=ALICE, start=0, count=2, raffle_id=2, raffle=OTHER_RAFFLE_ADDRESS),
            logs.raffle_closed(block=22, total=2, pot=2 * TICKET_PRICE, raffle_id=2, raffle=OTHER_RAFFLE_ADDRESS),
            logs.randomness_requested(block=23, request_id=78, raffle_id=2, raffle=OTHER_RAFFLE_ADDRESS),
            logs.randomness_fulfilled(block=24, request_id=78, randomness=5, raffle_id=2, raffle=OTHER_RAFFLE_ADDRESS),
            logs.winner_selected(block=25, winner=ALICE, winning_index=1, raffle_id=2, raffle=OTHER_RAFFLE_ADDRESS),

            logs.raffle_created(block=30, raffle_id=3, raffle=THIRD_RAFFLE_ADDRESS),
        ])
        await CheckpointStore(session).set_last_processed_block(30)


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_reports_checkpoint(self, client, seeded):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_connected"] is True
        assert data["last_processed_block"] == 30
        assert data["indexer_running"] is False

    @pytest.mark.asyncio
    async def test_health_before_first_cycle(self, client):
        data = (await client.get("/health")).json()
        assert data["database_connected"] is True
        assert data["last_processed_block"] is None

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"
        assert "X-API-Latency-ms" in response.headers

    @pytest.mark.asyncio
    async def test_malformed_request_id_is_replaced(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "<script>"})
        assert response.headers["X-Request-ID"] != "<script>"
        assert len(response.headers["X-Request-ID"]) == 36


class TestListRaffles:

    @pytest.mark.asyncio
    async def test_newest_first(self, client, seeded):
        response = await client.get("/v1/raffles")

        assert response.status_code == 200
        assert [r["raffle_id"] for r in response.json()] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_pagination(self, client, seeded):
        first = (await client.get("/v1/raffles?limit=2")).json()
        rest = (await client.get("/v1/raffles?limit=2&offset=2")).json()

        assert [r["raffle_id"] for r in first] == [3, 2]
        assert [r["raffle_id"] for r in rest] == [1]

    @pytest.mark.asyncio
    async def test_limit_is_capped(self, client, seeded):
        response = await client.get("/v1/raffles?limit=100000")
        assert response.status_code == 200
        assert len(response.json()) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["limit=0", "limit=-5", "offset=-1", "status=PAUSED"])
    async def test_bad_query_is_rejected(self, client, query):
        response = await client.get(f"/v1/raffles?{query}")

        assert response.status_code == 400
        assert set(response.json()) == {"error"}

    @pytest.mark.asyncio
    async def test_status_filter(self, client, seeded):
        response = await client.get("/v1/raffles?status=finalized")

        assert [r["raffle_id"] for r in response.json()] == [2]
        assert response.json()[0]["status"] == "FINALIZED"
        assert response.json()[0]["winner"] == ALICE


class TestRaffleDetails:

    @pytest.mark.asyncio
    async def test_details(self, client, seeded):
        response = await client.get("/v1/raffles/1")

        assert response.status_code == 200
        data = response.json()
        assert data["raffle_address"] == RAFFLE_ADDRESS
        assert data["status"] == "RANDOM_FULFILLED"
        assert data["total_tickets"] == 1000
        # Amounts are decimal strings
        assert data["ticket_price"] == str(TICKET_PRICE)
        assert data["pot"] == str(1000 * TICKET_PRICE)
        assert data["randomness"] == str(RANDOMNESS)
        assert data["request_id"] == "77"

    @pytest.mark.asyncio
    async def test_unknown_raffle(self, client, seeded):
        response = await client.get("/v1/raffles/999")

        assert response.status_code == 404
        assert response.json() == {"error": "raffle not found"}


class TestPurchases:

    @pytest.mark.asyncio
    async def test_ranges_in_purchase_order(self, client, seeded):
        response = await client.get("/v1/raffles/1/purchases")

        assert response.status_code == 200
        ranges = [(p["buyer"], p["start_index"], p["end_index"], p["count"]) for p in response.json()]
        assert ranges == [(ALICE, 0, 599, 600), (BOB, 600, 999, 400)]
        assert response.json()[1]["amount"] == str(400 * TICKET_PRICE)
        assert response.json()[1]["out_of_order"] is False

    @pytest.mark.asyncio
    async def test_paginated(self, client, seeded):
        response = await client.get("/v1/raffles/1/purchases?limit=1&offset=1")
        assert [p["buyer"] for p in response.json()] == [BOB]

    @pytest.mark.asyncio
    async def test_raffle_without_purchases(self, client, seeded):
        response = await client.get("/v1/raffles/3/purchases")
        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_unknown_raffle(self, client, seeded):
        response = await client.get("/v1/raffles/999/purchases")
        assert response.status_code == 404


class TestProof:

    @pytest.mark.asyncio
    async def test_winning_index_is_derivable(self, client, seeded):
        response = await client.get("/v1/raffles/1/proof")

        assert response.status_code == 200
        data = response.json()
        assert data["winning_index"] == int(data["randomness"]) % data["total_tickets"] == 789
        assert data["winning_range"] == {"buyer": BOB, "start_index": 600, "end_index": 999}
        assert data["winner"] is None

        base = settings.EXPLORER_BASE_URL.rstrip("/")
        assert data["txs"]["randomness_url"] == f"{base}/tx/{data['txs']['randomness_tx']}"
        assert data["txs"]["finalized_tx"] is None
        assert data["txs"]["finalized_url"] is None

    @pytest.mark.asyncio
    async def test_finalized_raffle_uses_stored_index(self, client, seeded):
        data = (await client.get("/v1/raffles/2/proof")).json()

        assert data["winning_index"] == 1
        assert data["winner"] == ALICE
        assert data["winning_range"]["buyer"] == ALICE
        assert data["txs"]["finalized_url"].endswith(data["txs"]["finalized_tx"])

    @pytest.mark.asyncio
    async def test_no_randomness_yet(self, client, seeded):
        data = (await client.get("/v1/raffles/3/proof")).json()

        assert data["winning_index"] is None
        assert data["winning_range"] is None
        assert data["txs"]["request_url"] is None


class TestErrors:

    @pytest.mark.asyncio
    async def test_store_failure_is_opaque(self, client):
        class BrokenSession:
            async def execute(self, *args, **kwargs):
                raise OperationalError("SELECT", {}, Exception("password=hunter2 at db.internal"))

        async def broken_db():
            yield BrokenSession()

        app.dependency_overrides[get_db] = broken_db

        response = await client.get("/v1/raffles")

        assert response.status_code == 500
        assert response.json() == {"error": "internal error"}
        assert "hunter2" not in response.text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", [
        "/v1/raffles/99999999999999999999",
        "/v1/raffles/99999999999999999999/purchases",
        "/v1/raffles/99999999999999999999/proof",
        "/v1/raffles/-99999999999999999999",
        "/v1/raffles/not-a-number",
        "/v1/raffles?offset=99999999999999999999",
        "/v1/raffles/1/purchases?offset=99999999999999999999",
        "/v1/raffles?limit=abc",
    ])
    async def test_out_of_range_input_is_client_error(self, client, seeded, path):
        response = await client.get(path)

        assert response.status_code == 400
        assert set(response.json()) == {"error"}

    @pytest.mark.asyncio
    async def test_largest_raffle_id_is_a_miss(self, client, seeded):
        response = await client.get(f"/v1/raffles/{2 ** 63 - 1}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/v2/nothing")
        assert response.status_code == 404
        assert "error" in response.json()


class TestDependencies:

    @pytest.mark.asyncio
    async def test_get_db_yields_one_session_per_request(self):
        sessions = [session async for session in get_db()]

        assert len(sessions) == 1
        assert isinstance(sessions[0], AsyncSession)
