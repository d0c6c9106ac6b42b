"""
Unit tests for settings validation and indexer startup checks
"""

import asyncio
import logging

import pytest
from pydantic import ValidationError

from conftest import ABI_DIR, FACTORY_ADDRESS
from core.config import Settings
from core.exceptions import ChainIdMismatchError, ConfigurationError, RpcError, RpcTimeoutError, StoreError
from core.logging import ErrorContextFilter
from indexer.rpc_client import JsonRpcClient
from indexer.service import IndexerService


def _settings(tmp_path, **overrides) -> Settings:
    values = dict(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'service.db'}",
        RPC_URL="https://rpc.example.test",
        CHAIN_ID=5042002,
        RAFFLE_FACTORY_ADDRESS=FACTORY_ADDRESS,
        ABI_DIR=str(ABI_DIR),
    )
    values.update(overrides)
    return Settings(**values)


class TestSettings:

    def test_addresses_are_lower_cased(self, tmp_path):
        config = _settings(tmp_path, RAFFLE_FACTORY_ADDRESS="0x" + "AB" * 20)
        assert config.RAFFLE_FACTORY_ADDRESS == "0x" + "ab" * 20

    def test_blank_provider_means_unset(self, tmp_path):
        assert _settings(tmp_path, RANDOMNESS_PROVIDER_ADDRESS="  ").RANDOMNESS_PROVIDER_ADDRESS is None

    def test_malformed_address_rejected(self, tmp_path):
        with pytest.raises(ValidationError):
            _settings(tmp_path, RAFFLE_FACTORY_ADDRESS="0x1234")

    def test_batch_size_must_be_positive(self, tmp_path):
        with pytest.raises(ValidationError):
            _settings(tmp_path, INDEXER_BATCH_SIZE=0)

    def test_redacted_database_url_hides_credentials(self, tmp_path):
        config = _settings(tmp_path, DATABASE_URL="postgresql+asyncpg://user:secret@db:5432/raffles")
        assert config.redacted_database_url() == "db:5432/raffles"
        assert "secret" not in repr(config)


class TestIndexerService:

    @pytest.mark.asyncio
    async def test_missing_factory_address_is_fatal(self, tmp_path):
        service = IndexerService(_settings(tmp_path, RAFFLE_FACTORY_ADDRESS=None))

        with pytest.raises(ConfigurationError):
            await service.start()

        assert not service.running

    @pytest.mark.asyncio
    async def test_chain_mismatch_releases_resources(self, tmp_path, monkeypatch):
        async def wrong_chain(self):
            return 1

        monkeypatch.setattr(JsonRpcClient, "get_chain_id", wrong_chain)
        service = IndexerService(_settings(tmp_path))

        with pytest.raises(ChainIdMismatchError):
            await service.start()

        assert service.engine is None
        assert service.rpc is None
        assert not service.running

    @pytest.mark.asyncio
    async def test_rpc_outage_at_startup_is_retried(self, tmp_path, monkeypatch):
        calls = []

        async def chain_id_after_outage(self):
            calls.append(1)
            if len(calls) == 1:
                raise RpcTimeoutError("eth_chainId timed out")
            return 5042002

        async def head(self):
            return 0

        monkeypatch.setattr(JsonRpcClient, "get_chain_id", chain_id_after_outage)
        monkeypatch.setattr(JsonRpcClient, "get_block_number", head)
        service = IndexerService(_settings(tmp_path, INDEXER_ERROR_BACKOFF_SECONDS=0))

        await service.start()
        for _ in range(100):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.01)

        assert len(calls) == 2
        assert service.running

        await service.stop()
        assert not service.running

    @pytest.mark.asyncio
    async def test_mismatch_found_after_outage_ends_the_loop(self, tmp_path, monkeypatch):
        calls = []

        async def wrong_chain_after_outage(self):
            calls.append(1)
            if len(calls) == 1:
                raise RpcError("connection refused")
            return 1

        monkeypatch.setattr(JsonRpcClient, "get_chain_id", wrong_chain_after_outage)
        service = IndexerService(_settings(tmp_path, INDEXER_ERROR_BACKOFF_SECONDS=0))

        await service.start()
        with pytest.raises(ChainIdMismatchError):
            await service.wait()

        await service.stop()
        assert service.engine is None
        assert service.rpc is None

    @pytest.mark.asyncio
    async def test_start_and_stop(self, tmp_path, monkeypatch):
        async def right_chain(self):
            return 5042002

        async def head(self):
            return 0

        monkeypatch.setattr(JsonRpcClient, "get_chain_id", right_chain)
        monkeypatch.setattr(JsonRpcClient, "get_block_number", head)
        service = IndexerService(_settings(tmp_path))

        await service.start()
        assert service.running

        await service.stop()
        assert not service.running
        assert service.engine is None


class TestErrorContextFilter:

    def _record(self, **extra):
        record = logging.LogRecord("indexer.processor", logging.WARNING, __file__, 1, "Skipping log", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_exception_context_is_rendered(self):
        error = StoreError("boom", context={"tx_hash": "0xabc", "log_index": 2, "block_number": 7})
        record = self._record(error_context=error.to_dict())

        assert ErrorContextFilter().filter(record)
        assert record.error_context_text == " [tx_hash=0xabc log_index=2 block_number=7]"

    def test_records_without_context(self):
        record = self._record()
        ErrorContextFilter().filter(record)
        assert record.error_context_text == ""
