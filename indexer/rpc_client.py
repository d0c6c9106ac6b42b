"""
JSON-RPC client for the chain node.

Every call is bounded by a fixed timeout and is not retried here; failures
surface as RpcError / RpcTimeoutError so the polling loop can back off.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from core.exceptions import RpcError, RpcTimeoutError
from indexer.normalizer import parse_quantity
from schemas.chain import ChainLog

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """
    Minimal async JSON-RPC client over httpx.

    Attributes:
        url: RPC endpoint
        timeout: Per-call timeout in seconds (default: 30.0)
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=timeout,
            headers={"Content-Type": "application/json"}
        )

    async def __aenter__(self) -> "JsonRpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, params: Optional[Sequence[Any]] = None) -> Any:
        """
        Issue one JSON-RPC request and return its ``result``.

        Raises:
            RpcTimeoutError: call exceeded the timeout
            RpcError: transport failure, HTTP error status or JSON-RPC error object
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params or []),
        }

        try:
            response = await asyncio.wait_for(
                self._client.post(self.url, json=payload),
                timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise RpcTimeoutError(
                f"{method} timed out after {self.timeout}s",
                context={"method": method, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise RpcError(
                f"{method} transport error",
                context={"method": method},
                original_exception=e
            )

        if response.status_code >= 400:
            raise RpcError(
                f"{method} returned HTTP {response.status_code}",
                context={
                    "method": method,
                    "status_code": response.status_code,
                    "response_body": response.text[:500],
                }
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RpcError(
                f"{method} returned invalid JSON",
                context={"method": method, "response_body": response.text[:500]},
                original_exception=e
            )

        if not isinstance(body, dict):
            raise RpcError(f"{method} returned a non-object response", context={"method": method})

        error = body.get("error")
        if error:
            rpc_code = error.get("code") if isinstance(error, dict) else None
            rpc_message = error.get("message") if isinstance(error, dict) else str(error)
            raise RpcError(
                f"{method} failed: {rpc_message}",
                context={"method": method, "rpc_code": rpc_code}
            )

        if "result" not in body:
            raise RpcError(f"{method} response has no result", context={"method": method})

        return body["result"]

    async def _call_quantity(self, method: str) -> int:
        result = await self.call(method)
        try:
            return parse_quantity(result)
        except ValueError as e:
            raise RpcError(
                f"{method} returned an invalid quantity",
                context={"method": method, "result": str(result)[:100]},
                original_exception=e
            )

    async def get_chain_id(self) -> int:
        return await self._call_quantity("eth_chainId")

    async def get_block_number(self) -> int:
        return await self._call_quantity("eth_blockNumber")

    async def get_logs(self, addresses: List[str], from_block: int, to_block: int) -> List[ChainLog]:
        """eth_getLogs for a set of addresses over an inclusive block range"""
        params: Dict[str, Any] = {
            "address": list(addresses),
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        result = await self.call("eth_getLogs", [params])

        if not isinstance(result, list):
            raise RpcError("eth_getLogs returned a non-list result", context={"method": "eth_getLogs"})

        # Malformed entries are skipped one at a time
        logs: List[ChainLog] = []
        for position, entry in enumerate(result):
            try:
                logs.append(ChainLog(**entry))
            except (ValidationError, TypeError) as e:
                tx_hash = entry.get("transactionHash") if isinstance(entry, dict) else None
                logger.warning(
                    f"Skipping malformed log #{position} in eth_getLogs {from_block}..{to_block}: {e}",
                    extra={"error_context": {"method": "eth_getLogs", "tx_hash": tx_hash, "block": from_block}}
                )
        return logs
