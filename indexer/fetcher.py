"""
Fetch logs for a set of contract addresses over an inclusive block range
"""

import logging
from typing import List, Protocol, Sequence

from schemas.chain import ChainLog

logger = logging.getLogger(__name__)

DEFAULT_MAX_ADDRESSES_PER_QUERY = 100


class LogSource(Protocol):
    async def get_logs(self, addresses: List[str], from_block: int, to_block: int) -> List[ChainLog]:
        ...


def chunk_addresses(addresses: Sequence[str], size: int) -> List[List[str]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(addresses[i:i + size]) for i in range(0, len(addresses), size)]


class LogFetcher:
    """
    Fetch and order logs.

    Ensures:
    - Address sets larger than the per-call maximum are split into chunks
    - The merged result is sorted by (block_number, log_index)
    - Any RPC failure propagates; partial results are never returned
    """

    def __init__(self, rpc: LogSource, max_addresses_per_query: int = DEFAULT_MAX_ADDRESSES_PER_QUERY):
        if max_addresses_per_query < 1:
            raise ValueError("max_addresses_per_query must be >= 1")
        self.rpc = rpc
        self.max_addresses_per_query = max_addresses_per_query

    async def fetch(self, addresses: Sequence[str], from_block: int, to_block: int) -> List[ChainLog]:
        if not addresses:
            raise ValueError("at least one address is required")
        if from_block > to_block:
            raise ValueError(f"invalid block range {from_block}..{to_block}")

        logs: List[ChainLog] = []
        for chunk in chunk_addresses(addresses, self.max_addresses_per_query):
            logs.extend(await self.rpc.get_logs(chunk, from_block, to_block))

        logs.sort(key=lambda log: log.sort_key)

        logger.debug(
            f"Fetched {len(logs)} logs for {len(addresses)} addresses "
            f"in blocks {from_block}..{to_block}"
        )
        return logs
