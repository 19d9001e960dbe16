"""
On-chain Adapters Package - Chain node access for the activity indexer.

Exposes the five read primitives the pipeline needs and nothing else.

Quick Start:
    from onchain_adapters import JsonRpcChainReader

    async def head():
        async with JsonRpcChainReader("http://localhost:8545") as reader:
            height = await reader.block_number()
            logs = await reader.get_logs(height - 10, height)

Failure semantics:
- ChainUnavailable: the node cannot be reached (fatal once persistent)
- FetchError: the node answered without the requested data

Readers never retry. Callers wrap them in a RetryPolicy.

Adding New Readers:
    class NewReader(BaseChainReader):
        @property
        def name(self) -> str:
            return "new_reader"

        async def block_number(self): ...
        async def get_logs(self, from_block, to_block): ...
        async def get_transaction(self, tx_hash): ...
        async def get_receipt(self, tx_hash): ...
        async def get_block(self, number): ...
"""

from onchain_adapters.base import BaseChainReader
from onchain_adapters.exceptions import ChainReaderError, ChainUnavailable, FetchError
from onchain_adapters.models import (
    LATEST,
    BlockRef,
    RawBlock,
    RawLog,
    RawReceipt,
    RawTransaction,
    ReaderHealth,
    ReaderStatus,
    parse_block_ref,
)
from onchain_adapters.providers import JsonRpcChainReader

__all__ = [
    # Base
    "BaseChainReader",
    # Providers
    "JsonRpcChainReader",
    # Exceptions
    "ChainReaderError",
    "ChainUnavailable",
    "FetchError",
    # Models
    "LATEST",
    "BlockRef",
    "RawBlock",
    "RawLog",
    "RawReceipt",
    "RawTransaction",
    "ReaderHealth",
    "ReaderStatus",
    "parse_block_ref",
]
