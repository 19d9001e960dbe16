"""
JSON-RPC Chain Reader - Ethereum-compatible node over HTTP.

Speaks JSON-RPC 2.0 against any EVM node endpoint:
- eth_blockNumber
- eth_getLogs
- eth_getTransactionByHash
- eth_getTransactionReceipt
- eth_getBlockByNumber (header only)

Error mapping:
- Connection errors, timeouts and HTTP 5xx -> ChainUnavailable
- HTTP 4xx, JSON-RPC error objects, undecodable bodies and
  missing objects -> FetchError
"""

import asyncio
import itertools
import logging
import time
from typing import Any, List, Optional

import aiohttp

from onchain_adapters.base import BaseChainReader
from onchain_adapters.exceptions import ChainReaderError, ChainUnavailable, FetchError
from onchain_adapters.models import (
    LATEST,
    BlockRef,
    RawBlock,
    RawLog,
    RawReceipt,
    RawTransaction,
)


logger = logging.getLogger(__name__)


def to_block_param(block: BlockRef) -> str:
    """Encode a block reference as a JSON-RPC quantity or tag."""
    if isinstance(block, int):
        return hex(block)
    if block == LATEST:
        return LATEST
    raise ValueError(f"Unsupported block reference: {block!r}")


class JsonRpcChainReader(BaseChainReader):
    """
    Chain reader backed by a JSON-RPC HTTP endpoint.

    One reader is safe to share between concurrent workers; each call
    is an independent POST on the shared session.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = BaseChainReader.DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(timeout=timeout, session=session)
        self._rpc_url = rpc_url
        self._ids = itertools.count(1)

    @property
    def name(self) -> str:
        return "json_rpc"

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    # ─────────────────────────────────────────────────────────────
    # Primitives
    # ─────────────────────────────────────────────────────────────

    async def block_number(self) -> int:
        result = await self._call("eth_blockNumber", [])
        try:
            return int(result, 16)
        except (TypeError, ValueError) as e:
            raise FetchError(
                message=f"Invalid block number: {result!r}",
                reader_name=self.name,
                method="eth_blockNumber",
                cause=e,
            )

    async def get_logs(self, from_block: BlockRef, to_block: BlockRef) -> List[RawLog]:
        params = [{
            "fromBlock": to_block_param(from_block),
            "toBlock": to_block_param(to_block),
        }]
        result = await self._call("eth_getLogs", params)
        if not isinstance(result, list):
            raise FetchError(
                message="eth_getLogs did not return a list",
                reader_name=self.name,
                method="eth_getLogs",
                response_body=str(result),
            )
        return result

    async def get_transaction(self, tx_hash: str) -> RawTransaction:
        return await self._call_required("eth_getTransactionByHash", [tx_hash], tx_hash)

    async def get_receipt(self, tx_hash: str) -> RawReceipt:
        return await self._call_required("eth_getTransactionReceipt", [tx_hash], tx_hash)

    async def get_block(self, number: int) -> RawBlock:
        return await self._call_required(
            "eth_getBlockByNumber", [to_block_param(number), False], str(number)
        )

    # ─────────────────────────────────────────────────────────────
    # Transport
    # ─────────────────────────────────────────────────────────────

    async def _call_required(self, method: str, params: list, subject: str) -> Any:
        result = await self._call(method, params)
        if result is None:
            raise FetchError(
                message=f"{method} returned no object for {subject}",
                reader_name=self.name,
                method=method,
            )
        return result

    async def _call(self, method: str, params: list) -> Any:
        """Issue one JSON-RPC request and return its result member."""
        try:
            result, latency_ms = await self._post(method, params)
        except ChainReaderError as e:
            self._on_error(e)
            raise
        self._on_success(latency_ms)
        return result

    async def _post(self, method: str, params: list) -> tuple:
        session = await self._get_session()
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        start_time = time.time()
        try:
            async with session.post(
                self._rpc_url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                latency_ms = (time.time() - start_time) * 1000

                if response.status >= 500:
                    body = await response.text()
                    raise ChainUnavailable(
                        message=f"HTTP {response.status}",
                        reader_name=self.name,
                        method=method,
                        endpoint=self._rpc_url,
                        context={"response_body": body[:200]},
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        reader_name=self.name,
                        method=method,
                        status_code=response.status,
                        response_body=body[:500],
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise FetchError(
                        message="Response is not valid JSON",
                        reader_name=self.name,
                        method=method,
                        status_code=response.status,
                        cause=e,
                    )

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ChainUnavailable(
                message=f"Connection error: {e or type(e).__name__}",
                reader_name=self.name,
                method=method,
                endpoint=self._rpc_url,
                cause=e,
            )

        if not isinstance(data, dict):
            raise FetchError(
                message="Unexpected JSON-RPC response shape",
                reader_name=self.name,
                method=method,
                response_body=str(data),
            )

        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            text = error.get("message") if isinstance(error, dict) else str(error)
            raise FetchError(
                message=f"RPC error: {text}",
                reader_name=self.name,
                method=method,
                rpc_code=code,
                response_body=str(error),
            )

        logger.debug(f"[{self.name}] {method} ok in {latency_ms:.1f}ms")
        return data.get("result"), latency_ms
