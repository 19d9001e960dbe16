"""
Base Chain Reader - Abstract interface over the chain node primitives.

All readers MUST:
- Expose exactly the five read primitives the pipeline needs
- Surface failures as ChainUnavailable or FetchError
- Never retry internally (retry policy belongs to the caller)
- Never block the event loop
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, List, Optional

import aiohttp

from onchain_adapters.exceptions import ChainReaderError, ChainUnavailable
from onchain_adapters.models import (
    BlockRef,
    RawBlock,
    RawLog,
    RawReceipt,
    RawTransaction,
    ReaderHealth,
    ReaderStatus,
)


logger = logging.getLogger(__name__)


class BaseChainReader(ABC):
    """
    Abstract base class for chain readers.

    Each reader must implement:
    1. block_number() - current chain height
    2. get_logs() - all logs in an inclusive block range
    3. get_transaction() / get_receipt() - per-hash lookups
    4. get_block() - block header without full transactions

    Features:
    - Shared aiohttp session, owned unless injected
    - Health tracking (healthy / degraded / unavailable)
    - Async context manager lifecycle
    """

    DEFAULT_TIMEOUT = 30.0
    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

        self._health = ReaderHealth(
            status=ReaderStatus.UNKNOWN,
            last_check=datetime.now(timezone.utc),
        )

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this reader."""
        pass

    @abstractmethod
    async def block_number(self) -> int:
        """Return the current chain height."""
        pass

    @abstractmethod
    async def get_logs(self, from_block: BlockRef, to_block: BlockRef) -> List[RawLog]:
        """
        Fetch all logs emitted in [from_block, to_block].

        Raises:
            ChainUnavailable: node unreachable
            FetchError: node rejected the range
        """
        pass

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> RawTransaction:
        pass

    @abstractmethod
    async def get_receipt(self, tx_hash: str) -> RawReceipt:
        pass

    @abstractmethod
    async def get_block(self, number: int) -> RawBlock:
        """Fetch a block header (transactions as hashes only)."""
        pass

    async def health_check(self) -> ReaderHealth:
        """
        Probe the node with a block height request.

        Never raises; the outcome is reflected in the returned health.
        """
        start = time.time()
        try:
            height = await self.block_number()
            self._health.latency_ms = (time.time() - start) * 1000
            self._health.latest_block = height
        except ChainReaderError as e:
            logger.warning(f"[{self.name}] Health check failed: {e}")
        self._health.last_check = datetime.now(timezone.utc)
        return self._health

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "ActivityIndexer/1.0",
        }

    # ─────────────────────────────────────────────────────────────
    # Health & Error Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_success(self, latency_ms: Optional[float] = None) -> None:
        """Handle successful request."""
        self._health.request_count += 1
        self._health.consecutive_failures = 0
        if latency_ms is not None:
            self._health.latency_ms = latency_ms

        if self._health.status != ReaderStatus.HEALTHY:
            if self._health.status != ReaderStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = ReaderStatus.HEALTHY

    def _on_error(self, error: ChainReaderError) -> None:
        """Handle request error."""
        self._health.request_count += 1
        self._health.error_count += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.now(timezone.utc)

        # Only transport failures count towards node unavailability
        if not isinstance(error, ChainUnavailable):
            return

        self._health.consecutive_failures += 1
        if self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != ReaderStatus.UNAVAILABLE:
                self._health.status = ReaderStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != ReaderStatus.DEGRADED:
                self._health.status = ReaderStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED")

    def get_health(self) -> ReaderHealth:
        return self._health

    def is_healthy(self) -> bool:
        return self._health.is_healthy()

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseChainReader":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"
