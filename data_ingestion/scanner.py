"""
Data Ingestion - Activity Scanner.

============================================================
RESPONSIBILITY
============================================================
Runs one logical pass over a bounded block range.

- Resolves "latest" to the current chain height
- Fetches logs chunk by chunk (fatal on failure)
- Fetches per-log context (transaction, receipt, block) through a
  bounded worker pool, coalescing identical requests
- Normalizes each log and hands it to a single aggregation task

============================================================
FAILURE HANDLING
============================================================
- Every chain call runs under the caller-level RetryPolicy
- A log whose context cannot be fetched or normalized is skipped
  and recorded as a warning
- unavailable_threshold consecutive ChainUnavailable failures abort
  the scan with ChainUnavailable
- Cancellation stops new fetches; in-flight work drains and the
  partial result is returned with cancelled=True

============================================================
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from core.config import IndexerConfig
from core.exceptions import NormalizationError, PerLogProcessingError
from data_ingestion.normalizers.log_normalizer import LogNormalizer, parse_quantity
from data_ingestion.types import ActivityEvent, ScanResult
from onchain_adapters.base import BaseChainReader
from onchain_adapters.exceptions import ChainReaderError, ChainUnavailable, FetchError
from onchain_adapters.models import LATEST, BlockRef, RawLog

if TYPE_CHECKING:
    from data_processing.aggregators import ActivityAggregator


logger = logging.getLogger(__name__)


class ScanCancellation:
    """Cooperative stop signal for an in-flight scan."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class _ScanState:
    """Per-scan mutable state shared by the workers."""

    def __init__(self, threshold: int) -> None:
        self.transactions: Dict[str, asyncio.Task] = {}
        self.receipts: Dict[str, asyncio.Task] = {}
        self.blocks: Dict[int, asyncio.Task] = {}
        self.threshold = threshold
        self.consecutive_unavailable = 0
        self.fatal: Optional[ChainUnavailable] = None
        # Shared fetches already counted; each failed fetch counts once
        self.counted: Set[asyncio.Task] = set()

    @property
    def stopped(self) -> bool:
        return self.fatal is not None

    def record_success(self) -> None:
        self.consecutive_unavailable = 0

    def record_unavailable(self, fetch: asyncio.Task, error: ChainUnavailable) -> None:
        if fetch in self.counted:
            return
        self.counted.add(fetch)
        self.consecutive_unavailable += 1
        if self.fatal is None and self.consecutive_unavailable >= self.threshold:
            self.fatal = ChainUnavailable(
                message=(
                    f"Chain node unreachable after {self.consecutive_unavailable} "
                    f"consecutive failures"
                ),
                reader_name=error.reader_name,
                method=error.method,
                endpoint=error.endpoint,
                cause=error,
            )

    def cancel_pending(self) -> None:
        for cache in (self.transactions, self.receipts, self.blocks):
            for task in cache.values():
                if not task.done():
                    task.cancel()


class ActivityScanner:
    """
    Scans a block range and feeds normalized events to an aggregator.

    Usage:
        scanner = ActivityScanner(reader, LogNormalizer(), InMemoryAggregator(), config)
        result = await scanner.scan(0, "latest")
    """

    def __init__(
        self,
        reader: BaseChainReader,
        normalizer: LogNormalizer,
        aggregator: "ActivityAggregator",
        config: Optional[IndexerConfig] = None,
    ) -> None:
        self._reader = reader
        self._normalizer = normalizer
        self._aggregator = aggregator
        self._config = config or IndexerConfig()

    @property
    def aggregator(self) -> "ActivityAggregator":
        return self._aggregator

    async def scan(
        self,
        from_block: int,
        to_block: BlockRef = LATEST,
        cancellation: Optional[ScanCancellation] = None,
    ) -> ScanResult:
        """
        Scan [from_block, to_block] inclusive.

        Raises:
            ChainUnavailable: the node cannot be reached
            FetchError: a log chunk could not be fetched
        """
        cancellation = cancellation or ScanCancellation()
        end_block = await self._resolve_to_block(to_block)

        result = ScanResult(
            from_block=from_block,
            to_block=end_block,
            started_at=datetime.now(timezone.utc),
        )

        if from_block > end_block:
            logger.warning(f"[scanner] Empty range: {from_block} > {end_block}")
            result.completed_at = datetime.now(timezone.utc)
            return result

        logger.info(
            f"[scanner] Scanning blocks {from_block}..{end_block} "
            f"(workers={self._config.max_concurrency}, chunk={self._config.log_chunk_size})"
        )

        state = _ScanState(self._config.unavailable_threshold)
        worker_count = self._config.max_concurrency
        log_queue: asyncio.Queue = asyncio.Queue(maxsize=worker_count * 2)
        event_queue: asyncio.Queue = asyncio.Queue()

        consumer = asyncio.create_task(self._consume(event_queue, result))
        producer = asyncio.create_task(
            self._produce(from_block, end_block, log_queue, worker_count, result, state, cancellation)
        )
        workers = [
            asyncio.create_task(self._work(log_queue, event_queue, result, state, cancellation))
            for _ in range(worker_count)
        ]
        tasks = [producer, *workers, consumer]

        try:
            await asyncio.gather(producer, *workers)
            await event_queue.put(None)
            await consumer
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            state.cancel_pending()

        result.completed_at = datetime.now(timezone.utc)
        result.cancelled = cancellation.is_cancelled

        if state.fatal is not None:
            logger.error(f"[scanner] Aborting scan: {state.fatal}")
            raise state.fatal

        logger.info(
            f"[scanner] Scan {'cancelled' if result.cancelled else 'complete'}: "
            f"{result.logs_seen} logs, {result.events_recorded} events, "
            f"{result.duplicates} duplicates, {result.skipped} skipped "
            f"in {result.duration_seconds:.2f}s"
        )
        return result

    # ─────────────────────────────────────────────────────────────
    # Pipeline stages
    # ─────────────────────────────────────────────────────────────

    async def _resolve_to_block(self, to_block: BlockRef) -> int:
        if isinstance(to_block, int):
            return to_block
        if to_block != LATEST:
            raise ValueError(f"Unsupported block reference: {to_block!r}")
        try:
            return await self._with_retry("eth_blockNumber", self._reader.block_number)
        except FetchError as e:
            raise ChainUnavailable(
                message=f"Could not resolve chain height: {e.message}",
                reader_name=e.reader_name,
                method="eth_blockNumber",
                cause=e,
            )

    def _chunks(self, from_block: int, to_block: int) -> List[Tuple[int, int]]:
        size = self._config.log_chunk_size
        return [
            (start, min(start + size - 1, to_block))
            for start in range(from_block, to_block + 1, size)
        ]

    async def _produce(
        self,
        from_block: int,
        to_block: int,
        log_queue: asyncio.Queue,
        worker_count: int,
        result: ScanResult,
        state: _ScanState,
        cancellation: ScanCancellation,
    ) -> None:
        for start, end in self._chunks(from_block, to_block):
            if cancellation.is_cancelled or state.stopped:
                break
            logs = await self._with_retry("eth_getLogs", self._reader.get_logs, start, end)
            logger.info(f"[scanner] Blocks {start}..{end}: {len(logs)} logs")
            for log in logs:
                if cancellation.is_cancelled or state.stopped:
                    break
                if log.get("removed"):
                    continue
                result.logs_seen += 1
                await log_queue.put(log)

        for _ in range(worker_count):
            await log_queue.put(None)

    async def _work(
        self,
        log_queue: asyncio.Queue,
        event_queue: asyncio.Queue,
        result: ScanResult,
        state: _ScanState,
        cancellation: ScanCancellation,
    ) -> None:
        while True:
            log = await log_queue.get()
            if log is None:
                return
            if cancellation.is_cancelled or state.stopped:
                # Not yet issued; dropped
                continue
            try:
                event = await self._process_log(log, state)
            except PerLogProcessingError as e:
                result.skipped += 1
                result.add_warning(e.to_log_format())
                logger.warning(f"[scanner] Skipping log: {e.to_log_format()}")
                continue
            await event_queue.put(event)

    async def _consume(self, event_queue: asyncio.Queue, result: ScanResult) -> None:
        """Single writer: the only task that touches the aggregator."""
        while True:
            event = await event_queue.get()
            if event is None:
                return
            added = await self._aggregator.record(event)
            if added:
                result.events_recorded += 1
                result.attributions += added
            else:
                result.duplicates += 1

    async def _process_log(self, log: RawLog, state: _ScanState) -> ActivityEvent:
        tx_hash = log.get("transactionHash")
        log_index = log.get("logIndex")
        try:
            if not tx_hash:
                raise NormalizationError("log is missing transactionHash", "log.transactionHash")
            block_number = parse_quantity(log.get("blockNumber"), "log.blockNumber")
        except NormalizationError as e:
            raise PerLogProcessingError(
                f"Unusable log: {e.message}",
                transaction_hash=tx_hash,
                log_index=log_index,
                stage="normalize",
                cause=e,
            )

        tx_hash = tx_hash.lower()
        fetches = [
            self._memo(state.transactions, tx_hash, "eth_getTransactionByHash",
                       self._reader.get_transaction, tx_hash),
            self._memo(state.receipts, tx_hash, "eth_getTransactionReceipt",
                       self._reader.get_receipt, tx_hash),
            self._memo(state.blocks, block_number, "eth_getBlockByNumber",
                       self._reader.get_block, block_number),
        ]
        outcomes = await asyncio.gather(*fetches, return_exceptions=True)

        for fetch, outcome in zip(fetches, outcomes):
            if isinstance(outcome, ChainReaderError):
                if isinstance(outcome, ChainUnavailable):
                    state.record_unavailable(fetch, outcome)
                raise PerLogProcessingError(
                    f"Context fetch failed: {outcome.message}",
                    transaction_hash=tx_hash,
                    log_index=log_index,
                    block_number=block_number,
                    stage="fetch",
                    cause=outcome,
                )
            if isinstance(outcome, BaseException):
                raise outcome
        state.record_success()

        transaction, receipt, block = outcomes
        try:
            return self._normalizer.normalize(log, transaction, receipt, block)
        except NormalizationError as e:
            raise PerLogProcessingError(
                f"Normalization failed: {e.message}",
                transaction_hash=tx_hash,
                log_index=log_index,
                block_number=block_number,
                stage="normalize",
                cause=e,
            )

    # ─────────────────────────────────────────────────────────────
    # Fetch helpers
    # ─────────────────────────────────────────────────────────────

    def _memo(
        self,
        cache: Dict[Any, asyncio.Task],
        key: Any,
        method: str,
        call: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> asyncio.Task:
        """Coalesce identical fetches within one scan."""
        task = cache.get(key)
        if task is None:
            task = asyncio.ensure_future(self._with_retry(method, call, *args))
            cache[key] = task
        return task

    async def _with_retry(
        self,
        method: str,
        call: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Any:
        """Run a chain call under the configured retry policy."""
        policy = self._config.retry
        last_error: Optional[ChainReaderError] = None

        for attempt in range(policy.max_attempts):
            try:
                return await asyncio.wait_for(
                    call(*args), timeout=self._config.request_timeout_seconds
                )
            except asyncio.TimeoutError as e:
                last_error = ChainUnavailable(
                    message=f"{method} timed out",
                    reader_name=self._reader.name,
                    method=method,
                    cause=e,
                )
            except FetchError as e:
                if e.status_code and 400 <= e.status_code < 500:
                    # Don't retry client errors
                    raise
                last_error = e
            except ChainReaderError as e:
                last_error = e

            if attempt + 1 < policy.max_attempts:
                wait_time = policy.delay(attempt)
                logger.warning(
                    f"[scanner] Retry {attempt + 1}/{policy.max_attempts} of {method} "
                    f"in {wait_time:.1f}s: {last_error}"
                )
                await asyncio.sleep(wait_time)

        raise last_error
