"""
Tests for the activity scanner.

============================================================
PURPOSE
============================================================
Drives ActivityScanner against an in-memory chain.

TEST PRINCIPLES:
- A failing per-log fetch skips that log only
- Persistent unavailability aborts the scan
- Cancellation returns a partial, consistent result
- Identical context fetches are coalesced

============================================================
"""

from collections import Counter
from typing import Any, Dict, List

import pytest

from core.config import IndexerConfig, RetryPolicy
from data_ingestion.normalizers import LogNormalizer
from data_ingestion.scanner import ActivityScanner, ScanCancellation
from data_processing.aggregators import InMemoryAggregator
from onchain_adapters.base import BaseChainReader
from onchain_adapters.exceptions import ChainUnavailable, FetchError
from onchain_adapters.models import LATEST


TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
TOKEN = "0x" + "ab" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


def tx_hash(n: int) -> str:
    return "0x" + format(n, "064x")


# ============================================================
# FAKE CHAIN
# ============================================================

class FakeChainReader(BaseChainReader):
    """In-memory chain: one transfer log per transaction unless told otherwise."""

    def __init__(self, height: int = 10) -> None:
        super().__init__()
        self.height = height
        self.logs: List[Dict[str, Any]] = []
        self.transactions: Dict[str, Dict[str, Any]] = {}
        self.receipts: Dict[str, Any] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: Counter = Counter()
        self.on_transaction = None

    @property
    def name(self) -> str:
        return "fake"

    def add_log(self, n: int, block: int, log_index: int = 0, sender: str = ALICE) -> None:
        h = tx_hash(n)
        self.logs.append({
            "address": TOKEN,
            "topics": [TRANSFER_TOPIC],
            "data": "0x",
            "blockNumber": hex(block),
            "transactionHash": h,
            "transactionIndex": "0x0",
            "logIndex": hex(log_index),
        })
        self.transactions[h] = {"from": sender, "to": BOB, "value": "0x0"}
        self.receipts[h] = {"status": "0x1", "gasUsed": hex(21000)}

    async def block_number(self) -> int:
        self.calls["block_number"] += 1
        return self.height

    async def get_logs(self, from_block, to_block):
        self.calls["get_logs"] += 1
        if "get_logs" in self.failures:
            raise self.failures["get_logs"]
        return [
            log for log in self.logs
            if from_block <= int(log["blockNumber"], 16) <= to_block
        ]

    async def get_transaction(self, h):
        self.calls["get_transaction"] += 1
        if self.on_transaction is not None:
            self.on_transaction(h)
        return self.transactions[h]

    async def get_receipt(self, h):
        self.calls["get_receipt"] += 1
        failure = self.failures.get(h)
        if failure is not None:
            raise failure
        return self.receipts[h]

    async def get_block(self, number):
        self.calls["get_block"] += 1
        return {"number": hex(number), "timestamp": hex(1705320000 + number)}


def unavailable() -> ChainUnavailable:
    return ChainUnavailable("connection refused", reader_name="fake", method="eth_getTransactionReceipt")


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def config():
    return IndexerConfig(
        max_concurrency=2,
        log_chunk_size=5,
        unavailable_threshold=3,
        retry=RetryPolicy(max_attempts=1),
    )


@pytest.fixture
def reader():
    return FakeChainReader(height=10)


@pytest.fixture
def aggregator():
    return InMemoryAggregator()


@pytest.fixture
def scanner(reader, aggregator, config):
    return ActivityScanner(reader, LogNormalizer(), aggregator, config)


# ============================================================
# TESTS
# ============================================================

class TestScanRange:
    """Range resolution and chunking."""

    @pytest.mark.asyncio
    async def test_scans_every_log(self, scanner, reader, aggregator):
        for n in range(1, 5):
            reader.add_log(n, block=n)

        result = await scanner.scan(0, 10)

        assert result.logs_seen == 4
        assert result.events_recorded == 4
        # alice, bob, token
        assert result.attributions == 12
        assert result.skipped == 0
        assert not result.cancelled
        assert len(aggregator.unique_events()) == 4

    @pytest.mark.asyncio
    async def test_latest_resolves_to_height(self, scanner, reader):
        reader.add_log(1, block=10)

        result = await scanner.scan(0, LATEST)

        assert result.to_block == 10
        assert result.events_recorded == 1
        assert reader.calls["block_number"] == 1

    @pytest.mark.asyncio
    async def test_chunks_the_range(self, scanner, reader):
        await scanner.scan(0, 10)
        # [0..4], [5..9], [10..10]
        assert reader.calls["get_logs"] == 3

    @pytest.mark.asyncio
    async def test_empty_range_returns_empty_result(self, scanner, reader):
        result = await scanner.scan(8, 3)

        assert result.logs_seen == 0
        assert result.events_recorded == 0
        assert reader.calls["get_logs"] == 0

    @pytest.mark.asyncio
    async def test_removed_logs_are_ignored(self, scanner, reader):
        reader.add_log(1, block=1)
        reader.add_log(2, block=2)
        reader.logs[0]["removed"] = True

        result = await scanner.scan(0, 10)

        assert result.logs_seen == 1
        assert result.events_recorded == 1

    @pytest.mark.asyncio
    async def test_rescan_records_duplicates(self, scanner, reader, aggregator):
        reader.add_log(1, block=1)

        await scanner.scan(0, 10)
        second = await scanner.scan(0, 10)

        assert second.events_recorded == 0
        assert second.duplicates == 1
        assert len(aggregator.events_for(ALICE)) == 1


class TestFailureHandling:
    """Per-log failures and node unavailability."""

    @pytest.mark.asyncio
    async def test_failed_receipt_skips_only_that_log(self, scanner, reader, aggregator):
        for n in range(1, 4):
            reader.add_log(n, block=n)
        reader.failures[tx_hash(2)] = FetchError("not found", reader_name="fake", method="x")

        result = await scanner.scan(0, 10)

        assert result.logs_seen == 3
        assert result.events_recorded == 2
        assert result.skipped == 1
        assert len(result.warnings) == 1
        assert tx_hash(2) in result.warnings[0]
        keys = {event.transaction_hash for event in aggregator.unique_events()}
        assert keys == {tx_hash(1), tx_hash(3)}

    @pytest.mark.asyncio
    async def test_unusable_log_is_skipped(self, scanner, reader):
        reader.add_log(1, block=1)
        reader.add_log(2, block=2)
        del reader.logs[0]["transactionHash"]

        result = await scanner.scan(0, 10)

        assert result.skipped == 1
        assert result.events_recorded == 1

    @pytest.mark.asyncio
    async def test_isolated_unavailability_is_skipped(self, scanner, reader):
        for n in range(1, 4):
            reader.add_log(n, block=n)
        reader.failures[tx_hash(1)] = unavailable()

        result = await scanner.scan(0, 10)

        assert result.skipped == 1
        assert result.events_recorded == 2

    @pytest.mark.asyncio
    async def test_shared_fetch_failure_counts_once(self, scanner, reader):
        # Three logs share one failing receipt; threshold is 3
        for log_index in range(3):
            reader.add_log(1, block=1, log_index=log_index)
        reader.failures[tx_hash(1)] = unavailable()
        for n in range(2, 11):
            reader.add_log(n, block=n)

        result = await scanner.scan(0, 10)

        assert result.skipped == 3
        assert result.events_recorded == 9
        assert reader.calls["get_receipt"] == 10

    @pytest.mark.asyncio
    async def test_persistent_unavailability_aborts(self, reader, aggregator):
        config = IndexerConfig(
            max_concurrency=1,
            unavailable_threshold=2,
            retry=RetryPolicy(max_attempts=1),
        )
        scanner = ActivityScanner(reader, LogNormalizer(), aggregator, config)
        for n in range(1, 6):
            reader.add_log(n, block=n)
            reader.failures[tx_hash(n)] = unavailable()

        with pytest.raises(ChainUnavailable):
            await scanner.scan(0, 10)

    @pytest.mark.asyncio
    async def test_log_fetch_failure_is_fatal(self, scanner, reader):
        reader.failures["get_logs"] = unavailable()

        with pytest.raises(ChainUnavailable):
            await scanner.scan(0, 10)

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, reader, aggregator):
        config = IndexerConfig(retry=RetryPolicy(max_attempts=3, backoff_base=0.0))
        scanner = ActivityScanner(reader, LogNormalizer(), aggregator, config)
        reader.add_log(1, block=1)

        failures = [unavailable()]

        async def flaky_receipt(h):
            reader.calls["get_receipt"] += 1
            if failures:
                raise failures.pop()
            return reader.receipts[h]

        reader.get_receipt = flaky_receipt

        result = await scanner.scan(0, 10)

        assert result.events_recorded == 1
        assert reader.calls["get_receipt"] == 2

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, reader, aggregator):
        config = IndexerConfig(retry=RetryPolicy(max_attempts=3, backoff_base=0.0))
        scanner = ActivityScanner(reader, LogNormalizer(), aggregator, config)
        reader.add_log(1, block=1)
        reader.failures[tx_hash(1)] = FetchError(
            "HTTP 400", reader_name="fake", method="x", status_code=400
        )

        result = await scanner.scan(0, 10)

        assert result.skipped == 1
        assert reader.calls["get_receipt"] == 1


class TestConcurrency:
    """Coalescing and cancellation."""

    @pytest.mark.asyncio
    async def test_context_fetches_are_coalesced(self, scanner, reader):
        # Three logs in one transaction, all in block 4
        for log_index in range(3):
            reader.add_log(7, block=4, log_index=log_index)

        result = await scanner.scan(0, 10)

        assert result.events_recorded == 3
        assert reader.calls["get_transaction"] == 1
        assert reader.calls["get_receipt"] == 1
        assert reader.calls["get_block"] == 1

    @pytest.mark.asyncio
    async def test_cancellation_returns_partial_result(self, reader, aggregator):
        config = IndexerConfig(max_concurrency=1, retry=RetryPolicy(max_attempts=1))
        scanner = ActivityScanner(reader, LogNormalizer(), aggregator, config)
        for n in range(1, 9):
            reader.add_log(n, block=n)

        cancellation = ScanCancellation()
        reader.on_transaction = lambda h: cancellation.cancel("test")

        result = await scanner.scan(0, 10, cancellation)

        assert result.cancelled
        # The in-flight log drains; nothing new is issued
        assert result.events_recorded == 1
        assert reader.calls["get_transaction"] == 1
        assert cancellation.reason == "test"

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, scanner, reader):
        reader.add_log(1, block=1)
        cancellation = ScanCancellation()
        cancellation.cancel()

        result = await scanner.scan(0, 10, cancellation)

        assert result.cancelled
        assert result.events_recorded == 0
        assert reader.calls["get_logs"] == 0
