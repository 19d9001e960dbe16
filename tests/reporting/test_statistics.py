"""
Tests for the statistics engine.
"""

from data_ingestion.types import ExecutionStatus
from data_processing.aggregators import InMemoryAggregator
from reporting.statistics import (
    most_active,
    recent_events,
    summarize_address,
    summarize_buckets,
    unique_events,
)


SENDER = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"
CONTRACT = "0x3333333333333333333333333333333333333333"
OTHER = "0x5555555555555555555555555555555555555555"


class TestSummarizeAddress:
    """Per-address statistics."""

    def test_totals(self, make_event):
        events = [
            make_event(log_index=0, gas_used=21000, value=5),
            make_event(log_index=1, gas_used=50000, value=7, status=ExecutionStatus.FAILURE),
        ]

        summary = summarize_address(SENDER, events)

        assert summary.event_count == 2
        assert summary.total_gas_used == 71000
        assert summary.total_value_sent == 12
        assert summary.success_count == 1
        assert summary.failure_count == 1
        assert summary.event_counts == {"Transfer": 2}

    def test_value_counts_only_when_sender(self, make_event):
        events = [make_event(value=10**18)]

        assert summarize_address(RECIPIENT, events).total_value_sent == 0
        assert summarize_address(SENDER, events).total_value_sent == 10**18

    def test_histogram_orders_by_count(self, make_event):
        events = [
            make_event(log_index=0, event_name="Approval"),
            make_event(log_index=1, event_name="Transfer"),
            make_event(log_index=2, event_name="Transfer"),
        ]

        summary = summarize_address(SENDER, events)

        assert list(summary.event_counts.items()) == [("Transfer", 2), ("Approval", 1)]

    def test_order_invariant(self, make_event):
        events = [make_event(log_index=i, gas_used=1000 * (i + 1)) for i in range(4)]

        forward = summarize_address(SENDER, events)
        backward = summarize_address(SENDER, list(reversed(events)))

        assert forward == backward


class TestGlobalSummary:
    """Statistics across all buckets."""

    def test_shared_event_counts_once(self, make_event):
        aggregator = InMemoryAggregator()
        aggregator.add(make_event(gas_used=21000))

        summary = summarize_buckets(aggregator.buckets())

        assert summary.total_addresses == 3
        assert summary.total_attributions == 3
        assert summary.unique_events == 1
        assert summary.total_gas_used == 21000
        assert summary.event_counts == {"Transfer": 1}

    def test_unique_events(self, make_event):
        aggregator = InMemoryAggregator()
        aggregator.add(make_event(log_index=0))
        aggregator.add(make_event(log_index=1, sender=OTHER))

        assert len(unique_events(aggregator.buckets())) == 2

    def test_most_active_ranking(self, make_event):
        aggregator = InMemoryAggregator()
        aggregator.add(make_event(log_index=0))
        aggregator.add(make_event(log_index=1, sender=OTHER))

        ranked = most_active(aggregator.buckets(), k=2)

        # RECIPIENT and CONTRACT have two events; RECIPIENT was seen first
        assert [s.address for s in ranked] == [RECIPIENT, CONTRACT]
        assert ranked[0].event_count == 2

    def test_most_active_with_nonpositive_k(self, make_event):
        aggregator = InMemoryAggregator()
        aggregator.add(make_event())
        assert most_active(aggregator.buckets(), k=0) == []

    def test_empty(self):
        summary = summarize_buckets({})

        assert summary.total_addresses == 0
        assert summary.unique_events == 0
        assert summary.most_active == []


class TestRecentEvents:
    """Recent events window."""

    def test_latest_in_chain_order(self, make_event):
        events = [
            make_event(block_number=5, log_index=0),
            make_event(block_number=3, log_index=1),
            make_event(block_number=5, transaction_index=1, log_index=2),
            make_event(block_number=9, log_index=3),
        ]

        recent = recent_events(events, 2)

        assert [(e.block_number, e.log_index) for e in recent] == [(5, 2), (9, 3)]

    def test_window_larger_than_events(self, make_event):
        events = [make_event(log_index=i) for i in range(3)]
        assert len(recent_events(events, 10)) == 3

    def test_nonpositive_window(self, make_event):
        assert recent_events([make_event()], 0) == []
