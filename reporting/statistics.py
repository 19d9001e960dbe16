"""
Reporting - Statistics Engine.

============================================================
RESPONSIBILITY
============================================================
Derives per-address and global statistics from event buckets.

- Event histogram by resolved name
- Total gas used and total value sent
- Success / failure counts
- Most active ranking

============================================================
DESIGN PRINCIPLES
============================================================
- Recomputed from the events on every call, never maintained
  incrementally, so aggregates cannot drift from their source
- Order-invariant, except the explicit recent_events window
- Integer arithmetic only

============================================================
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from data_ingestion.types import ActivityEvent, EventKey, normalize_address


@dataclass(frozen=True)
class AddressSummary:
    """Statistics for one address bucket."""
    address: str
    event_count: int
    event_counts: Dict[str, int]
    total_gas_used: int
    total_value_sent: int
    success_count: int
    failure_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "event_count": self.event_count,
            "event_counts": dict(self.event_counts),
            "total_gas_used": self.total_gas_used,
            "total_value_sent": str(self.total_value_sent),
            "success_count": self.success_count,
            "failure_count": self.failure_count,
        }


@dataclass(frozen=True)
class ActivitySummary:
    """Global statistics over all buckets."""
    total_addresses: int
    total_attributions: int
    unique_events: int
    event_counts: Dict[str, int]
    total_gas_used: int
    success_count: int
    failure_count: int
    most_active: List[AddressSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_addresses": self.total_addresses,
            "total_attributions": self.total_attributions,
            "unique_events": self.unique_events,
            "event_counts": dict(self.event_counts),
            "total_gas_used": self.total_gas_used,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "most_active": [s.to_dict() for s in self.most_active],
        }


def _histogram(events: Iterable[ActivityEvent]) -> Dict[str, int]:
    """Count by event name, most frequent first (ties by name)."""
    counts = Counter(event.event_name for event in events)
    return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))


def summarize_address(address: str, events: Sequence[ActivityEvent]) -> AddressSummary:
    """
    Summarize one bucket.

    Value sent counts only events whose sender is the address.
    """
    address = normalize_address(address) or ""
    success = sum(1 for e in events if e.succeeded)
    return AddressSummary(
        address=address,
        event_count=len(events),
        event_counts=_histogram(events),
        total_gas_used=sum(e.gas_used for e in events),
        total_value_sent=sum(e.value for e in events if e.sender == address),
        success_count=success,
        failure_count=len(events) - success,
    )


def most_active(
    buckets: Mapping[str, Sequence[ActivityEvent]],
    k: int = 10,
) -> List[AddressSummary]:
    """
    Top-k addresses by event count.

    Ties keep first-discovery order, i.e. the buckets' own order.
    """
    if k <= 0:
        return []
    ranked: List[Tuple[int, int, str]] = [
        (-len(events), position, address)
        for position, (address, events) in enumerate(buckets.items())
    ]
    ranked.sort()
    return [summarize_address(address, buckets[address]) for _, _, address in ranked[:k]]


def unique_events(buckets: Mapping[str, Sequence[ActivityEvent]]) -> List[ActivityEvent]:
    """Each event once, even when it sits in several buckets."""
    seen: Dict[EventKey, ActivityEvent] = {}
    for events in buckets.values():
        for event in events:
            seen.setdefault(event.key, event)
    return list(seen.values())


def summarize_buckets(
    buckets: Mapping[str, Sequence[ActivityEvent]],
    top_k: int = 10,
) -> ActivitySummary:
    """
    Global summary.

    Histogram, gas and status counts are over unique events so a
    log attributed to three addresses counts once.
    """
    events = unique_events(buckets)
    success = sum(1 for e in events if e.succeeded)
    return ActivitySummary(
        total_addresses=len(buckets),
        total_attributions=sum(len(bucket) for bucket in buckets.values()),
        unique_events=len(events),
        event_counts=_histogram(events),
        total_gas_used=sum(e.gas_used for e in events),
        success_count=success,
        failure_count=len(events) - success,
        most_active=most_active(buckets, top_k),
    )


def recent_events(events: Sequence[ActivityEvent], n: int = 10) -> List[ActivityEvent]:
    """The n latest events in chain order (block, tx index, log index)."""
    if n <= 0:
        return []
    return sorted(events, key=lambda e: e.sort_key)[-n:]
