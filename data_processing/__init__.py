"""
Data Processing Package.

This package attributes normalized events to participant addresses.

Main modules:
- aggregators: in-memory, durable and composite aggregation backends
"""

from .aggregators import (
    ActivityAggregator,
    CompositeAggregator,
    DurableAggregator,
    InMemoryAggregator,
)

__all__ = [
    "ActivityAggregator",
    "CompositeAggregator",
    "DurableAggregator",
    "InMemoryAggregator",
]
