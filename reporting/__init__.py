"""
Reporting Package.

Statistics and plain-text reports over aggregated activity.

Modules:
- statistics: per-address and global statistics, recomputed on demand
- activity_report: report rendering and export
"""

from reporting.activity_report import (
    export_report,
    format_ether,
    render_address,
    render_report,
    render_summary,
)
from reporting.statistics import (
    ActivitySummary,
    AddressSummary,
    most_active,
    recent_events,
    summarize_address,
    summarize_buckets,
    unique_events,
)

__all__ = [
    "ActivitySummary",
    "AddressSummary",
    "export_report",
    "format_ether",
    "most_active",
    "recent_events",
    "render_address",
    "render_report",
    "render_summary",
    "summarize_address",
    "summarize_buckets",
    "unique_events",
]
