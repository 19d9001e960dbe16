"""
Reporting - Activity Report.

============================================================
RESPONSIBILITY
============================================================
Renders the plain-text activity report and writes it to disk.

============================================================
REPORT SECTIONS
============================================================
1. Summary (totals, most active users, event type distribution)
2. One section per address, sorted by address, each followed by
   a rule of 80 "="

============================================================
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, localcontext
from typing import Any, List, Optional, Sequence

from core.exceptions import ExportError
from data_ingestion.types import ActivityEvent
from reporting.statistics import (
    ActivitySummary,
    AddressSummary,
    recent_events,
    summarize_address,
    summarize_buckets,
)


logger = logging.getLogger(__name__)


SECTION_RULE = "=" * 80
WEI_DECIMALS = 18


def format_ether(wei: int) -> str:
    """Format a wei amount in ether, e.g. 1500000000000000000 -> "1.5"."""
    with localcontext() as ctx:
        ctx.prec = 100
        text = format(Decimal(wei).scaleb(-WEI_DECIMALS), "f")
    if "." in text:
        text = text.rstrip("0")
        if text.endswith("."):
            text += "0"
    else:
        text += ".0"
    return text


def render_summary(summary: ActivitySummary) -> str:
    lines = [
        "",
        "ACTIVITY SUMMARY REPORT",
        "=" * 34,
        f"Total Users: {summary.total_addresses}",
        f"Total Events: {summary.unique_events}",
        f"Total Attributions: {summary.total_attributions}",
        f"Total Gas Used: {summary.total_gas_used}",
        f"Succeeded: {summary.success_count}, Failed: {summary.failure_count}",
        "",
        "Most Active Users:",
    ]
    for entry in summary.most_active:
        lines.append(f"   {entry.address}: {entry.event_count} events, {entry.total_gas_used} gas")
    lines.append("")
    lines.append("Event Type Distribution:")
    for name, count in summary.event_counts.items():
        lines.append(f"   {name}: {count}")
    return "\n".join(lines) + "\n"


def _render_event(event: ActivityEvent) -> List[str]:
    lines = [
        f"   - {event.event_name} (Block: {event.block_number})",
        f"     Time: {event.timestamp.isoformat()}",
        f"     Tx: {event.transaction_hash}",
        f"     From: {event.sender or 'N/A'}",
        f"     To: {event.recipient or 'Contract Creation'}",
    ]
    if event.value:
        lines.append(f"     Value: {format_ether(event.value)} ETH")
    lines.append(f"     Gas Used: {event.gas_used}")
    lines.append(f"     Status: {'Success' if event.succeeded else 'Failed'}")
    lines.append("")
    return lines


def render_address(
    address: str,
    events: Sequence[ActivityEvent],
    summary: Optional[AddressSummary] = None,
    recent: int = 10,
) -> str:
    if not events:
        return f"\nUser: {address}\n   No events found.\n"

    summary = summary or summarize_address(address, events)
    lines = [
        "",
        f"User: {summary.address}",
        f"Total Events: {summary.event_count}",
        "Event Breakdown:",
    ]
    for name, count in summary.event_counts.items():
        lines.append(f"   {name}: {count}")
    lines.append(f"Total Gas Used: {summary.total_gas_used}")
    lines.append(f"Total Value Sent: {format_ether(summary.total_value_sent)} ETH")
    lines.append(f"Succeeded: {summary.success_count}, Failed: {summary.failure_count}")
    lines.append("")
    lines.append(f"Recent Events (last {recent}):")
    for event in recent_events(events, recent):
        lines.extend(_render_event(event))
    return "\n".join(lines) + "\n"


def render_report(aggregator: Any, top_k: int = 10, recent: int = 10) -> str:
    """
    Full report for an aggregator exposing buckets().

    Summary first, then every address in sorted order.
    """
    buckets = aggregator.buckets()
    parts = [render_summary(summarize_buckets(buckets, top_k))]
    for address in sorted(buckets):
        parts.append(render_address(address, buckets[address], recent=recent))
        parts.append("\n" + SECTION_RULE + "\n")
    return "".join(parts)


def default_report_path(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"user_events_{stamp}.txt"


def export_report(text: str, path: Optional[str] = None) -> str:
    """
    Write the report and return its path.

    Raises:
        ExportError: the file could not be written
    """
    path = path or default_report_path()
    logger.info(f"[report] Exporting to file: {path}")
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(text)
    except OSError as e:
        raise ExportError(f"Could not write report: {e}", path=path, cause=e) from e
    logger.info(f"[report] Report exported to {path}")
    return path
