#!/usr/bin/env python3
"""
On-Chain Activity Indexer - Command Line Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Scans a block range, prints the activity summary and exports
the full plain-text report.

- Handles SIGINT/SIGTERM with a cooperative stop: in-flight
  fetches drain and the partial report is still produced
- Optional durable backend (--database-url)

============================================================
USAGE
============================================================
    python app.py
    python app.py http://localhost:8545 0 latest true
    python app.py $RPC_URL 19000000 19001000 false --user 0xabc...
    python app.py $RPC_URL 0 latest --database-url sqlite:///indexer.db

============================================================
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv

from core.config import IndexerConfig
from core.exceptions import ConfigurationError, IndexerError
from core.logging_setup import setup_logging
from data_ingestion.normalizers import LogNormalizer
from data_ingestion.scanner import ActivityScanner, ScanCancellation
from data_ingestion.types import ScanResult, normalize_address
from data_processing.aggregators import (
    ActivityAggregator,
    CompositeAggregator,
    DurableAggregator,
    InMemoryAggregator,
)
from onchain_adapters.models import LATEST, BlockRef, parse_block_ref
from onchain_adapters.providers import JsonRpcChainReader
from reporting.activity_report import (
    export_report,
    render_address,
    render_report,
    render_summary,
)
from reporting.statistics import summarize_buckets
from storage.database import DatabaseConfig
from storage.store import ActivityStore


logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def parse_bool(value: str) -> bool:
    text = value.strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def parse_block(value: str) -> BlockRef:
    try:
        return parse_block_ref(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def create_parser(config: IndexerConfig) -> argparse.ArgumentParser:
    """Create the argument parser; defaults come from the environment."""
    parser = argparse.ArgumentParser(
        prog="onchain-indexer",
        description="Scan a block range and report per-address on-chain activity",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                         # localhost node, block 0 to latest
  %(prog)s http://node:8545 100 200 false          # print only, no export
  %(prog)s http://node:8545 0 latest --user 0xabc  # one address section
        """,
    )

    parser.add_argument(
        "rpc_url",
        nargs="?",
        default=config.rpc_url,
        help=f"JSON-RPC endpoint (default: RPC_URL or {config.rpc_url})",
    )
    parser.add_argument(
        "from_block",
        nargs="?",
        type=parse_block,
        default=0,
        help="First block, inclusive (default: 0)",
    )
    parser.add_argument(
        "to_block",
        nargs="?",
        type=parse_block,
        default=LATEST,
        help="Last block, inclusive, or 'latest' (default: latest)",
    )
    parser.add_argument(
        "export_file",
        nargs="?",
        type=parse_bool,
        default=True,
        help="Write the full report to a file: true/false (default: true)",
    )

    # --------------------------------------------------------
    # Report Options
    # --------------------------------------------------------
    report_group = parser.add_argument_group("Report Options")

    report_group.add_argument(
        "--user",
        type=str,
        metavar="ADDRESS",
        help="Also print the section for this address",
    )
    report_group.add_argument(
        "--output",
        type=str,
        metavar="PATH",
        help="Report file path (default: user_events_<timestamp>.txt)",
    )

    # --------------------------------------------------------
    # Scan Options
    # --------------------------------------------------------
    scan_group = parser.add_argument_group("Scan Options")

    scan_group.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="Also persist users and events to this database",
    )
    scan_group.add_argument(
        "--concurrency",
        type=int,
        default=config.max_concurrency,
        metavar="N",
        help=f"Concurrent per-log fetch workers (default: {config.max_concurrency})",
    )
    scan_group.add_argument(
        "--chunk-size",
        type=int,
        default=config.log_chunk_size,
        metavar="N",
        help=f"Blocks per eth_getLogs request (default: {config.log_chunk_size})",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )

    return parser


# ============================================================
# CONFIGURATION
# ============================================================

def build_config(args: argparse.Namespace, base: IndexerConfig) -> IndexerConfig:
    """CLI arguments override environment configuration."""
    return IndexerConfig(
        rpc_url=args.rpc_url,
        request_timeout_seconds=base.request_timeout_seconds,
        max_concurrency=args.concurrency,
        log_chunk_size=args.chunk_size,
        unavailable_threshold=base.unavailable_threshold,
        retry=base.retry,
        recent_events_window=base.recent_events_window,
        most_active_limit=base.most_active_limit,
    )


def validate_args(args: argparse.Namespace, config: IndexerConfig) -> List[str]:
    errors = list(config.validate())
    if args.from_block == LATEST:
        errors.append("from_block must be a block number")
    if args.user is not None and not normalize_address(args.user):
        errors.append("--user must be a non-empty address")
    return errors


# ============================================================
# SIGNALS
# ============================================================

def install_signal_handlers(cancellation: ScanCancellation) -> List[signal.Signals]:
    """Route SIGINT/SIGTERM to the scan's cooperative stop."""
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancellation.cancel, sig.name)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform/thread; Ctrl+C raises instead
            continue
        installed.append(sig)
    return installed


def remove_signal_handlers(installed: List[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for sig in installed:
        loop.remove_signal_handler(sig)


# ============================================================
# SCAN
# ============================================================

async def open_aggregator(
    memory: InMemoryAggregator,
    database_url: Optional[str],
) -> ActivityAggregator:
    if not database_url:
        return memory
    db_config = DatabaseConfig.from_env()
    db_config.url = database_url
    errors = db_config.validate()
    if errors:
        raise ConfigurationError(f"Invalid database configuration: {'; '.join(errors)}")
    logger.info(f"[app] Durable backend: {db_config.safe_url}")
    store = await asyncio.to_thread(ActivityStore.open, db_config)
    return CompositeAggregator(memory, DurableAggregator(store))


async def run_scan(args: argparse.Namespace, config: IndexerConfig) -> int:
    """
    Run one scan and produce the report.

    Returns:
        Exit code
    """
    memory = InMemoryAggregator()
    aggregator = await open_aggregator(memory, args.database_url)
    cancellation = ScanCancellation()
    installed = install_signal_handlers(cancellation)

    try:
        async with JsonRpcChainReader(
            config.rpc_url, timeout=config.request_timeout_seconds
        ) as reader:
            scanner = ActivityScanner(reader, LogNormalizer(), aggregator, config)
            result = await scanner.scan(args.from_block, args.to_block, cancellation)
    finally:
        remove_signal_handlers(installed)
        await aggregator.close()

    emit_report(args, config, memory, result)
    return 0


def emit_report(
    args: argparse.Namespace,
    config: IndexerConfig,
    memory: InMemoryAggregator,
    result: ScanResult,
) -> None:
    """Print the summary, optionally one address, and export the report."""
    if result.cancelled:
        print("Scan cancelled; report covers the events recorded so far.")
    print(f"Blocks {result.from_block}..{result.to_block}: "
          f"{result.logs_seen} logs, {result.skipped} skipped")

    summary = summarize_buckets(memory.buckets(), config.most_active_limit)
    print(render_summary(summary))

    if args.user:
        address = normalize_address(args.user) or args.user
        print(render_address(
            address,
            memory.events_for(address),
            recent=config.recent_events_window,
        ))

    if args.export_file:
        text = render_report(
            memory,
            top_k=config.most_active_limit,
            recent=config.recent_events_window,
        )
        path = export_report(text, args.output)
        print(f"Report exported to {path}")


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    base = IndexerConfig.from_env()

    parser = create_parser(base)
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_format)

    config = build_config(args, base)
    errors = validate_args(args, config)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run_scan(args, config))
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
    except IndexerError as e:
        logger.error(f"[app] {e.to_log_format()}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"[app] Fatal error: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
