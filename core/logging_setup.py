"""
Core Module - Logging Setup.

Structured logging for the CLI and the query API runner.
"""

import json
import logging
import sys
from typing import Optional


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Correlation ID for tracing (e.g. a scan id)

    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
                "correlation_id": correlation_id or "",
            })
        )
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or '-'} | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # aiohttp access logs are noisy at INFO
    logging.getLogger("aiohttp.access").setLevel(max(log_level, logging.WARNING))

    return logging.getLogger("indexer")
