"""
Core Module Package.

Shared infrastructure every other package depends on.

Components:
- config: Environment-driven configuration dataclasses
- exceptions: Base exception hierarchy
- logging_setup: Structured logging configuration
"""

from core.config import IndexerConfig, RetryPolicy
from core.exceptions import (
    ConfigurationError,
    ExportError,
    IndexerError,
    NormalizationError,
    PerLogProcessingError,
    Severity,
)
from core.logging_setup import setup_logging


__all__ = [
    "IndexerConfig",
    "RetryPolicy",
    "IndexerError",
    "ConfigurationError",
    "ExportError",
    "NormalizationError",
    "PerLogProcessingError",
    "Severity",
    "setup_logging",
]
