"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the base exceptions for the indexing pipeline.

- Provides a clear exception hierarchy
- Separates fatal conditions from per-log recoverable ones
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
IndexerError (base)
├── ConfigurationError
├── NormalizationError
├── PerLogProcessingError
├── ExportError
├── ChainReaderError            (onchain_adapters.exceptions)
│   ├── ChainUnavailable
│   └── FetchError
└── PersistenceError            (storage.repositories.exceptions)
    ├── StoreUnavailableError
    ├── DuplicateRecordError
    ├── IntegrityError
    ├── QueryError
    ├── RecordNotFoundError
    └── TransactionError

============================================================
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels."""

    LOW = "low"
    """Recovered locally, informational."""

    MEDIUM = "medium"
    """Fails a single operation."""

    HIGH = "high"
    """Fails a whole scan or export."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class IndexerError(Exception):
    """
    Base exception for all indexer errors.

    All exceptions carry:
    - severity: how far the failure reaches
    - context: for debugging
    - cause: the underlying exception, if any
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        if ctx_str:
            line += f" | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(IndexerError):
    """Invalid or missing configuration."""

    default_severity = Severity.HIGH

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


# ============================================================
# PER-LOG ERRORS
# ============================================================

class NormalizationError(IndexerError):
    """A raw log or its context could not be turned into an ActivityEvent."""

    default_severity = Severity.LOW

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        raw_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if field_name:
            context["field_name"] = field_name
        if raw_value is not None:
            context["raw_value"] = str(raw_value)[:200]

        super().__init__(message, context=context, **kwargs)
        self.field_name = field_name


class PerLogProcessingError(IndexerError):
    """
    One log's context fetch or decode failed.

    Recovered locally: the log is skipped and the error is recorded
    as a warning in the scan result.
    """

    default_severity = Severity.LOW

    def __init__(
        self,
        message: str,
        transaction_hash: Optional[str] = None,
        log_index: Optional[int] = None,
        block_number: Optional[int] = None,
        stage: str = "fetch",  # fetch, normalize
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context.update({
            "transaction_hash": transaction_hash,
            "log_index": log_index,
            "block_number": block_number,
            "stage": stage,
        })
        super().__init__(message, context=context, **kwargs)
        self.transaction_hash = transaction_hash
        self.log_index = log_index
        self.block_number = block_number
        self.stage = stage


# ============================================================
# EXPORT ERRORS
# ============================================================

class ExportError(IndexerError):
    """
    Writing the report failed.

    Fatal to the export step only; in-memory aggregates stay valid.
    """

    default_severity = Severity.HIGH

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if path:
            context["path"] = path
        super().__init__(message, context=context, **kwargs)
        self.path = path
