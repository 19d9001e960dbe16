"""
Core Module - Configuration.

============================================================
CONFIGURABLE SCANNING
============================================================

All pipeline parameters are configurable:
- Chain node endpoint and request timeout
- Worker pool size and log chunk size
- Caller-level retry policy
- Node unavailability threshold

Configuration can be loaded from:
- Default values
- Environment variables (a .env file is honoured)
- CLI overrides

============================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

load_dotenv()


DEFAULT_RPC_URL = "http://localhost:8545"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


# =============================================================
# RETRY POLICY
# =============================================================


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    Applied by the caller of the chain reader, never inside it.
    delay(attempt) = min(backoff_base * backoff_factor ** attempt, max_delay)
    """
    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_factor: float = 2.0
    max_delay: float = 10.0

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given 0-based failed attempt."""
        return min(self.backoff_base * (self.backoff_factor ** attempt), self.max_delay)

    def validate(self) -> List[str]:
        errors = []
        if self.max_attempts < 1:
            errors.append("max_attempts must be at least 1")
        if self.backoff_base < 0:
            errors.append("backoff_base must be >= 0")
        if self.backoff_factor < 1:
            errors.append("backoff_factor must be >= 1")
        if self.max_delay < 0:
            errors.append("max_delay must be >= 0")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "backoff_base": self.backoff_base,
            "backoff_factor": self.backoff_factor,
            "max_delay": self.max_delay,
        }


# =============================================================
# MAIN CONFIGURATION
# =============================================================


@dataclass
class IndexerConfig:
    """
    Main configuration for a scan.

    Combines the chain endpoint, concurrency bounds and retry policy.
    """
    rpc_url: str = DEFAULT_RPC_URL

    # Per-request timeout against the chain node
    request_timeout_seconds: float = 30.0

    # Bounded worker pool for per-log context fetches
    max_concurrency: int = 8

    # eth_getLogs is issued per chunk of this many blocks
    log_chunk_size: int = 10_000

    # Consecutive ChainUnavailable failures before a scan is aborted
    unavailable_threshold: int = 5

    retry: RetryPolicy = field(default_factory=RetryPolicy)

    # Size of the "recent events" window in per-address reports
    recent_events_window: int = 10

    # Top-K for the most active ranking
    most_active_limit: int = 10

    @classmethod
    def from_env(cls) -> "IndexerConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - RPC_URL
        - INDEXER_REQUEST_TIMEOUT
        - INDEXER_MAX_CONCURRENCY
        - INDEXER_LOG_CHUNK_SIZE
        - INDEXER_UNAVAILABLE_THRESHOLD
        - INDEXER_RETRY_ATTEMPTS
        - INDEXER_RETRY_BACKOFF_BASE
        - INDEXER_RETRY_MAX_DELAY
        """
        defaults = cls()
        retry = RetryPolicy(
            max_attempts=_env_int("INDEXER_RETRY_ATTEMPTS", defaults.retry.max_attempts),
            backoff_base=_env_float("INDEXER_RETRY_BACKOFF_BASE", defaults.retry.backoff_base),
            max_delay=_env_float("INDEXER_RETRY_MAX_DELAY", defaults.retry.max_delay),
        )
        return cls(
            rpc_url=os.getenv("RPC_URL") or defaults.rpc_url,
            request_timeout_seconds=_env_float(
                "INDEXER_REQUEST_TIMEOUT", defaults.request_timeout_seconds
            ),
            max_concurrency=_env_int("INDEXER_MAX_CONCURRENCY", defaults.max_concurrency),
            log_chunk_size=_env_int("INDEXER_LOG_CHUNK_SIZE", defaults.log_chunk_size),
            unavailable_threshold=_env_int(
                "INDEXER_UNAVAILABLE_THRESHOLD", defaults.unavailable_threshold
            ),
            retry=retry,
        )

    def validate(self) -> List[str]:
        """Return a list of validation errors (empty when valid)."""
        errors = []
        if not self.rpc_url:
            errors.append("rpc_url is required")
        if self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")
        if self.max_concurrency < 1:
            errors.append("max_concurrency must be at least 1")
        if self.log_chunk_size < 1:
            errors.append("log_chunk_size must be at least 1")
        if self.unavailable_threshold < 1:
            errors.append("unavailable_threshold must be at least 1")
        if self.recent_events_window < 1:
            errors.append("recent_events_window must be at least 1")
        if self.most_active_limit < 1:
            errors.append("most_active_limit must be at least 1")
        errors.extend(f"retry.{e}" for e in self.retry.validate())
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rpc_url": self.rpc_url,
            "request_timeout_seconds": self.request_timeout_seconds,
            "max_concurrency": self.max_concurrency,
            "log_chunk_size": self.log_chunk_size,
            "unavailable_threshold": self.unavailable_threshold,
            "retry": self.retry.to_dict(),
            "recent_events_window": self.recent_events_window,
            "most_active_limit": self.most_active_limit,
        }
