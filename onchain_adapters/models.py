"""
Chain Reader Models - block references and reader health.

Raw chain objects (logs, transactions, receipts, block headers) are kept
as the JSON-RPC dictionaries the node returns; the normalizer owns their
interpretation.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union


LATEST = "latest"

# Raw JSON-RPC objects
RawLog = Dict[str, Any]
RawTransaction = Dict[str, Any]
RawReceipt = Dict[str, Any]
RawBlock = Dict[str, Any]

# A block height, or the symbolic "latest" resolved at call time
BlockRef = Union[int, str]


def parse_block_ref(value: Union[int, str, None]) -> BlockRef:
    """
    Parse a CLI/config block reference.

    Accepts ints, decimal strings, 0x-hex strings and "latest".
    """
    if value is None:
        return LATEST
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Block number must be >= 0, got {value}")
        return value
    text = str(value).strip().lower()
    if text == LATEST:
        return LATEST
    number = int(text, 16) if text.startswith("0x") else int(text)
    if number < 0:
        raise ValueError(f"Block number must be >= 0, got {number}")
    return number


class ReaderStatus(Enum):
    """Health status of a chain reader."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass
class ReaderHealth:
    """Health status of a chain reader."""
    status: ReaderStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    request_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    latest_block: Optional[int] = None

    def is_healthy(self) -> bool:
        return self.status == ReaderStatus.HEALTHY

    def is_usable(self) -> bool:
        """Check if the reader can still be used."""
        return self.status in (ReaderStatus.HEALTHY, ReaderStatus.DEGRADED, ReaderStatus.UNKNOWN)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "request_count": self.request_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "latest_block": self.latest_block,
        }
