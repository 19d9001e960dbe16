"""
Data Ingestion - Type Definitions.

============================================================
PURPOSE
============================================================
Shared types for the ingestion layer.

- ActivityEvent: one normalized log with its transaction context
- Participant extraction rule
- Scan result type

============================================================
DESIGN PRINCIPLES
============================================================
- Immutable data structures where possible
- Amounts are ints (arbitrary precision), never floats
- Addresses lowercase hex so checksum casing never splits a bucket
- Serializable for monitoring

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from data_ingestion.payloads import EventPayload, UnknownPayload


ZERO_ADDRESS = "0x" + "0" * 40

UNKNOWN_EVENT = "Unknown"


# =============================================================
# ENUMS
# =============================================================

class ExecutionStatus(str, Enum):
    """Receipt outcome of the transaction that emitted a log."""
    SUCCESS = "success"
    FAILURE = "failure"


# =============================================================
# PARTICIPANTS
# =============================================================

def normalize_address(address: Optional[str]) -> Optional[str]:
    """Lowercase an address; empty values become None."""
    if address is None:
        return None
    address = str(address).strip().lower()
    return address or None


def extract_participants(
    sender: Optional[str],
    recipient: Optional[str],
    contract: Optional[str],
) -> Tuple[str, ...]:
    """
    Addresses causally involved in a log.

    {sender, recipient if present, contract} with null/empty values and
    the zero address removed, deduplicated in that order.
    """
    participants: List[str] = []
    for candidate in (sender, recipient, contract):
        address = normalize_address(candidate)
        if address is None or address == ZERO_ADDRESS:
            continue
        if address not in participants:
            participants.append(address)
    return tuple(participants)


# =============================================================
# ACTIVITY EVENT
# =============================================================

EventKey = Tuple[str, int]


@dataclass(frozen=True)
class ActivityEvent:
    """
    One emitted log joined with its transaction, receipt and block.

    Identity is (transaction_hash, log_index).
    """
    block_number: int
    transaction_hash: str
    log_index: int
    contract_address: str
    sender: str
    recipient: Optional[str]
    value: int
    gas_used: int
    status: ExecutionStatus
    timestamp: datetime

    transaction_index: int = 0
    topics: Tuple[str, ...] = ()
    data: str = "0x"
    signature_hash: Optional[str] = None
    event_name: str = UNKNOWN_EVENT
    payload: EventPayload = field(default_factory=UnknownPayload)

    @property
    def key(self) -> EventKey:
        return (self.transaction_hash, self.log_index)

    @property
    def participants(self) -> Tuple[str, ...]:
        return extract_participants(self.sender, self.recipient, self.contract_address)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        """Chain order: block, transaction index, log index."""
        return (self.block_number, self.transaction_index, self.log_index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block_number": self.block_number,
            "transaction_hash": self.transaction_hash,
            "transaction_index": self.transaction_index,
            "log_index": self.log_index,
            "contract_address": self.contract_address,
            "sender": self.sender,
            "recipient": self.recipient,
            "value": str(self.value),
            "gas_used": self.gas_used,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "signature_hash": self.signature_hash,
            "event_name": self.event_name,
            "topics": list(self.topics),
            "data": self.data,
            "payload": self.payload.as_dict(),
        }


# =============================================================
# SCAN RESULT
# =============================================================

@dataclass
class ScanResult:
    """Outcome of one scan over a block range."""
    from_block: int
    to_block: int
    started_at: datetime
    completed_at: Optional[datetime] = None

    logs_seen: int = 0
    events_recorded: int = 0
    attributions: int = 0
    duplicates: int = 0
    skipped: int = 0
    cancelled: bool = False

    warnings: List[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/monitoring."""
        return {
            "from_block": self.from_block,
            "to_block": self.to_block,
            "logs_seen": self.logs_seen,
            "events_recorded": self.events_recorded,
            "attributions": self.attributions,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "duration_seconds": self.duration_seconds,
            "warning_count": len(self.warnings),
            "warnings": self.warnings[:5],  # Limit for logging
        }
