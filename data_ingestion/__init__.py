"""
Data Ingestion Package.

Turns raw chain logs into normalized ActivityEvents.
No aggregation or persistence logic - only acquisition and normalization.

Modules:
- signatures: topic0 -> event declaration table
- payloads: typed decoded payload variants
- normalizers: raw log + context -> ActivityEvent
- scanner: bounded, cancellable scan over a block range
"""

from data_ingestion.types import (
    UNKNOWN_EVENT,
    ZERO_ADDRESS,
    ActivityEvent,
    EventKey,
    ExecutionStatus,
    ScanResult,
    extract_participants,
    normalize_address,
)
from data_ingestion.payloads import (
    ApprovalPayload,
    BulkReferralRewardPayload,
    EventPayload,
    NodePurchasedPayload,
    OpaquePayload,
    ReferralRegisteredPayload,
    ReferralRewardPayload,
    RewardPayload,
    TransferPayload,
    UnknownPayload,
    UserRegisteredPayload,
)
from data_ingestion.signatures import EventParam, EventSignature, EventSignatureTable
from data_ingestion.normalizers import LogNormalizer
from data_ingestion.scanner import ActivityScanner, ScanCancellation


__all__ = [
    # Types
    "UNKNOWN_EVENT",
    "ZERO_ADDRESS",
    "ActivityEvent",
    "EventKey",
    "ExecutionStatus",
    "ScanResult",
    "extract_participants",
    "normalize_address",
    # Payloads
    "ApprovalPayload",
    "BulkReferralRewardPayload",
    "EventPayload",
    "NodePurchasedPayload",
    "OpaquePayload",
    "ReferralRegisteredPayload",
    "ReferralRewardPayload",
    "RewardPayload",
    "TransferPayload",
    "UnknownPayload",
    "UserRegisteredPayload",
    # Signatures
    "EventParam",
    "EventSignature",
    "EventSignatureTable",
    # Pipeline
    "LogNormalizer",
    "ActivityScanner",
    "ScanCancellation",
]
