"""
Shared fixtures for the indexer tests.
"""

from datetime import datetime, timezone

import pytest

from data_ingestion.payloads import UnknownPayload
from data_ingestion.types import ActivityEvent, ExecutionStatus
from storage.database import DatabaseConfig
from storage.store import ActivityStore


SENDER = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"
CONTRACT = "0x3333333333333333333333333333333333333333"


@pytest.fixture
def make_event():
    """Factory for ActivityEvents with overridable fields."""

    def _make(**overrides):
        fields = {
            "block_number": 100,
            "transaction_hash": "0x" + "ab" * 32,
            "log_index": 0,
            "contract_address": CONTRACT,
            "sender": SENDER,
            "recipient": RECIPIENT,
            "value": 0,
            "gas_used": 21000,
            "status": ExecutionStatus.SUCCESS,
            "timestamp": datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
            "event_name": "Transfer",
            "payload": UnknownPayload(),
        }
        fields.update(overrides)
        return ActivityEvent(**fields)

    return _make


@pytest.fixture
def store():
    """ActivityStore on a fresh in-memory SQLite database."""
    activity_store = ActivityStore.open(DatabaseConfig(url="sqlite://"))
    yield activity_store
    activity_store.close()
