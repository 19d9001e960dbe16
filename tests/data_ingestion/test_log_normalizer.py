"""
Tests for the log normalizer.

============================================================
PURPOSE
============================================================
TEST PRINCIPLES:
- Normalization is pure and deterministic
- Unknown topics are named "Unknown", never an error
- Undecodable payloads of known events stay opaque
- Missing mandatory fields raise NormalizationError

============================================================
"""

from datetime import datetime, timezone

import pytest

from core.exceptions import NormalizationError
from data_ingestion.normalizers import LogNormalizer
from data_ingestion.normalizers.log_normalizer import parse_quantity
from data_ingestion.payloads import (
    BulkReferralRewardPayload,
    NodePurchasedPayload,
    OpaquePayload,
    RewardPayload,
    TransferPayload,
    UnknownPayload,
)
from data_ingestion.signatures import EventSignature
from data_ingestion.types import ExecutionStatus


TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

SENDER = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"
TOKEN = "0x" + "ab" * 20

# 2024-01-15T12:00:00Z
BLOCK_TS = 1705320000


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:].lower()


def word(value: int) -> str:
    return format(value, "064x")


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def normalizer():
    return LogNormalizer()


@pytest.fixture
def transfer_log():
    return {
        "address": TOKEN.upper().replace("0X", "0x"),
        "topics": [TRANSFER_TOPIC, address_topic(SENDER), address_topic(RECIPIENT)],
        "data": "0x" + word(1000),
        "blockNumber": "0x64",
        "transactionHash": "0x" + "CD" * 32,
        "transactionIndex": "0x2",
        "logIndex": "0x5",
    }


@pytest.fixture
def transaction():
    return {"from": SENDER, "to": TOKEN, "value": "0x0"}


@pytest.fixture
def receipt():
    return {"status": "0x1", "gasUsed": "0x5208"}


@pytest.fixture
def block():
    return {"number": "0x64", "timestamp": hex(BLOCK_TS)}


# ============================================================
# QUANTITIES
# ============================================================

class TestParseQuantity:
    """Tests for JSON-RPC quantity parsing."""

    def test_hex_and_decimal(self):
        assert parse_quantity("0x10", "f") == 16
        assert parse_quantity("10", "f") == 10
        assert parse_quantity(7, "f") == 7

    def test_rejects_bool(self):
        with pytest.raises(NormalizationError):
            parse_quantity(True, "f")

    def test_rejects_missing(self):
        with pytest.raises(NormalizationError):
            parse_quantity(None, "f")

    def test_rejects_garbage(self):
        with pytest.raises(NormalizationError) as exc_info:
            parse_quantity("0xzz", "receipt.gasUsed")
        assert exc_info.value.field_name == "receipt.gasUsed"


# ============================================================
# NORMALIZATION
# ============================================================

class TestLogNormalizer:
    """Tests for LogNormalizer.normalize."""

    def test_transfer_is_fully_normalized(self, normalizer, transfer_log, transaction, receipt, block):
        event = normalizer.normalize(transfer_log, transaction, receipt, block)

        assert event.block_number == 100
        assert event.transaction_hash == "0x" + "cd" * 32
        assert event.transaction_index == 2
        assert event.log_index == 5
        assert event.contract_address == TOKEN
        assert event.sender == SENDER
        assert event.recipient == TOKEN
        assert event.gas_used == 21000
        assert event.status == ExecutionStatus.SUCCESS
        assert event.timestamp == datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert event.event_name == "Transfer"
        assert event.signature_hash == TRANSFER_TOPIC
        assert event.payload == TransferPayload(SENDER, RECIPIENT, 1000)
        assert event.payload.amount == 1000

    def test_is_deterministic(self, normalizer, transfer_log, transaction, receipt, block):
        first = normalizer.normalize(transfer_log, transaction, receipt, block)
        second = normalizer.normalize(transfer_log, transaction, receipt, block)
        assert first == second

    def test_failed_status(self, normalizer, transfer_log, transaction, block):
        event = normalizer.normalize(
            transfer_log, transaction, {"status": "0x0", "gasUsed": "0x5208"}, block
        )
        assert event.status == ExecutionStatus.FAILURE
        assert not event.succeeded

    def test_missing_status_counts_as_failure(self, normalizer, transfer_log, transaction, block):
        event = normalizer.normalize(transfer_log, transaction, {"gasUsed": "0x1"}, block)
        assert event.status == ExecutionStatus.FAILURE

    def test_contract_creation_has_no_recipient(self, normalizer, transfer_log, receipt, block):
        tx = {"from": SENDER, "to": None, "value": "0x0"}

        event = normalizer.normalize(transfer_log, tx, receipt, block)

        assert event.recipient is None
        assert event.participants == (SENDER, TOKEN)

    def test_unknown_topic(self, normalizer, transfer_log, transaction, receipt, block):
        unknown = "0x" + "12" * 32
        transfer_log["topics"] = [unknown]

        event = normalizer.normalize(transfer_log, transaction, receipt, block)

        assert event.event_name == "Unknown"
        assert event.payload == UnknownPayload(unknown)

    def test_no_topics(self, normalizer, transfer_log, transaction, receipt, block):
        transfer_log["topics"] = []

        event = normalizer.normalize(transfer_log, transaction, receipt, block)

        assert event.event_name == "Unknown"
        assert event.signature_hash is None

    def test_indexed_count_mismatch_is_opaque(self, normalizer, transfer_log, transaction, receipt, block):
        # ERC-721 Transfer shares topic0 but indexes the token id too
        transfer_log["topics"] = transfer_log["topics"] + ["0x" + word(42)]
        transfer_log["data"] = "0x"

        event = normalizer.normalize(transfer_log, transaction, receipt, block)

        assert event.event_name == "Transfer"
        assert isinstance(event.payload, OpaquePayload)

    def test_garbled_data_is_opaque(self, normalizer, transfer_log, transaction, receipt, block):
        transfer_log["data"] = "0x1234"

        event = normalizer.normalize(transfer_log, transaction, receipt, block)

        assert event.event_name == "Transfer"
        assert event.payload == OpaquePayload()

    def test_node_purchased_payload(self, normalizer, transfer_log, transaction, receipt, block):
        signature = EventSignature.parse(
            "NodePurchased(address indexed user, uint256 indexed packageId, "
            "uint256 purchaseTime, uint256 expiryTime, uint256 currentNodeId)"
        )
        transfer_log["topics"] = [signature.topic, address_topic(SENDER), "0x" + word(3)]
        transfer_log["data"] = "0x" + word(BLOCK_TS) + word(BLOCK_TS + 86400) + word(17)

        event = normalizer.normalize(transfer_log, transaction, receipt, block)

        assert event.event_name == "NodePurchased"
        assert event.payload == NodePurchasedPayload(
            user=SENDER,
            package=3,
            purchase_time=BLOCK_TS,
            expiry_time=BLOCK_TS + 86400,
            node_id=17,
        )
        assert event.payload.package_id == 3

    def test_bulk_referral_reward_payload(self, normalizer, transfer_log, transaction, receipt, block):
        signature = EventSignature.parse(
            "BulkReferralRewardEarned(address indexed user, uint256 indexed _packageId, "
            "uint256 referralCount, uint256 salesTotal, uint256 rewardAmount)"
        )
        transfer_log["topics"] = [signature.topic, address_topic(SENDER), "0x" + word(2)]
        transfer_log["data"] = "0x" + word(10) + word(5000 * 10**18) + word(250 * 10**18)

        event = normalizer.normalize(transfer_log, transaction, receipt, block)

        assert event.event_name == "BulkReferralRewardEarned"
        assert event.payload == BulkReferralRewardPayload(
            user=SENDER,
            package=2,
            referral_count=10,
            sales_total=5000 * 10**18,
            reward_amount=250 * 10**18,
        )
        assert event.payload.amount == 250 * 10**18

    def test_level_reward_payload(self, normalizer, transfer_log, transaction, receipt, block):
        signature = EventSignature.parse(
            "UserReleaseRewardLevel(address indexed user, uint256 amount, uint256 nodeIndex, "
            "address referral, uint256 level)"
        )
        transfer_log["topics"] = [signature.topic, address_topic(SENDER)]
        transfer_log["data"] = "0x" + word(300) + word(4) + address_topic(RECIPIENT)[2:] + word(1)

        event = normalizer.normalize(transfer_log, transaction, receipt, block)

        assert isinstance(event.payload, RewardPayload)
        assert event.payload.package_id == 4
        assert event.payload.beneficiary == RECIPIENT
        assert event.payload.referrer == RECIPIENT

    def test_package_catalogue_event_is_opaque(self, normalizer, transfer_log, transaction, receipt, block):
        signature = EventSignature.parse(
            "NodePackageAdded(uint256 indexed id, string name, uint256 price, "
            "uint256 duration, uint256 roiPercentage)"
        )
        name = b"Genesis"
        transfer_log["topics"] = [signature.topic, "0x" + word(7)]
        transfer_log["data"] = (
            "0x" + word(0x80) + word(100 * 10**18) + word(365) + word(12)
            + word(len(name)) + name.hex().ljust(64, "0")
        )

        event = normalizer.normalize(transfer_log, transaction, receipt, block)

        assert event.event_name == "NodePackageAdded"
        assert isinstance(event.payload, OpaquePayload)
        assert event.payload.get("name") == "Genesis"
        assert event.payload.package_id == 7
        assert event.payload.amount is None

    @pytest.mark.parametrize("source,key", [
        ("log", "transactionHash"),
        ("log", "logIndex"),
        ("log", "blockNumber"),
        ("transaction", "from"),
        ("receipt", "gasUsed"),
        ("block", "timestamp"),
    ])
    def test_missing_mandatory_field_raises(
        self, normalizer, transfer_log, transaction, receipt, block, source, key
    ):
        objects = {
            "log": transfer_log,
            "transaction": transaction,
            "receipt": receipt,
            "block": block,
        }
        del objects[source][key]

        with pytest.raises(NormalizationError):
            normalizer.normalize(transfer_log, transaction, receipt, block)
