"""
Activity Domain ORM Models.

============================================================
PURPOSE
============================================================
Models for the indexed users and their on-chain events.
This is the durable aggregator's persistence target.

============================================================
DATA LIFECYCLE ROLE
============================================================
- users: one row per address; counters updated by side effects
- events: APPEND-ONLY, one row per (log, participant)
- Consumers: query API, reports, analytics

============================================================
MODELS
============================================================
- UserRecord: per-address profile and counters
- EventRecord: one attributed event

============================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin, TokenAmount


# BIGSERIAL on PostgreSQL, INTEGER PRIMARY KEY (rowid) on SQLite
_PK_TYPE = BigInteger().with_variant(Integer, "sqlite")


class UserRecord(Base, TimestampMixin):
    """
    An address seen as a participant of at least one event.

    ============================================================
    COUNTERS
    ============================================================
    - total_referrals: last reported referral count
    - total_rewards: accrued reward amount (base units)
    - is_registered: purchased at least one node
    - ascension_bonus_*: opaque contract-level counters

    ============================================================
    """

    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True, autoincrement=True)

    address: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        unique=True,
        comment="Lowercase 0x-prefixed address"
    )

    total_referrals: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    total_rewards: Mapped[Decimal] = mapped_column(
        TokenAmount, nullable=False, default=Decimal(0), server_default="0"
    )

    is_registered: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    ascension_bonus_referrals: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    ascension_bonus_sales_total: Mapped[Decimal] = mapped_column(
        TokenAmount, nullable=False, default=Decimal(0), server_default="0"
    )

    ascension_bonus_rewards_claimed: Mapped[Decimal] = mapped_column(
        TokenAmount, nullable=False, default=Decimal(0), server_default="0"
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "totalReferrals": self.total_referrals,
            "totalRewards": self.total_rewards,
            "isRegistered": self.is_registered,
            "ascensionBonusReferrals": self.ascension_bonus_referrals,
            "ascensionBonusSalesTotal": self.ascension_bonus_sales_total,
            "ascensionBonusRewardsClaimed": self.ascension_bonus_rewards_claimed,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<UserRecord(address={self.address}, registered={self.is_registered})>"


class EventRecord(Base):
    """
    One event attributed to one participant.

    ============================================================
    IDEMPOTENCY
    ============================================================
    (transaction_hash, log_index, user_address) is unique, so a
    re-scan of an overlapping range inserts nothing new.

    ============================================================
    """

    __tablename__ = "events"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True, autoincrement=True)

    event_type: Mapped[str] = mapped_column(
        String(100), nullable=False, comment="Resolved event name or Unknown"
    )

    user_address: Mapped[str] = mapped_column(String(42), nullable=False)

    package_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    amount: Mapped[Optional[Decimal]] = mapped_column(TokenAmount, nullable=True)

    referrer_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)

    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)

    log_index: Mapped[int] = mapped_column(Integer, nullable=False)

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, comment="Block timestamp (UTC)"
    )

    event_data: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="JSON document with the full normalized event"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index(
            "uq_events_log_participant",
            "transaction_hash", "log_index", "user_address",
            unique=True,
        ),
        Index("idx_events_user_address", "user_address"),
        Index("idx_events_event_type", "event_type"),
        Index("idx_events_package_id", "package_id"),
        Index("idx_events_block_number", "block_number"),
        Index("idx_events_timestamp", "timestamp"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "eventType": self.event_type,
            "userAddress": self.user_address,
            "packageId": self.package_id,
            "amount": self.amount,
            "referrerAddress": self.referrer_address,
            "transactionHash": self.transaction_hash,
            "logIndex": self.log_index,
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "eventData": self.event_data,
            "createdAt": self.created_at,
        }

    def __repr__(self) -> str:
        return (
            f"<EventRecord({self.event_type} {self.transaction_hash}:{self.log_index} "
            f"user={self.user_address})>"
        )
