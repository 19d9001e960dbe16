"""
Data Processing - Participant Aggregators.

============================================================
PURPOSE
============================================================
Attributes each normalized event to every participant address.

- InMemoryAggregator: address -> ordered event list, for ad hoc scans
- DurableAggregator: per event and participant, writes users/events
  rows through the ActivityStore
- CompositeAggregator: forwards to several backends at once

============================================================
IDEMPOTENCY
============================================================
Keyed on (transaction_hash, log_index) per bucket. Re-recording an
event never double-counts: the in-memory backend keeps a per-bucket
seen set, the durable backend skips rows already stored and commits
user side effects with the rows they belong to.

============================================================
CONCURRENCY
============================================================
Buckets are not safe under concurrent writers. The scanner drives
record() from a single aggregation task.

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Set, Tuple

from data_ingestion.payloads import (
    REWARD_ACCRUAL_EVENTS,
    BulkReferralRewardPayload,
    NodePurchasedPayload,
    ReferralRegisteredPayload,
    ReferralRewardPayload,
    RewardPayload,
    UserRegisteredPayload,
)
from data_ingestion.types import ActivityEvent, EventKey, normalize_address
from storage.repositories.exceptions import DuplicateRecordError
from storage.repositories.users import UserField
from storage.store import ActivityStore, UserEffect, event_row_from_activity


logger = logging.getLogger(__name__)


class ActivityAggregator(ABC):
    """Aggregation contract shared by all backends."""

    @abstractmethod
    async def record(self, event: ActivityEvent) -> int:
        """
        Attribute an event to its participants.

        Returns:
            Number of buckets that newly received the event (0 if it
            was already recorded everywhere)
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


# =============================================================
# IN-MEMORY
# =============================================================


class InMemoryAggregator(ActivityAggregator):
    """
    Ephemeral address -> [ActivityEvent] map.

    Bucket iteration order is first-discovery order; events are shared
    by reference across buckets.
    """

    def __init__(self) -> None:
        self._buckets: Dict[str, List[ActivityEvent]] = {}
        self._seen: Dict[str, Set[EventKey]] = {}
        self._events: Dict[EventKey, ActivityEvent] = {}

    async def record(self, event: ActivityEvent) -> int:
        return self.add(event)

    def add(self, event: ActivityEvent) -> int:
        """Synchronous form of record()."""
        added = 0
        for address in event.participants:
            seen = self._seen.setdefault(address, set())
            if event.key in seen:
                continue
            seen.add(event.key)
            self._buckets.setdefault(address, []).append(event)
            added += 1
        if added:
            self._events.setdefault(event.key, event)
        return added

    def addresses(self) -> List[str]:
        return list(self._buckets)

    def events_for(self, address: str) -> List[ActivityEvent]:
        return list(self._buckets.get(normalize_address(address) or "", []))

    def buckets(self) -> Dict[str, List[ActivityEvent]]:
        """Snapshot of all buckets, in first-discovery order."""
        return {address: list(events) for address, events in self._buckets.items()}

    def unique_events(self) -> List[ActivityEvent]:
        """Each recorded event once, in recording order."""
        return list(self._events.values())

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and address.lower() in self._buckets

    def __iter__(self) -> Iterator[Tuple[str, List[ActivityEvent]]]:
        return iter(self.buckets().items())

    def __len__(self) -> int:
        return len(self._buckets)


# =============================================================
# DURABLE
# =============================================================


class DurableAggregator(ActivityAggregator):
    """
    Persists each (event, participant) pair through an ActivityStore.

    Store calls are blocking and run in worker threads. User side
    effects derived from the payload commit in the same transaction as
    the event's new rows, so they apply exactly once: a failed effect
    leaves no rows behind and the next scan of the block retries it.
    """

    def __init__(self, store: ActivityStore) -> None:
        self._store = store

    @property
    def store(self) -> ActivityStore:
        return self._store

    async def record(self, event: ActivityEvent) -> int:
        return await asyncio.to_thread(self._record_sync, event)

    def _record_sync(self, event: ActivityEvent) -> int:
        effects = self.side_effects(event)
        for address in dict.fromkeys([*event.participants, *(e.address for e in effects)]):
            self._store.upsert_user(address)

        rows = [event_row_from_activity(event, address) for address in event.participants]
        try:
            added = self._store.record_activity(rows, effects)
        except DuplicateRecordError:
            # Another writer stored a row first; the retry skips it
            added = self._store.record_activity(rows, effects)

        if not added:
            logger.debug(f"[durable] Already ingested {event.transaction_hash}:{event.log_index}")
        return added

    @staticmethod
    def side_effects(event: ActivityEvent) -> List[UserEffect]:
        """User writes the event implies, applied with its first new row."""
        payload = event.payload
        effects: List[UserEffect] = []

        if isinstance(payload, (NodePurchasedPayload, UserRegisteredPayload)):
            user = normalize_address(payload.user)
            if user:
                effects.append(UserEffect(user, UserField.IS_REGISTERED, True))

        elif isinstance(payload, ReferralRegisteredPayload):
            referrer = normalize_address(payload.referrer_address)
            if referrer:
                effects.append(
                    UserEffect(referrer, UserField.TOTAL_REFERRALS, payload.total_referral_count)
                )

        elif isinstance(payload, BulkReferralRewardPayload):
            user = normalize_address(payload.user)
            if user:
                effects.extend([
                    UserEffect(user, UserField.IS_REGISTERED, True),
                    UserEffect(user, UserField.ASCENSION_BONUS_REFERRALS, payload.referral_count),
                    UserEffect(user, UserField.ASCENSION_BONUS_SALES_TOTAL, payload.sales_total),
                    UserEffect(user, UserField.ASCENSION_BONUS_REWARDS_CLAIMED, payload.reward_amount),
                ])

        if event.event_name in REWARD_ACCRUAL_EVENTS and payload.amount:
            if isinstance(payload, ReferralRewardPayload):
                beneficiary = normalize_address(payload.referrer_address)
            elif isinstance(payload, RewardPayload):
                beneficiary = normalize_address(payload.beneficiary)
            else:
                beneficiary = None
            if beneficiary:
                effects.append(
                    UserEffect(beneficiary, UserField.TOTAL_REWARDS, payload.amount, additive=True)
                )
        return effects

    async def close(self) -> None:
        await asyncio.to_thread(self._store.close)


# =============================================================
# COMPOSITE
# =============================================================


class CompositeAggregator(ActivityAggregator):
    """
    Forwards every event to each backend in order.

    record() returns the first backend's count.
    """

    def __init__(self, *backends: ActivityAggregator) -> None:
        if not backends:
            raise ValueError("CompositeAggregator needs at least one backend")
        self._backends = backends

    @property
    def backends(self) -> Tuple[ActivityAggregator, ...]:
        return self._backends

    async def record(self, event: ActivityEvent) -> int:
        counts = [await backend.record(event) for backend in self._backends]
        return counts[0]

    async def close(self) -> None:
        for backend in self._backends:
            await backend.close()
