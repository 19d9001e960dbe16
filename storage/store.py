"""
Storage - Activity Store.

============================================================
RESPONSIBILITY
============================================================
Facade over the repositories used by the durable aggregator and
the query API.

- One session and one logical write per call
- Maps ActivityEvents onto event rows

============================================================
CONCURRENCY
============================================================
Methods are blocking; async callers run them in worker threads.
Concurrent counter updates go through increment_user (row lock),
never through a client-side read followed by update_user.

============================================================
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from data_ingestion.types import ActivityEvent
from storage.database import Database, DatabaseConfig
from storage.models.activity import EventRecord, UserRecord
from storage.repositories.base import Page
from storage.repositories.events import EventRepository
from storage.repositories.users import UserField, UserRepository


logger = logging.getLogger(__name__)


# events.package_id is a 32-bit INTEGER column
_MAX_PACKAGE_ID = 2**31 - 1


def event_row_from_activity(event: ActivityEvent, participant: str) -> Dict[str, Any]:
    """Map one (event, participant) pair onto an events row."""
    payload = event.payload
    package_id = payload.package_id
    if package_id is not None and not 0 <= package_id <= _MAX_PACKAGE_ID:
        package_id = None
    amount = payload.amount
    return {
        "event_type": event.event_name,
        "user_address": participant.lower(),
        "package_id": package_id,
        "amount": Decimal(amount) if amount is not None else None,
        "referrer_address": payload.referrer,
        "transaction_hash": event.transaction_hash,
        "log_index": event.log_index,
        "block_number": event.block_number,
        "timestamp": event.timestamp,
        "event_data": json.dumps(event.to_dict(), default=str),
    }


@dataclass(frozen=True)
class UserEffect:
    """A user write derived from an event: set a field, or add to it."""
    address: str
    field: UserField
    value: Any
    additive: bool = False


@dataclass
class UserPage:
    """One page of users plus the total row count."""
    users: List[UserRecord]
    total: int
    page: Page


class ActivityStore:
    """
    Persistence adapter for users and events.

    Usage:
        store = ActivityStore.open(DatabaseConfig(url="sqlite://"))
        store.upsert_user("0xabc...")
        store.close()
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    @classmethod
    def open(cls, config: DatabaseConfig, create_schema: bool = True) -> "ActivityStore":
        database = Database(config).open()
        if create_schema:
            database.create_schema()
        return cls(database)

    @property
    def database(self) -> Database:
        return self._database

    def close(self) -> None:
        self._database.close()

    def health_check(self) -> bool:
        return self._database.health_check()

    # =========================================================
    # USERS
    # =========================================================

    def upsert_user(self, address: str) -> UserRecord:
        with self._database.session_scope() as session:
            return UserRepository(session).upsert_user(address)

    def get_user(self, address: str) -> Optional[UserRecord]:
        with self._database.session_scope() as session:
            return UserRepository(session).get_user(address)

    def update_user(
        self,
        address: str,
        fields: Mapping[Union[UserField, str], Any],
    ) -> UserRecord:
        with self._database.session_scope() as session:
            return UserRepository(session).update_user(address, fields)

    def increment_user(
        self,
        address: str,
        field: Union[UserField, str],
        delta: Union[int, Decimal],
    ) -> UserRecord:
        with self._database.session_scope() as session:
            return UserRepository(session).increment_user(address, field, delta)

    def list_users_paginated(self, page: Page) -> UserPage:
        with self._database.session_scope() as session:
            repo = UserRepository(session)
            return UserPage(users=repo.list_users(page), total=repo.count_users(), page=page)

    def monthly_user_counts(self) -> List[Dict[str, Any]]:
        with self._database.session_scope() as session:
            return UserRepository(session).monthly_user_counts()

    # =========================================================
    # EVENTS
    # =========================================================

    def insert_event(self, row: Mapping[str, Any]) -> EventRecord:
        with self._database.session_scope() as session:
            return EventRepository(session).insert_event(row)

    def record_activity(
        self,
        rows: Sequence[Mapping[str, Any]],
        effects: Sequence[UserEffect] = (),
    ) -> int:
        """
        Insert the rows not yet stored and, when any was new, apply the
        user effects in the same transaction.

        Users named by effects must already exist. A failed effect rolls
        back the inserted rows too, so a rescan applies it again.

        Returns:
            Number of rows inserted
        """
        with self._database.session_scope() as session:
            events = EventRepository(session)
            inserted = 0
            for row in rows:
                if events.exists(row["transaction_hash"], row["log_index"], row["user_address"]):
                    continue
                events.insert_event(row)
                inserted += 1

            if inserted:
                users = UserRepository(session)
                for effect in effects:
                    if effect.additive:
                        users.increment_user(effect.address, effect.field, effect.value)
                    else:
                        users.update_user(effect.address, {effect.field: effect.value})
            return inserted

    def list_events_by_user(self, address: str, page: Page) -> List[EventRecord]:
        with self._database.session_scope() as session:
            return EventRepository(session).list_events_by_user(address, page)

    def count_events_by_user(self, address: str) -> int:
        with self._database.session_scope() as session:
            return EventRepository(session).count_events_by_user(address)

    def list_all_events(self, page: Page) -> List[EventRecord]:
        with self._database.session_scope() as session:
            return EventRepository(session).list_all_events(page)

    def count_events(self) -> int:
        with self._database.session_scope() as session:
            return EventRepository(session).count_events()

    def summary(self) -> Dict[str, Any]:
        """Totals and per-type event counts."""
        with self._database.session_scope() as session:
            events = EventRepository(session)
            return {
                "totalEvents": events.count_events(),
                "totalUsers": UserRepository(session).count_users(),
                "eventTypes": events.event_type_counts(),
            }
