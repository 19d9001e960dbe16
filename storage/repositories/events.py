"""
Storage - Event Repository.

============================================================
RESPONSIBILITY
============================================================
Append-only access to attributed event rows.

- Inserts never update; a duplicate raises DuplicateRecordError
- Stable ordering: timestamp DESC, id DESC

============================================================
"""

from typing import Any, Dict, List, Mapping

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from storage.models.activity import EventRecord
from storage.repositories.base import BaseRepository, Page


class EventRepository(BaseRepository[EventRecord]):
    """Data access for the events table."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, EventRecord, "EventRepository")

    def insert_event(self, row: Mapping[str, Any]) -> EventRecord:
        """
        Append one event row.

        Raises:
            DuplicateRecordError: (transaction_hash, log_index, user_address)
                already stored
        """
        entity = EventRecord(**row)
        key = f"{entity.transaction_hash}:{entity.log_index}:{entity.user_address}"
        return self._add(entity, {"transaction_hash:log_index:user_address": key})

    def exists(self, transaction_hash: str, log_index: int, user_address: str) -> bool:
        return self._count(
            EventRecord.transaction_hash == transaction_hash.lower(),
            EventRecord.log_index == log_index,
            EventRecord.user_address == user_address.lower(),
        ) > 0

    def list_events_by_user(self, address: str, page: Page) -> List[EventRecord]:
        stmt = (
            select(EventRecord)
            .where(EventRecord.user_address == address.lower())
            .order_by(EventRecord.timestamp.desc(), EventRecord.id.desc())
            .limit(page.limit)
            .offset(page.offset)
        )
        return self._execute_query(stmt)

    def list_all_events(self, page: Page) -> List[EventRecord]:
        stmt = (
            select(EventRecord)
            .order_by(EventRecord.timestamp.desc(), EventRecord.id.desc())
            .limit(page.limit)
            .offset(page.offset)
        )
        return self._execute_query(stmt)

    def count_events(self) -> int:
        return self._count()

    def count_events_by_user(self, address: str) -> int:
        return self._count(EventRecord.user_address == address.lower())

    def event_type_counts(self) -> List[Dict[str, Any]]:
        """Row count per event type, most frequent first."""
        count = func.count().label("count")
        stmt = (
            select(EventRecord.event_type, count)
            .group_by(EventRecord.event_type)
            .order_by(count.desc(), EventRecord.event_type)
        )
        rows = self._execute_rows(stmt, "event_type_counts")
        return [{"eventType": row.event_type, "count": int(row.count)} for row in rows]
