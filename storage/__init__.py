"""
Storage Package.

This package manages all data persistence for the indexer.

Modules:
- database: Engine and session lifecycle
- models/: ORM models (users, events)
- repositories/: Data access layer
- store: ActivityStore facade
"""

from storage.database import Database, DatabaseConfig
from storage.repositories import (
    DuplicateRecordError,
    EventRepository,
    Page,
    PersistenceError,
    RecordNotFoundError,
    StoreUnavailableError,
    UserField,
    UserRepository,
)
from storage.store import ActivityStore, UserEffect, UserPage, event_row_from_activity

__all__ = [
    "ActivityStore",
    "Database",
    "DatabaseConfig",
    "DuplicateRecordError",
    "EventRepository",
    "Page",
    "PersistenceError",
    "RecordNotFoundError",
    "StoreUnavailableError",
    "UserField",
    "UserEffect",
    "UserPage",
    "UserRepository",
    "event_row_from_activity",
]
