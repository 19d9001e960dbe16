"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to persistent storage.
All database access MUST go through repository classes.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. One repository per table
2. Session Injection: Sessions are injected, not created internally
3. Explicit Methods: No generic 'execute', clear method names
4. Immutability: events are append-only
5. Exception Handling: All DB errors wrapped in PersistenceError

============================================================
"""

from storage.repositories.base import BaseRepository, Page
from storage.repositories.events import EventRepository
from storage.repositories.exceptions import (
    DuplicateRecordError,
    IntegrityError,
    PersistenceError,
    QueryError,
    RecordNotFoundError,
    StoreUnavailableError,
    TransactionError,
)
from storage.repositories.users import USER_FIELD_COLUMNS, UserField, UserRepository

__all__ = [
    # Base
    "BaseRepository",
    "Page",
    # Repositories
    "EventRepository",
    "UserRepository",
    "UserField",
    "USER_FIELD_COLUMNS",
    # Exceptions
    "PersistenceError",
    "StoreUnavailableError",
    "DuplicateRecordError",
    "IntegrityError",
    "QueryError",
    "RecordNotFoundError",
    "TransactionError",
]
