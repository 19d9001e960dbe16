"""
Storage Models Package.

ORM models for the activity store.

============================================================
MODEL ORGANIZATION
============================================================

Activity (activity.py)
- UserRecord
- EventRecord

============================================================
"""

from storage.models.base import Base, TimestampMixin, TokenAmount
from storage.models.activity import EventRecord, UserRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "TokenAmount",
    "UserRecord",
    "EventRecord",
]
