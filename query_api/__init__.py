"""
Query API Package.

Read-only HTTP access to the activity store.
"""

from query_api.server import QueryAPI, QueryEncoder, create_app

__all__ = [
    "QueryAPI",
    "QueryEncoder",
    "create_app",
]
