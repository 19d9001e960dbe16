"""
Query API Endpoints.

============================================================
PURPOSE
============================================================
HTTP API over the activity store.

PRINCIPLES:
- ALL endpoints are READ-ONLY
- Store calls run in worker threads
- Decimals serialize as strings (no precision loss)

============================================================
ROUTES
============================================================
GET /api/health
GET /api/users?page&limit
GET /api/users/{address}
GET /api/events?page&limit
GET /api/events/user/{address}?page&limit
GET /api/events/summary
GET /api/analytics/monthly

============================================================
"""

import asyncio
import json
import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Tuple

from aiohttp import web

from storage.repositories.base import Page
from storage.repositories.exceptions import PersistenceError
from storage.store import ActivityStore


logger = logging.getLogger(__name__)


DEFAULT_USERS_LIMIT = 10
DEFAULT_EVENTS_LIMIT = 100


# ============================================================
# JSON ENCODER
# ============================================================

class QueryEncoder(json.JSONEncoder):
    """JSON encoder for store records."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.Response(
        text=json.dumps(data, cls=QueryEncoder),
        status=status,
        content_type="application/json",
    )


def error_response(message: str, status: int) -> web.Response:
    return json_response({"error": message}, status=status)


def parse_page(request: web.Request, default_limit: int) -> Page:
    """
    Read 1-based page/limit query parameters.

    Raises:
        ValueError: not integers, or out of range
    """
    page = int(request.query.get("page", 1))
    limit = int(request.query.get("limit", default_limit))
    return Page.from_page(page, limit)


# ============================================================
# API HANDLERS
# ============================================================

class QueryAPI:
    """
    HTTP API for the activity store.

    ALL endpoints are READ-ONLY.
    """

    def __init__(self, store: ActivityStore) -> None:
        self._store = store

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(func, *args)

    # --------------------------------------------------------
    # USERS
    # --------------------------------------------------------

    async def get_users(self, request: web.Request) -> web.Response:
        """
        GET /api/users

        Users, newest first.
        """
        try:
            page = parse_page(request, DEFAULT_USERS_LIMIT)
        except ValueError as e:
            return error_response(f"Invalid pagination: {e}", 400)

        try:
            result = await self._call(self._store.list_users_paginated, page)
        except PersistenceError as e:
            logger.error(f"Error fetching users: {e}")
            return error_response("Failed to fetch users", 500)

        return json_response({
            "users": result.users,
            "total": result.total,
            "page": page.page_number,
            "limit": page.limit,
            "totalPages": math.ceil(result.total / page.limit),
        })

    async def get_user(self, request: web.Request) -> web.Response:
        """
        GET /api/users/{address}
        """
        address = request.match_info["address"]
        try:
            user = await self._call(self._store.get_user, address)
        except PersistenceError as e:
            logger.error(f"Error fetching user {address}: {e}")
            return error_response("Failed to fetch user", 500)

        if user is None:
            return error_response("User not found", 404)
        return json_response(user)

    # --------------------------------------------------------
    # EVENTS
    # --------------------------------------------------------

    async def get_events(self, request: web.Request) -> web.Response:
        """
        GET /api/events

        All events, newest first.
        """
        try:
            page = parse_page(request, DEFAULT_EVENTS_LIMIT)
        except ValueError as e:
            return error_response(f"Invalid pagination: {e}", 400)

        try:
            events = await self._call(self._store.list_all_events, page)
        except PersistenceError as e:
            logger.error(f"Error fetching events: {e}")
            return error_response("Failed to fetch events", 500)

        return json_response({
            "events": events,
            "page": page.page_number,
            "limit": page.limit,
        })

    async def get_user_events(self, request: web.Request) -> web.Response:
        """
        GET /api/events/user/{address}
        """
        address = request.match_info["address"]
        try:
            page = parse_page(request, DEFAULT_EVENTS_LIMIT)
        except ValueError as e:
            return error_response(f"Invalid pagination: {e}", 400)

        try:
            events, total = await self._call(self._user_events, address, page)
        except PersistenceError as e:
            logger.error(f"Error fetching events for {address}: {e}")
            return error_response("Failed to fetch user events", 500)

        return json_response({
            "events": events,
            "userAddress": address.lower(),
            "page": page.page_number,
            "limit": page.limit,
            "total": total,
            "totalPages": math.ceil(total / page.limit),
        })

    def _user_events(self, address: str, page: Page) -> Tuple[list, int]:
        return (
            self._store.list_events_by_user(address, page),
            self._store.count_events_by_user(address),
        )

    async def get_summary(self, request: web.Request) -> web.Response:
        """
        GET /api/events/summary
        """
        try:
            summary = await self._call(self._store.summary)
        except PersistenceError as e:
            logger.error(f"Error fetching events summary: {e}")
            return error_response("Failed to fetch events summary", 500)
        return json_response(summary)

    # --------------------------------------------------------
    # ANALYTICS
    # --------------------------------------------------------

    async def get_monthly(self, request: web.Request) -> web.Response:
        """
        GET /api/analytics/monthly

        New users per month.
        """
        try:
            months = await self._call(self._store.monthly_user_counts)
        except PersistenceError as e:
            logger.error(f"Error fetching monthly analytics: {e}")
            return error_response("Failed to fetch monthly analytics", 500)
        return json_response(months)

    # --------------------------------------------------------
    # HEALTH CHECK
    # --------------------------------------------------------

    async def health(self, request: web.Request) -> web.Response:
        """
        GET /api/health
        """
        healthy = await self._call(self._store.health_check)
        return json_response({
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "query_api",
        }, status=200 if healthy else 503)


# ============================================================
# APP FACTORY
# ============================================================

def create_app(store: ActivityStore, prefix: str = "/api") -> web.Application:
    """
    Create the query API application.

    Returns an aiohttp Application with all routes configured.
    """
    api = QueryAPI(store)

    app = web.Application()
    app.router.add_get(f"{prefix}/health", api.health)
    app.router.add_get(f"{prefix}/users", api.get_users)
    app.router.add_get(f"{prefix}/users/{{address}}", api.get_user)
    app.router.add_get(f"{prefix}/events", api.get_events)
    app.router.add_get(f"{prefix}/events/summary", api.get_summary)
    app.router.add_get(f"{prefix}/events/user/{{address}}", api.get_user_events)
    app.router.add_get(f"{prefix}/analytics/monthly", api.get_monthly)
    return app
