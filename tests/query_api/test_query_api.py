"""
Tests for the query API.

============================================================
PURPOSE
============================================================
Exercises every route through aiohttp's test client against an
in-memory store.

TEST PRINCIPLES:
- Verify read-only behavior
- Invalid pagination is a client error
- Store failures surface as 500, never as a crash

============================================================
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from aiohttp import test_utils

from query_api import create_app
from storage.repositories.exceptions import StoreUnavailableError
from storage.repositories.users import UserField
from storage.store import ActivityStore


ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


def add_event(store, n: int, user: str = ALICE, event_type: str = "Transfer") -> None:
    store.insert_event({
        "event_type": event_type,
        "user_address": user,
        "package_id": None,
        "amount": Decimal(10**30),
        "referrer_address": None,
        "transaction_hash": "0x" + format(n, "064x"),
        "log_index": 0,
        "block_number": n,
        "timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=n),
        "event_data": "{}",
    })


@pytest.fixture
def seeded(store):
    for address in (ALICE, BOB):
        store.upsert_user(address)
    store.update_user(ALICE, {UserField.TOTAL_REWARDS: 10**24, UserField.IS_REGISTERED: True})
    for n in range(1, 4):
        add_event(store, n)
    add_event(store, 4, user=BOB, event_type="Approval")
    return store


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, store):
        async with test_utils.TestClient(test_utils.TestServer(create_app(store))) as client:
            resp = await client.get("/api/health")
            data = await resp.json()

        assert resp.status == 200
        assert data["status"] == "healthy"
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_closed_store_is_unhealthy(self, store):
        store.close()

        async with test_utils.TestClient(test_utils.TestServer(create_app(store))) as client:
            resp = await client.get("/api/health")

        assert resp.status == 503


class TestUsersEndpoints:

    @pytest.mark.asyncio
    async def test_list_users(self, seeded):
        async with test_utils.TestClient(test_utils.TestServer(create_app(seeded))) as client:
            resp = await client.get("/api/users", params={"page": "1", "limit": "1"})
            data = await resp.json()

        assert resp.status == 200
        assert data["total"] == 2
        assert data["page"] == 1
        assert data["limit"] == 1
        assert data["totalPages"] == 2
        assert len(data["users"]) == 1
        # Newest first
        assert data["users"][0]["address"] == BOB

    @pytest.mark.asyncio
    async def test_default_pagination(self, seeded):
        async with test_utils.TestClient(test_utils.TestServer(create_app(seeded))) as client:
            data = await (await client.get("/api/users")).json()

        assert data["page"] == 1
        assert data["limit"] == 10
        assert len(data["users"]) == 2

    @pytest.mark.parametrize("params", [
        {"page": "0"},
        {"limit": "0"},
        {"limit": "-5"},
        {"page": "abc"},
        {"limit": "100000"},
    ])
    @pytest.mark.asyncio
    async def test_invalid_pagination(self, seeded, params):
        async with test_utils.TestClient(test_utils.TestServer(create_app(seeded))) as client:
            resp = await client.get("/api/users", params=params)
            data = await resp.json()

        assert resp.status == 400
        assert "error" in data

    @pytest.mark.asyncio
    async def test_get_user(self, seeded):
        async with test_utils.TestClient(test_utils.TestServer(create_app(seeded))) as client:
            resp = await client.get(f"/api/users/{ALICE.upper().replace('0X', '0x')}")
            data = await resp.json()

        assert resp.status == 200
        assert data["address"] == ALICE
        assert data["isRegistered"] is True
        # Decimals travel as strings
        assert data["totalRewards"] == str(10**24)

    @pytest.mark.asyncio
    async def test_unknown_user_is_404(self, seeded):
        async with test_utils.TestClient(test_utils.TestServer(create_app(seeded))) as client:
            resp = await client.get("/api/users/0x" + "00" * 20)
            data = await resp.json()

        assert resp.status == 404
        assert data == {"error": "User not found"}


class TestEventsEndpoints:

    @pytest.mark.asyncio
    async def test_list_events(self, seeded):
        async with test_utils.TestClient(test_utils.TestServer(create_app(seeded))) as client:
            resp = await client.get("/api/events", params={"limit": "2", "page": "2"})
            data = await resp.json()

        assert resp.status == 200
        assert data["page"] == 2
        assert data["limit"] == 2
        assert [e["blockNumber"] for e in data["events"]] == [2, 1]
        assert data["events"][0]["amount"] == str(10**30)

    @pytest.mark.asyncio
    async def test_default_events_limit(self, seeded):
        async with test_utils.TestClient(test_utils.TestServer(create_app(seeded))) as client:
            data = await (await client.get("/api/events")).json()

        assert data["limit"] == 100
        assert len(data["events"]) == 4

    @pytest.mark.asyncio
    async def test_user_events(self, seeded):
        async with test_utils.TestClient(test_utils.TestServer(create_app(seeded))) as client:
            resp = await client.get(f"/api/events/user/{ALICE}", params={"limit": "2"})
            data = await resp.json()

        assert resp.status == 200
        assert data["userAddress"] == ALICE
        assert data["total"] == 3
        assert data["totalPages"] == 2
        assert [e["blockNumber"] for e in data["events"]] == [3, 2]

    @pytest.mark.asyncio
    async def test_summary(self, seeded):
        async with test_utils.TestClient(test_utils.TestServer(create_app(seeded))) as client:
            data = await (await client.get("/api/events/summary")).json()

        assert data["totalEvents"] == 4
        assert data["totalUsers"] == 2
        assert data["eventTypes"][0] == {"eventType": "Transfer", "count": 3}

    @pytest.mark.asyncio
    async def test_monthly_analytics(self, seeded):
        async with test_utils.TestClient(test_utils.TestServer(create_app(seeded))) as client:
            data = await (await client.get("/api/analytics/monthly")).json()

        assert sum(m["count"] for m in data) == 2


class TestStoreFailures:

    @pytest.mark.asyncio
    async def test_persistence_error_is_500(self):
        store = MagicMock(spec=ActivityStore)
        store.list_all_events.side_effect = StoreUnavailableError("list_all_events", "connection lost")

        async with test_utils.TestClient(test_utils.TestServer(create_app(store))) as client:
            resp = await client.get("/api/events")
            data = await resp.json()

        assert resp.status == 500
        assert data == {"error": "Failed to fetch events"}

    @pytest.mark.asyncio
    async def test_summary_failure_is_500(self):
        store = MagicMock(spec=ActivityStore)
        store.summary.side_effect = StoreUnavailableError("summary", "connection lost")

        async with test_utils.TestClient(test_utils.TestServer(create_app(store))) as client:
            resp = await client.get("/api/events/summary")

        assert resp.status == 500
