"""Shared fixtures: an in-memory repository and fake supabase clients."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from exceptions import StoreError
from models import ChangeEvent, Contribution, Incentive
from repository import IncentiveRepository, RealtimeListener

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def ts(minutes: int) -> str:
    """ISO timestamp `minutes` after BASE_TIME."""
    return (BASE_TIME + timedelta(minutes=minutes)).isoformat()


class FakeRepository(IncentiveRepository):
    """In-memory store with hooks for failure and echo ordering."""

    def __init__(self, incentives=None, contributions=None):
        self.incentives = [Incentive.from_row(r) for r in incentives or []]
        self.contributions = [Contribution.from_row(r) for r in contributions or []]
        self.handlers = {}
        self.next_id = 1000
        self.fail_insert_with = None
        self.fail_reads_with = None
        self.echo_before_return = False
        self.on_insert = None
        self.insert_calls = []

    def get_all_incentives(self):
        if self.fail_reads_with:
            raise StoreError(self.fail_reads_with, operation="select", table="incentives")
        return list(self.incentives)

    def get_all_contributions(self):
        if self.fail_reads_with:
            raise StoreError(self.fail_reads_with, operation="select", table="contributions")
        return list(self.contributions)

    def insert_contribution(self, incentive_id, amount, note=None):
        self.insert_calls.append({"incentive_id": incentive_id, "amount": amount, "note": note})
        if self.on_insert:
            self.on_insert(incentive_id, amount, note)
        if self.fail_insert_with:
            raise StoreError(self.fail_insert_with, operation="insert", table="contributions")
        self.next_id += 1
        row = {
            "id": self.next_id,
            "incentive_id": incentive_id,
            "amount": amount,
            "note": note,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self.contributions.append(Contribution.from_row(row))
        if self.echo_before_return:
            self.push("INSERT", "contributions", row)
        return Contribution.from_row(row)

    def delete_contribution(self, contribution_id):
        removed = [c for c in self.contributions if c.id == contribution_id]
        self.contributions = [c for c in self.contributions if c.id != contribution_id]
        if removed:
            self.push("DELETE", "contributions", {"id": contribution_id})

    def insert_incentive(self, name, target):
        self.next_id += 1
        row = {"id": self.next_id, "name": name, "target": target, "created_at": BASE_TIME.isoformat()}
        self.incentives.append(Incentive.from_row(row))
        return Incentive.from_row(row)

    def subscribe(self, handler):
        token = len(self.handlers) + 1
        self.handlers[token] = handler
        return token

    def unsubscribe(self, token):
        self.handlers.pop(token, None)

    def push(self, event_type, table, row):
        key = "new" if event_type == "INSERT" else "old"
        event = ChangeEvent.from_payload({"eventType": event_type, "table": table, key: row})
        for handler in list(self.handlers.values()):
            handler(event)


@pytest.fixture
def sample_rows():
    """Three incentives with a few contributions each."""
    incentives = [
        {"id": 1, "name": "New Jobs", "target": 10, "created_at": ts(0)},
        {"id": 2, "name": "New Logos", "target": 20, "created_at": ts(1)},
        {"id": 3, "name": "Sales Incentive – Tier 2", "target": 50000, "created_at": ts(2)},
    ]
    contributions = [
        {"id": 11, "incentive_id": 1, "amount": 3, "note": "first", "created_at": ts(10)},
        {"id": 12, "incentive_id": 1, "amount": 1, "note": None, "created_at": ts(30)},
        {"id": 21, "incentive_id": 2, "amount": 5, "note": "logo", "created_at": ts(20)},
        {"id": 22, "incentive_id": 2, "amount": -1, "note": "refund", "created_at": ts(40)},
        {"id": 31, "incentive_id": 3, "amount": 12000, "note": None, "created_at": ts(5)},
    ]
    return incentives, contributions


@pytest.fixture
def fake_repo(sample_rows):
    incentives, contributions = sample_rows
    return FakeRepository(incentives, contributions)


# ============================================================================
# Fake supabase client
# ============================================================================

class FakeAPIError(Exception):
    """Mimics postgrest's APIError, which carries .message."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def select(self, columns):
        self.calls.append(("select", columns))
        return self

    def order(self, column, desc=False):
        self.calls.append(("order", column, desc))
        return self

    def insert(self, payload):
        self.calls.append(("insert", payload))
        return self

    def delete(self):
        self.calls.append(("delete",))
        return self

    def eq(self, column, value):
        self.calls.append(("eq", column, value))
        return self

    def execute(self):
        self.client.executed.append((self.table, self.calls))
        if self.client.error:
            raise FakeAPIError(self.client.error)
        op = self.calls[0][0]
        if op == "insert":
            row = dict(self.calls[0][1], id=99, created_at=ts(99))
            return SimpleNamespace(data=[row])
        if op == "delete":
            return SimpleNamespace(data=[])
        return SimpleNamespace(data=list(self.client.rows.get(self.table, [])))


class FakeSupabaseClient:
    """Sync client: table queries only, like supabase.create_client()."""

    def __init__(self, rows=None, error=None):
        self.rows = rows or {}
        self.error = error
        self.executed = []

    def table(self, name):
        return FakeQuery(self, name)


class FakeAsyncChannel:
    """Mimics realtime's AsyncRealtimeChannel: subscribe() is a coroutine."""

    def __init__(self, name):
        self.name = name
        self.listeners = []
        self.subscribed = False

    def on_postgres_changes(self, event, callback, table="*", schema="public", filter=None):
        self.listeners.append((event, table, callback))
        return self

    async def subscribe(self, callback=None):
        self.subscribed = True
        return self

    def push(self, payload):
        # The server sends every postgres change to each matching listener
        data = payload["data"]
        for event, table, callback in self.listeners:
            if event == data["type"] and table == data["table"]:
                callback(payload)


class FakeAsyncClient:
    """Mimics supabase.AsyncClient: channel() is sync, remove_channel() is not."""

    def __init__(self, fail_subscribe_with=None):
        self.channels = []
        self.removed = []
        self.fail_subscribe_with = fail_subscribe_with

    def channel(self, name):
        if self.fail_subscribe_with:
            raise ConnectionError(self.fail_subscribe_with)
        channel = FakeAsyncChannel(name)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel):
        self.removed.append(channel)


@pytest.fixture
def supabase_client(sample_rows):
    incentives, contributions = sample_rows
    return FakeSupabaseClient(rows={"incentives": incentives, "contributions": contributions})


@pytest.fixture
def make_repo():
    """Factory for FakeRepository instances."""
    return FakeRepository


@pytest.fixture
def make_supabase_client():
    """Factory for FakeSupabaseClient instances."""
    return FakeSupabaseClient


@pytest.fixture
def async_client():
    return FakeAsyncClient()


@pytest.fixture
def realtime_listener(async_client):
    """A RealtimeListener running the fake async client on its own loop."""
    async def factory():
        return async_client

    listener = RealtimeListener(factory, timeout=5)
    yield listener
    listener.close()
