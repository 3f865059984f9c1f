"""Shared fixtures: in-memory stores, a controllable clock and a Supabase double."""
import asyncio
import copy
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import pytest
import pytest_asyncio
from postgrest.exceptions import APIError

from config import Settings
from main import create_app
from oauth.agents import AgentService
from oauth.authorization import AuthorizationService
from oauth.identity import StaticIdentityProvider
from oauth.registry import ClientRegistry
from oauth.stores import MemoryOAuthStore
from oauth.token_exchange import TokenExchange
from state.catalog import Drug, MemoryCatalogStore
from state.modifiers import MemoryModifierStore
from state.usage import MemoryUsageStore


class FakeClock:
    def __init__(self, now: datetime = None):
        self.now = now or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Supabase query builder double
# ---------------------------------------------------------------------------

class FakeQuery:
    def __init__(self, db, name):
        self.db = db
        self.name = name
        self.op = "select"
        self.payload = None
        self.filters = []
        self.row_limit = None

    def select(self, *columns):
        self.op = "select"
        return self

    def insert(self, row):
        self.op, self.payload = "insert", row
        return self

    def update(self, values):
        self.op, self.payload = "update", values
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def limit(self, n):
        self.row_limit = n
        return self

    def order(self, column):
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    async def execute(self):
        # Yield so concurrent callers interleave like real network I/O
        await asyncio.sleep(0)
        self.db.calls.append((self.name, self.op, list(self.filters)))
        if self.name in self.db.failing:
            raise APIError({"message": "boom", "code": "XX000", "hint": None, "details": None})
        if self.name in self.db.unreachable:
            raise httpx.ConnectError("connection refused")

        rows = self.db.tables.setdefault(self.name, [])
        if self.op == "insert":
            for column_set in self.db.unique.get(self.name, []):
                if any(all(r.get(c) == self.payload.get(c) for c in column_set) for r in rows):
                    raise APIError({"message": "duplicate key", "code": "23505", "hint": None, "details": None})
            rows.append(copy.deepcopy(self.payload))
            return SimpleNamespace(data=[copy.deepcopy(self.payload)])

        matched = [r for r in rows if self._matches(r)]
        if self.op == "update":
            for r in matched:
                r.update(copy.deepcopy(self.payload))
        elif self.op == "delete":
            self.db.tables[self.name] = [r for r in rows if not self._matches(r)]
        if self.row_limit is not None:
            matched = matched[:self.row_limit]
        return SimpleNamespace(data=copy.deepcopy(matched))


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.unique = {"active_drugs": [("user_id", "agent_id")]}
        self.calls = []
        self.failing = set()
        self.unreachable = set()

    def table(self, name):
        return FakeQuery(self, name)

    def writes(self, name):
        return [c for c in self.calls if c[0] == name and c[1] in ("insert", "update", "delete")]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryOAuthStore()


@pytest.fixture
def agents(store, clock):
    return AgentService(store, clock)


@pytest.fixture
def registry(store, clock):
    return ClientRegistry(store, clock)


@pytest.fixture
def authorization(store, agents, clock):
    return AuthorizationService(store, agents, clock)


@pytest.fixture
def tokens(store, clock):
    return TokenExchange(store, clock)


@pytest.fixture
def modifiers(clock):
    return MemoryModifierStore(clock)


@pytest.fixture
def usage(clock):
    return MemoryUsageStore(clock)


@pytest.fixture
def catalog():
    return MemoryCatalogStore([
        Drug(name="focus", prompt="Be focused!", default_duration_minutes=60),
        Drug(name="creative", prompt="Be creative!", default_duration_minutes=120),
    ])


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def settings():
    return Settings({"server_url": "https://drugs.example.com", "consent_url": "https://drugs.example.com/login"})


@pytest.fixture
def app(settings, store, modifiers, catalog, usage, clock):
    identity = StaticIdentityProvider({"user-token-1": "u1", "user-token-2": "u2"})
    return create_app(settings, store, modifiers, catalog, usage, identity, clock)


@pytest_asyncio.fixture
async def http(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="https://drugs.example.com") as client:
        yield client
