"""Shared fixtures for authorization tests."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine

from packages.authz.config import Settings
from packages.authz.directory import StaticDirectory
from packages.authz.engine import AuthzEngine
from packages.authz.storage import InMemoryAuthzStore, SqlAuthzStore


class FakeClock:
    """Deterministic clock: every call is one second after the previous."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(seconds=1)
        return current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, database_url="sqlite://", cache_enabled=False)


@pytest.fixture
def directory() -> StaticDirectory:
    """User 42 and client 7 (scopes 3, 4) are known, as in the examples."""
    return StaticDirectory(users=[42, 43], scopes={7: [3, 4], 8: [5]})


@pytest.fixture
def memory_store() -> InMemoryAuthzStore:
    return InMemoryAuthzStore()


@pytest.fixture
def sql_store(tmp_path) -> SqlAuthzStore:
    store = SqlAuthzStore(create_engine(f"sqlite:///{tmp_path / 'authz.db'}"))
    store.create_schema()
    return store


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Every behavioural test runs against both store implementations."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def engine(store, directory, settings, clock) -> AuthzEngine:
    return AuthzEngine(store, directory, settings=settings, clock=clock)
