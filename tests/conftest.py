"""
Pytest configuration and fixtures for Timecapsule tests.

This module provides shared fixtures used across unit and integration
tests: temporary paths, an in-memory remote store with failure injection,
a local store whose writes fail, and a fixed clock.
"""

import tempfile
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import structlog

from timecapsule.errors import RemoteError, RemoteUnavailableError, StorageWriteError
from timecapsule.repository import CapsuleRepository
from timecapsule.schema import Capsule, CapsuleRow
from timecapsule.store import LocalStore, RemoteResult, RemoteStore, SqliteLocalStore

OWNER = "me@example.com"

# 2025-06-01 09:00 in a fixed UTC+2 zone
FIXED_NOW = datetime(2025, 6, 1, 9, 0, tzinfo=timezone(timedelta(hours=2)))


class FakeRemoteStore(RemoteStore):
    """In-memory remote store keyed by (owner, id), with failure injection."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.rows: dict[tuple[str, str], CapsuleRow] = {}
        self.failing: set[str] = set()
        self.calls: list[tuple[str, str, str | None]] = []

    @property
    def configured(self) -> bool:
        return self.available

    def _check(self, operation: str) -> RemoteResult | None:
        if not self.available:
            return RemoteResult.fail(RemoteUnavailableError(operation=operation))
        if operation in self.failing:
            return RemoteResult.fail(
                RemoteError(operation=operation, underlying_error="boom", status_code=500)
            )
        return None

    def list_by_owner(self, owner_id: str) -> RemoteResult:
        self.calls.append(("list_by_owner", owner_id, None))
        failed = self._check("list_by_owner")
        if failed:
            return failed
        rows = [row for (owner, _), row in self.rows.items() if owner == owner_id]
        rows.sort(key=lambda row: row.created_at, reverse=True)
        return RemoteResult.ok([row.to_capsule() for row in rows])

    def insert(self, owner_id: str, capsule: Capsule) -> RemoteResult:
        self.calls.append(("insert", owner_id, capsule.id))
        failed = self._check("insert")
        if failed:
            return failed
        self.rows[(owner_id, capsule.id)] = CapsuleRow.from_capsule(owner_id, capsule)
        return RemoteResult.ok()

    def mark_opened(self, owner_id: str, capsule_id: str) -> RemoteResult:
        self.calls.append(("mark_opened", owner_id, capsule_id))
        failed = self._check("mark_opened")
        if failed:
            return failed
        row = self.rows.get((owner_id, capsule_id))
        if row is not None:
            self.rows[(owner_id, capsule_id)] = row.model_copy(update={"is_opened": True})
        return RemoteResult.ok()

    def delete(self, owner_id: str, capsule_id: str) -> RemoteResult:
        self.calls.append(("delete", owner_id, capsule_id))
        failed = self._check("delete")
        if failed:
            return failed
        self.rows.pop((owner_id, capsule_id), None)
        return RemoteResult.ok()

    def operations(self) -> list[str]:
        return [name for name, _, _ in self.calls]


class BrokenLocalStore(LocalStore):
    """Local store that reads fine but fails every write."""

    def __init__(self, inner: LocalStore) -> None:
        self.inner = inner
        self.namespace = inner.namespace

    def get(self, key: str) -> str | None:
        return self.inner.get(key)

    def set(self, key: str, value: str) -> None:
        raise StorageWriteError(operation="set", underlying_error="disk full")

    def delete(self, key: str) -> None:
        raise StorageWriteError(operation="delete", underlying_error="disk full")


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo any logging configuration a test (or the CLI) applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def local_store() -> Generator[SqliteLocalStore, None, None]:
    """In-memory SQLite local store."""
    store = SqliteLocalStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def remote_store() -> FakeRemoteStore:
    """Configured in-memory remote store."""
    return FakeRemoteStore()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Clock fixed at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def repo(
    local_store: SqliteLocalStore,
    remote_store: FakeRemoteStore,
    clock: Callable[[], datetime],
) -> CapsuleRepository:
    """Repository over the in-memory local store and fake remote."""
    return CapsuleRepository(local=local_store, remote=remote_store, clock=clock)


@pytest.fixture
def local_only_repo(
    local_store: SqliteLocalStore,
    clock: Callable[[], datetime],
) -> CapsuleRepository:
    """Repository with no remote store at all."""
    return CapsuleRepository(local=local_store, remote=None, clock=clock)


@pytest.fixture
def sample_capsule() -> Capsule:
    """A sealed capsule created at FIXED_NOW."""
    return Capsule(
        id="c-1",
        title="Goals 2026",
        message="Run a marathon",
        unlock_date="2026-01-01",
        created_at=FIXED_NOW,
        is_sealed=True,
    )
