"""
SQLite local store for Timecapsule.

The local store is the durable source of truth. It is a small key-value
table of named slots; the whole capsule collection lives in one slot as a
JSON array and is rewritten in full on every mutation.

Tables:
    - schema_version: Applied schema version
    - slots: name -> serialized value, with last update time

Design Principles:
    - Whole-collection granularity: no partial record updates
    - Atomic: each slot write is a single committed statement
    - Tolerant reads: absent or corrupt content loads as an empty collection
"""

import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from timecapsule.errors import StorageConnectionError, StorageReadError, StorageWriteError
from timecapsule.schema import Capsule, CapsuleList

# Schema version for migrations
SCHEMA_VERSION = 1

# Default slot holding the capsule collection
DEFAULT_NAMESPACE = "capsules"

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS slots (
    name TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


class LocalStore(ABC):
    """
    Durable whole-collection persistence plus named key-value slots.

    Subclasses implement raw slot access; collection (de)serialization is
    shared.
    """

    namespace: str = DEFAULT_NAMESPACE

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the raw value stored under key, or None."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a raw value under key, replacing any previous value."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key if present."""
        ...

    def load_all(self) -> list[Capsule]:
        """
        Load the full collection in stored order.

        Returns:
            The stored capsules, or an empty list when nothing is stored or
            the stored content cannot be parsed

        Raises:
            StorageReadError: If the underlying store cannot be read
        """
        raw = self.get(self.namespace)
        if raw is None or not raw.strip():
            return []
        try:
            return CapsuleList.validate_json(raw)
        except ValidationError as e:
            structlog.get_logger(__name__).warning(
                "local_collection_corrupt",
                component="local_store",
                namespace=self.namespace,
                errors=e.error_count(),
            )
            return []

    def save_all(self, capsules: Sequence[Capsule]) -> None:
        """
        Replace the full collection, preserving order.

        Raises:
            StorageWriteError: If the write fails
        """
        payload = CapsuleList.dump_json(list(capsules), by_alias=True).decode("utf-8")
        self.set(self.namespace, payload)


class SqliteLocalStore(LocalStore):
    """
    SQLite-backed local store.

    Usage:
        store = SqliteLocalStore("timecapsule.db")
        capsules = store.load_all()
        store.save_all([*capsules, new_capsule])
        store.close()

    Or use as context manager:
        with SqliteLocalStore("timecapsule.db") as store:
            ...
    """

    def __init__(self, db_path: str | Path, namespace: str = DEFAULT_NAMESPACE) -> None:
        """
        Open (and create if needed) the local store.

        Args:
            db_path: Path to the SQLite file, or ":memory:"
            namespace: Slot holding the capsule collection
        """
        self.db_path = Path(db_path) if db_path != ":memory:" else db_path
        self.namespace = namespace
        self._conn: sqlite3.Connection | None = None
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to open local store: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            if cursor.fetchone() is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SqliteLocalStore":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    # =========================================================================
    # Slot Operations
    # =========================================================================

    def get(self, key: str) -> str | None:
        """Return the raw value stored under key, or None."""
        try:
            row = self._conn.execute(
                "SELECT value FROM slots WHERE name = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(operation="get", underlying_error=str(e)) from e
        return None if row is None else row["value"]

    def set(self, key: str, value: str) -> None:
        """Store a raw value under key, replacing any previous value."""
        try:
            self._conn.execute(
                """
                INSERT INTO slots (name, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, now_iso()),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            self._rollback()
            raise StorageWriteError(operation="set", underlying_error=str(e)) from e

    def delete(self, key: str) -> None:
        """Remove key if present."""
        try:
            self._conn.execute("DELETE FROM slots WHERE name = ?", (key,))
            self._conn.commit()
        except sqlite3.Error as e:
            self._rollback()
            raise StorageWriteError(operation="delete", underlying_error=str(e)) from e

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except sqlite3.Error:
            pass

    def updated_at(self, key: str) -> datetime | None:
        """When the slot was last written, or None if absent."""
        try:
            row = self._conn.execute(
                "SELECT updated_at FROM slots WHERE name = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(operation="updated_at", underlying_error=str(e)) from e
        return None if row is None else datetime.fromisoformat(row["updated_at"])
