"""
Capsule Repository for Timecapsule.

The repository is the only component that reads or writes the stores. It
applies the capsule lifecycle and keeps the local and remote copies of an
owner's collection in step.

Policy:
    - List: a successful remote listing is authoritative for display and is
      not merged with the local collection. Any remote failure (including
      "not configured") falls back to the local collection in stored order.
    - Mutations (create/open/delete): rewrite the whole local collection
      first; a local failure is raised and nothing is mirrored. The remote
      write follows, best-effort: its RemoteResult is logged, never raised,
      and never rolls back the local change.
    - Lookups (get/open/delete) accept a full id or a unique id prefix.
      Open and delete resolve against the local collection first; a capsule
      only the remote lists (created on another device) is added to the
      local collection before it is changed.

Concurrency:
    Every mutation is a read-modify-write of the whole collection without
    locking. Callers must serialize operations on one collection; two
    independent writers can race and silently drop one write. Supported usage
    is a single logical user per device.
"""

from collections.abc import Callable
from datetime import date, datetime
from typing import Any

import structlog

from timecapsule.clock import days_remaining, is_unlockable, local_now
from timecapsule.config import Settings
from timecapsule.errors import AccessDeniedError, CapsuleNotFoundError, CapsuleStillSealedError
from timecapsule.factory import CapsuleFactory
from timecapsule.schema import Capsule
from timecapsule.store.local import LocalStore, SqliteLocalStore
from timecapsule.store.remote import RemoteResult, RemoteStore, SupabaseRemoteStore


class CapsuleRepository:
    """
    Orchestrates capsule lifecycle over a local and an optional remote store.

    Usage:
        repo = CapsuleRepository(local=SqliteLocalStore("timecapsule.db"))
        capsule = repo.create("me@example.com", "Goals", "...", "2026-01-01")
        repo.open("me@example.com", capsule.id)
    """

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStore | None = None,
        factory: CapsuleFactory | None = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        """
        Initialize the repository.

        Args:
            local: Durable store holding the collection
            remote: Optional remote mirror; None means local-only
            factory: Capsule factory (defaults to CapsuleFactory())
            clock: Source of the current time
        """
        self.local = local
        self.remote = remote
        self.factory = factory or CapsuleFactory()
        self.clock = clock
        self._log = structlog.get_logger(__name__).bind(component="repository")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CapsuleRepository":
        """Build a repository over the SQLite and Supabase stores named in settings."""
        local = SqliteLocalStore(settings.db_path, namespace=settings.namespace)
        remote = SupabaseRemoteStore(
            settings.remote_url,
            settings.remote_key,
            table=settings.remote_table,
            timeout_seconds=settings.remote_timeout_seconds,
        )
        return cls(local=local, remote=remote)

    def close(self) -> None:
        """Close both stores."""
        if self.remote is not None:
            self.remote.close()
        close_local = getattr(self.local, "close", None)
        if close_local is not None:
            close_local()

    def __enter__(self) -> "CapsuleRepository":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Queries
    # =========================================================================

    def list_capsules(self, owner_id: str | None) -> list[Capsule]:
        """
        List the owner's capsules for display.

        Returns the remote listing (newest first) when it succeeds, else the
        local collection in stored order.

        Raises:
            AccessDeniedError: If no owner identity is supplied
            StorageReadError: If falling back and the local store cannot be read
        """
        owner_id = self._require_owner(owner_id, "list")

        if self.remote is not None:
            result = self.remote.list_by_owner(owner_id)
            if result.success:
                return list(result.data)
            self._log_remote_failure(result, "list_by_owner", owner_id)

        self._log.info("list_local_fallback", owner=owner_id)
        return self.local.load_all()

    def get(self, owner_id: str | None, capsule_id: str) -> Capsule:
        """
        Find one capsule in the displayed collection by id or unique id prefix.

        Raises:
            AccessDeniedError: If no owner identity is supplied
            CapsuleNotFoundError: If the id is not in the collection, or a prefix is ambiguous
        """
        capsules = self.list_capsules(owner_id)
        return capsules[self._index_of(capsules, capsule_id, owner_id or "")]

    # =========================================================================
    # Mutations
    # =========================================================================

    def create(
        self,
        owner_id: str | None,
        title: str,
        message: str,
        unlock_date: date | datetime | str | None,
    ) -> Capsule:
        """
        Create a sealed capsule and persist it.

        Raises:
            AccessDeniedError: If no owner identity is supplied
            CapsuleValidationError: If the input is rejected (nothing persisted)
            StorageError: If the local write fails
        """
        owner_id = self._require_owner(owner_id, "create")
        capsule = self.factory.create(title, message, unlock_date, self.clock())

        collection = self.local.load_all()
        self.local.save_all([*collection, capsule])
        self._log.info("capsule_created", owner=owner_id, capsule_id=capsule.id)

        self._mirror("insert", owner_id, capsule.id, lambda r: r.insert(owner_id, capsule))
        return capsule

    def open(
        self,
        owner_id: str | None,
        capsule_id: str,
        now: datetime | None = None,
    ) -> Capsule:
        """
        Unseal a capsule whose unlock date has been reached.

        Opening an already opened capsule returns it unchanged.

        Raises:
            AccessDeniedError: If no owner identity is supplied
            CapsuleNotFoundError: If neither store has the id, or a prefix is ambiguous
            CapsuleStillSealedError: If the unlock date has not been reached
            StorageError: If the local write fails
        """
        owner_id = self._require_owner(owner_id, "open")
        now = now or self.clock()

        collection = self.local.load_all()
        index = self._locate(collection, capsule_id, owner_id)
        capsule = collection[index]

        if not capsule.is_sealed:
            return capsule
        if not is_unlockable(capsule.unlock_date, now):
            raise CapsuleStillSealedError(
                capsule_id=capsule.id,
                unlock_date=capsule.unlock_date.isoformat(),
                days_remaining=days_remaining(capsule.unlock_date, now),
            )

        opened = capsule.opened()
        collection[index] = opened
        self.local.save_all(collection)
        self._log.info("capsule_opened", owner=owner_id, capsule_id=opened.id)

        self._mirror("mark_opened", owner_id, opened.id, lambda r: r.mark_opened(owner_id, opened.id))
        return opened

    def delete(self, owner_id: str | None, capsule_id: str) -> Capsule:
        """
        Permanently remove a capsule.

        Returns:
            The removed capsule

        Raises:
            AccessDeniedError: If no owner identity is supplied
            CapsuleNotFoundError: If neither store has the id, or a prefix is ambiguous
            StorageError: If the local write fails
        """
        owner_id = self._require_owner(owner_id, "delete")

        collection = self.local.load_all()
        index = self._locate(collection, capsule_id, owner_id)
        removed = collection.pop(index)
        self.local.save_all(collection)
        self._log.info("capsule_deleted", owner=owner_id, capsule_id=removed.id)

        self._mirror("delete", owner_id, removed.id, lambda r: r.delete(owner_id, removed.id))
        return removed

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_owner(self, owner_id: str | None, operation: str) -> str:
        if owner_id is None or not owner_id.strip():
            raise AccessDeniedError(operation=operation)
        return owner_id.strip()

    @staticmethod
    def _find(collection: list[Capsule], capsule_id: str, owner_id: str) -> int | None:
        """Index of the capsule with this id, or with this unique id prefix."""
        for index, capsule in enumerate(collection):
            if capsule.id == capsule_id:
                return index
        if not capsule_id:
            return None
        matches = [i for i, capsule in enumerate(collection) if capsule.id.startswith(capsule_id)]
        if len(matches) > 1:
            raise CapsuleNotFoundError(
                capsule_id=capsule_id,
                owner_id=owner_id,
                message=f"Capsule id prefix {capsule_id} matches {len(matches)} capsules",
                suggestion="Use more characters of the capsule id",
            )
        return matches[0] if matches else None

    def _index_of(self, collection: list[Capsule], capsule_id: str, owner_id: str) -> int:
        index = self._find(collection, capsule_id, owner_id)
        if index is None:
            raise CapsuleNotFoundError(capsule_id=capsule_id, owner_id=owner_id)
        return index

    def _locate(self, collection: list[Capsule], capsule_id: str, owner_id: str) -> int:
        """
        Index of the capsule in the local collection.

        A capsule listed only by the remote (created on another device) is
        appended to the collection so the caller's write persists it locally.

        Raises:
            CapsuleNotFoundError: If neither store has the id
        """
        index = self._find(collection, capsule_id, owner_id)
        if index is not None:
            return index
        if self.remote is None:
            raise CapsuleNotFoundError(capsule_id=capsule_id, owner_id=owner_id)

        result = self.remote.list_by_owner(owner_id)
        if not result.success:
            self._log_remote_failure(result, "list_by_owner", owner_id)
            raise CapsuleNotFoundError(capsule_id=capsule_id, owner_id=owner_id)

        remote_capsules = list(result.data)
        capsule = remote_capsules[self._index_of(remote_capsules, capsule_id, owner_id)]
        collection.append(capsule)
        self._log.info("capsule_adopted_from_remote", owner=owner_id, capsule_id=capsule.id)
        return len(collection) - 1

    def _mirror(
        self,
        operation: str,
        owner_id: str,
        capsule_id: str,
        call: Callable[[RemoteStore], RemoteResult],
    ) -> RemoteResult | None:
        """Run a best-effort remote write after the local write has committed."""
        if self.remote is None:
            return None
        result = call(self.remote)
        if not result.success:
            self._log_remote_failure(result, operation, owner_id, capsule_id=capsule_id)
        return result

    def _log_remote_failure(
        self,
        result: RemoteResult,
        operation: str,
        owner_id: str,
        **extra: Any,
    ) -> None:
        error = result.error
        if result.unavailable:
            self._log.debug("remote_unavailable", operation=operation, owner=owner_id, **extra)
            return
        self._log.warning(
            "remote_call_failed",
            operation=operation,
            owner=owner_id,
            code=error.code if error else None,
            error=error.message if error else None,
            **extra,
        )
