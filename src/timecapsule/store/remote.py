"""
Remote mirror for Timecapsule.

The remote store keeps one row per capsule in a table keyed by
(user_email, id). It is optional and best-effort: every operation returns
a RemoteResult instead of raising, and "not configured" is reported the
same way as "call failed" so callers handle both identically.

The bundled implementation talks to a Supabase project through its
PostgREST endpoint (`/rest/v1/<table>`). Each call is bounded as a whole
by `timeout_seconds`: every connection phase gets that timeout, and the
response body is abandoned once the overall deadline has passed.
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from timecapsule.errors import RemoteError, RemoteTimeoutError, RemoteUnavailableError
from timecapsule.schema import Capsule, CapsuleRow


@dataclass(frozen=True)
class RemoteResult:
    """
    Outcome of a best-effort remote operation.

    Attributes:
        success: Whether the remote call completed
        data: Operation payload (the capsule list for list_by_owner)
        error: The failure, if success is False
        metadata: Additional details about the call
    """

    success: bool
    data: Any = None
    error: RemoteError | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None, **metadata: Any) -> "RemoteResult":
        """Create a successful result."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: RemoteError, **metadata: Any) -> "RemoteResult":
        """Create a failed result."""
        return cls(success=False, error=error, metadata=metadata)

    @property
    def unavailable(self) -> bool:
        """Whether the failure was a missing remote configuration."""
        return isinstance(self.error, RemoteUnavailableError)


class RemoteStore(ABC):
    """
    Owner-scoped remote persistence of capsules.

    Implementations must not raise for expected failures (unconfigured,
    HTTP errors, timeouts); return RemoteResult.fail() instead.
    """

    @property
    def configured(self) -> bool:
        """Whether a remote endpoint is available at all."""
        return True

    @abstractmethod
    def list_by_owner(self, owner_id: str) -> RemoteResult:
        """List the owner's capsules, newest created first (data: list[Capsule])."""
        ...

    @abstractmethod
    def insert(self, owner_id: str, capsule: Capsule) -> RemoteResult:
        """Insert one capsule row."""
        ...

    @abstractmethod
    def mark_opened(self, owner_id: str, capsule_id: str) -> RemoteResult:
        """Set is_opened on one capsule row."""
        ...

    @abstractmethod
    def delete(self, owner_id: str, capsule_id: str) -> RemoteResult:
        """Delete one capsule row."""
        ...

    def ping(self) -> RemoteResult:
        """Check that the remote answers."""
        return RemoteResult.ok()

    def close(self) -> None:
        """Release any held resources."""


class SupabaseRemoteStore(RemoteStore):
    """
    Remote store backed by a Supabase (PostgREST) table.

    Example:
        remote = SupabaseRemoteStore(url, anon_key, timeout_seconds=5.0)
        result = remote.list_by_owner("me@example.com")
        if result.success:
            capsules = result.data
    """

    def __init__(
        self,
        url: str | None,
        api_key: str | None,
        table: str = "capsules",
        timeout_seconds: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the remote store.

        Args:
            url: Project base URL; None or empty disables the remote
            api_key: Project API key; None or empty disables the remote
            table: Table holding capsule rows
            timeout_seconds: Upper bound for every call
            transport: Optional httpx transport (used by tests)
        """
        self.url = (url or "").rstrip("/")
        self.api_key = api_key or ""
        self.table = table
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.Client | None = None
        self._log = structlog.get_logger(__name__).bind(component="remote_store", table=table)

    @property
    def configured(self) -> bool:
        return bool(self.url) and bool(self.api_key)

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=f"{self.url}/rest/v1",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SupabaseRemoteStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Operations
    # =========================================================================

    def list_by_owner(self, owner_id: str) -> RemoteResult:
        result = self._request(
            "list_by_owner",
            "GET",
            params={
                "select": "*",
                "user_email": f"eq.{owner_id}",
                "order": "created_at.desc",
            },
        )
        if not result.success:
            return result

        body = result.data
        if not isinstance(body, list):
            return RemoteResult.fail(
                RemoteError(
                    operation="list_by_owner",
                    underlying_error=f"expected a JSON array, got {type(body).__name__}",
                )
            )
        try:
            capsules = [CapsuleRow.model_validate(row).to_capsule() for row in body]
        except ValidationError as e:
            return RemoteResult.fail(
                RemoteError(
                    operation="list_by_owner",
                    underlying_error=f"malformed row: {e.error_count()} error(s)",
                )
            )
        return RemoteResult.ok(capsules, count=len(capsules))

    def insert(self, owner_id: str, capsule: Capsule) -> RemoteResult:
        row = CapsuleRow.from_capsule(owner_id, capsule)
        return self._request(
            "insert",
            "POST",
            body=row.model_dump(mode="json"),
            headers={"Prefer": "return=minimal"},
        )

    def mark_opened(self, owner_id: str, capsule_id: str) -> RemoteResult:
        return self._request(
            "mark_opened",
            "PATCH",
            params={"id": f"eq.{capsule_id}", "user_email": f"eq.{owner_id}"},
            body={"is_opened": True},
            headers={"Prefer": "return=minimal"},
        )

    def delete(self, owner_id: str, capsule_id: str) -> RemoteResult:
        return self._request(
            "delete",
            "DELETE",
            params={"id": f"eq.{capsule_id}", "user_email": f"eq.{owner_id}"},
        )

    def ping(self) -> RemoteResult:
        return self._request("ping", "GET", params={"select": "id", "limit": "1"})

    def _request(
        self,
        operation: str,
        method: str,
        params: dict[str, str] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> RemoteResult:
        """Issue one call against the table, mapping every failure to a RemoteResult."""
        if not self.configured:
            return RemoteResult.fail(RemoteUnavailableError(operation=operation))

        deadline = time.monotonic() + self.timeout_seconds
        try:
            with self._get_client().stream(
                method,
                f"/{self.table}",
                params=params,
                json=body,
                headers=headers,
            ) as response:
                content = self._read_body(response, deadline)
        except httpx.TimeoutException:
            return RemoteResult.fail(
                RemoteTimeoutError(operation=operation, timeout_seconds=self.timeout_seconds)
            )
        except httpx.HTTPError as e:
            return RemoteResult.fail(
                RemoteError(operation=operation, underlying_error=f"{type(e).__name__}: {e}")
            )

        if response.status_code >= 400:
            return RemoteResult.fail(
                RemoteError(
                    operation=operation,
                    underlying_error=content.decode("utf-8", errors="replace")[:200] or response.reason_phrase,
                    status_code=response.status_code,
                ),
                status_code=response.status_code,
            )

        self._log.debug("remote_call_ok", operation=operation, status_code=response.status_code)
        if not content:
            return RemoteResult.ok(status_code=response.status_code)
        try:
            return RemoteResult.ok(json.loads(content), status_code=response.status_code)
        except ValueError:
            return RemoteResult.fail(
                RemoteError(operation=operation, underlying_error="response is not JSON"),
                status_code=response.status_code,
            )

    @staticmethod
    def _read_body(response: httpx.Response, deadline: float) -> bytes:
        """Read the response body, giving up once the call's deadline has passed."""
        chunks = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            if time.monotonic() > deadline:
                raise httpx.ReadTimeout("overall call deadline exceeded", request=response.request)
        return b"".join(chunks)
