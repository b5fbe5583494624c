"""
Exception hierarchy for Timecapsule.

All Timecapsule exceptions inherit from TimeCapsuleError, allowing callers to
catch every Timecapsule-specific exception with a single except clause.

Exception Categories:
    - CapsuleValidationError: Bad creation input (title, message, unlock date)
    - AccessDeniedError: No owner identity supplied
    - CapsuleNotFoundError: Open/delete referenced an unknown capsule
    - CapsuleStillSealedError: Open attempted before the unlock date
    - RemoteError: Remote mirror unconfigured or failed (never surfaced)
    - StorageError: Local durable store failed (always surfaced)
    - ConfigError: Settings file or environment is invalid

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (owner, capsule id, field where applicable)
    - All errors provide actionable suggestions where possible
    - Errors are designed to be both human-readable and machine-parseable
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Validation errors: 1xxx
ERROR_VALIDATION = 1001
ERROR_INVALID_OWNER = 1002

# Access and lifecycle errors: 2xxx
ERROR_ACCESS_DENIED = 2001
ERROR_CAPSULE_NOT_FOUND = 2002
ERROR_CAPSULE_STILL_SEALED = 2003

# Remote errors: 3xxx
ERROR_REMOTE = 3001
ERROR_REMOTE_UNAVAILABLE = 3002
ERROR_REMOTE_TIMEOUT = 3003

# Storage errors: 4xxx
ERROR_STORAGE_CONNECTION = 4001
ERROR_STORAGE_WRITE = 4002
ERROR_STORAGE_READ = 4003

# Config errors: 5xxx
ERROR_CONFIG = 5001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class TimeCapsuleError(Exception):
    """
    Base exception for all Timecapsule errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Validation Errors
# =============================================================================


@dataclass
class CapsuleValidationError(TimeCapsuleError):
    """
    Raised when capsule creation input is rejected.

    Nothing is persisted when this is raised.

    Attributes:
        field_name: The offending input field (title, message, unlock_date)
        reason: Why the value was rejected
    """

    field_name: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid {self.field_name}: {self.reason}"
        if self.code == 0:
            self.code = ERROR_VALIDATION
        self.context.update({
            "field": self.field_name,
            "reason": self.reason,
        })


@dataclass
class InvalidOwnerError(TimeCapsuleError):
    """Raised when a submitted owner identifier is not a usable email."""

    owner_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Not a valid email address: {self.owner_id!r}"
        if self.code == 0:
            self.code = ERROR_INVALID_OWNER
        if not self.suggestion:
            self.suggestion = "Use an address like name@example.com"
        self.context["owner_id"] = self.owner_id


# =============================================================================
# Access and Lifecycle Errors
# =============================================================================


@dataclass
class AccessDeniedError(TimeCapsuleError):
    """Raised when an operation is attempted without an owner identity."""

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"No owner identity supplied for {self.operation}"
        if self.code == 0:
            self.code = ERROR_ACCESS_DENIED
        if not self.suggestion:
            self.suggestion = "Run `timecapsule login EMAIL` or pass --owner"
        self.context["operation"] = self.operation


@dataclass
class CapsuleNotFoundError(TimeCapsuleError):
    """Raised when open/delete references an id absent from the collection."""

    capsule_id: str = ""
    owner_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Capsule not found: {self.capsule_id}"
        if self.code == 0:
            self.code = ERROR_CAPSULE_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Run `timecapsule list` to see capsule ids"
        self.context.update({
            "capsule_id": self.capsule_id,
            "owner_id": self.owner_id,
        })


@dataclass
class CapsuleStillSealedError(TimeCapsuleError):
    """Raised when open is attempted before the capsule's unlock date."""

    capsule_id: str = ""
    unlock_date: str = ""
    days_remaining: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Capsule {self.capsule_id} stays sealed until {self.unlock_date} "
                f"({self.days_remaining} days remaining)"
            )
        if self.code == 0:
            self.code = ERROR_CAPSULE_STILL_SEALED
        self.context.update({
            "capsule_id": self.capsule_id,
            "unlock_date": self.unlock_date,
            "days_remaining": self.days_remaining,
        })


# =============================================================================
# Remote Errors
# =============================================================================


@dataclass
class RemoteError(TimeCapsuleError):
    """
    Base class for remote mirror failures.

    These are carried inside a RemoteResult and logged; the repository
    never raises them to its callers.

    Attributes:
        operation: The remote operation that failed (e.g., "insert")
        underlying_error: Description of the transport or HTTP failure
        status_code: HTTP status code, if a response was received
    """

    operation: str = ""
    underlying_error: str = ""
    status_code: int | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Remote {self.operation} failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_REMOTE
        self.context.update({
            "operation": self.operation,
            "underlying_error": self.underlying_error,
            "status_code": self.status_code,
        })


@dataclass
class RemoteUnavailableError(RemoteError):
    """Raised when no remote endpoint or credentials are configured."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Remote store not configured ({self.operation} skipped)"
        if self.code == 0:
            self.code = ERROR_REMOTE_UNAVAILABLE
        if not self.suggestion:
            self.suggestion = "Set TIMECAPSULE_REMOTE_URL and TIMECAPSULE_REMOTE_KEY to enable sync"
        super().__post_init__()


@dataclass
class RemoteTimeoutError(RemoteError):
    """Raised when a remote call exceeds its timeout."""

    timeout_seconds: float = 0.0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Remote {self.operation} timed out after {self.timeout_seconds}s"
        if self.code == 0:
            self.code = ERROR_REMOTE_TIMEOUT
        super().__post_init__()
        self.context["timeout_seconds"] = self.timeout_seconds


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(TimeCapsuleError):
    """
    Base class for local store errors.

    The local store is the durable guarantee, so these always reach the
    caller and the requested mutation is considered not applied.

    Attributes:
        operation: The operation that failed (e.g., "save_all", "load_all")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when the local database cannot be opened."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to open local store: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write to the local store fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Local store write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read from the local store fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Local store read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(TimeCapsuleError):
    """Raised when settings cannot be loaded or are invalid."""

    source: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration in {self.source}"
        if self.code == 0:
            self.code = ERROR_CONFIG
        self.context["source"] = self.source
