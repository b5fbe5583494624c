"""
Schema definitions for Timecapsule.

This module defines the Pydantic models used throughout Timecapsule:
- Capsule: The sealed message entity, as stored locally
- CapsuleRow: The remote table row for a capsule
- CapsuleState: Display state derived from a capsule and the current time

Design Decisions:
    - Capsules are immutable (frozen=True); opening produces a copy
    - The local record uses camelCase keys (id, title, message, unlockDate,
      createdAt, isSealed) so existing collections load unchanged
    - The remote row stores "has been opened", the entity stores
      "is still sealed"; the two are converted only in this module
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================


class CapsuleState(str, Enum):
    """
    Display state of a capsule at a given moment.

    SEALED: unlock date not reached, message hidden
    READY: unlock date reached, still sealed until opened
    OPENED: permanently revealed
    """

    SEALED = "sealed"
    READY = "ready"
    OPENED = "opened"


# =============================================================================
# Helpers
# =============================================================================


def generate_id() -> str:
    """Generate a unique capsule id."""
    return str(uuid.uuid4())


def _coerce_date(value: Any) -> Any:
    """Accept full timestamps where a calendar date is expected."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10 and value[10] in ("T", " "):
        return value[:10]
    return value


# =============================================================================
# Capsule Models
# =============================================================================


class Capsule(BaseModel):
    """
    A sealed message tied to a future unlock date.

    Attributes:
        id: Unique identifier, immutable once assigned
        title: Non-empty title, set at creation
        message: Non-empty message, set at creation
        unlock_date: Calendar date on which the capsule becomes openable
        created_at: Creation instant
        is_sealed: True until opened; never reverts once False
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(..., min_length=1, description="Unique capsule identifier")
    title: str = Field(..., min_length=1, description="Capsule title")
    message: str = Field(..., min_length=1, description="Sealed message body")
    unlock_date: date = Field(..., description="Date the capsule becomes openable")
    created_at: datetime = Field(..., description="When the capsule was created")
    is_sealed: bool = Field(default=True, description="Whether the message is still hidden")

    @field_validator("unlock_date", mode="before")
    @classmethod
    def accept_timestamp(cls, v: Any) -> Any:
        """Truncate timestamps to their calendar date."""
        return _coerce_date(v)

    def opened(self) -> "Capsule":
        """Return the unsealed version of this capsule."""
        if not self.is_sealed:
            return self
        return self.model_copy(update={"is_sealed": False})

    def to_record(self) -> dict[str, Any]:
        """Serialize to the local storage record (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)


class CapsuleRow(BaseModel):
    """
    A capsule as stored in the remote table.

    Columns: id, title, message, unlock_date, created_at, is_opened,
    user_email. Rows are keyed by (user_email, id).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    title: str
    message: str
    unlock_date: date
    created_at: datetime
    is_opened: bool = False
    user_email: str | None = None

    @field_validator("unlock_date", mode="before")
    @classmethod
    def accept_timestamp(cls, v: Any) -> Any:
        """Truncate timestamps to their calendar date."""
        return _coerce_date(v)

    @field_validator("is_opened", mode="before")
    @classmethod
    def null_is_unopened(cls, v: Any) -> Any:
        """Treat a NULL is_opened column as not opened."""
        return False if v is None else v

    @classmethod
    def from_capsule(cls, owner_id: str, capsule: Capsule) -> "CapsuleRow":
        """Build the remote row for a capsule owned by owner_id."""
        return cls(
            id=capsule.id,
            title=capsule.title,
            message=capsule.message,
            unlock_date=capsule.unlock_date,
            created_at=capsule.created_at,
            is_opened=not capsule.is_sealed,
            user_email=owner_id,
        )

    def to_capsule(self) -> Capsule:
        """Convert the remote row to the capsule entity."""
        return Capsule(
            id=self.id,
            title=self.title,
            message=self.message,
            unlock_date=self.unlock_date,
            created_at=self.created_at,
            is_sealed=not self.is_opened,
        )


# Adapter for whole-collection (de)serialization
CapsuleList = TypeAdapter(list[Capsule])
