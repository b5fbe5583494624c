"""
Owner identity.

Capsules are scoped to an owner identifier (an email address). The
identifier submitted at login is kept in the local store's `user_email`
slot so later commands run as the same owner.
"""

from timecapsule.errors import InvalidOwnerError
from timecapsule.store.local import LocalStore

SESSION_KEY = "user_email"


def normalize_owner_id(raw: str | None) -> str:
    """
    Trim and validate a submitted owner identifier.

    Raises:
        InvalidOwnerError: If the value is empty or has no '@'
    """
    value = (raw or "").strip()
    if not value or "@" not in value:
        raise InvalidOwnerError(owner_id=raw or "")
    return value


class OwnerSession:
    """Persisted owner identity for the current device."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def load(self) -> str | None:
        """Return the stored owner identifier, if any."""
        value = self._store.get(SESSION_KEY)
        return value.strip() if value and value.strip() else None

    def save(self, raw: str) -> str:
        """Validate and store an owner identifier; returns the normalized value."""
        owner_id = normalize_owner_id(raw)
        self._store.set(SESSION_KEY, owner_id)
        return owner_id

    def clear(self) -> None:
        """Forget the stored owner identifier."""
        self._store.delete(SESSION_KEY)
