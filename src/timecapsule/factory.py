"""
Capsule creation.

The factory validates creation input and builds a new capsule in the
sealed state. It never touches storage; persisting the result is the
repository's job.
"""

from collections.abc import Callable
from datetime import date, datetime

from timecapsule.errors import CapsuleValidationError
from timecapsule.schema import Capsule, generate_id


class CapsuleFactory:
    """
    Validates input and produces sealed capsules.

    Usage:
        factory = CapsuleFactory()
        capsule = factory.create("Goals 2026", "...", "2026-01-01", now)
    """

    def __init__(self, id_factory: Callable[[], str] = generate_id) -> None:
        self._id_factory = id_factory

    def create(
        self,
        title: str,
        message: str,
        unlock_date: date | datetime | str | None,
        now: datetime,
    ) -> Capsule:
        """
        Create a sealed capsule.

        Args:
            title: Capsule title, must contain non-whitespace text
            message: Message body, must contain non-whitespace text
            unlock_date: Date (or ISO YYYY-MM-DD string) on or after today
            now: The creation instant

        Returns:
            A new Capsule with is_sealed=True and created_at=now

        Raises:
            CapsuleValidationError: If any input is missing or invalid
        """
        if not title or not title.strip():
            raise CapsuleValidationError(field_name="title", reason="must not be empty")
        if not message or not message.strip():
            raise CapsuleValidationError(field_name="message", reason="must not be empty")

        parsed = parse_unlock_date(unlock_date)
        today = now.date()
        if parsed < today:
            raise CapsuleValidationError(
                field_name="unlock_date",
                reason=f"{parsed.isoformat()} is before today ({today.isoformat()})",
                suggestion="Pick today or a later date",
            )

        return Capsule(
            id=self._id_factory(),
            title=title,
            message=message,
            unlock_date=parsed,
            created_at=now,
            is_sealed=True,
        )


def parse_unlock_date(value: date | datetime | str | None) -> date:
    """
    Normalize an unlock date input to a calendar date.

    Raises:
        CapsuleValidationError: If the value is absent or not a valid date
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise CapsuleValidationError(field_name="unlock_date", reason="is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise CapsuleValidationError(
            field_name="unlock_date",
            reason=f"{value!r} is not a date (expected YYYY-MM-DD)",
        ) from e
