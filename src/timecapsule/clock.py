"""
Calendar comparisons for capsule unlocking.

All comparisons happen at calendar-date granularity: an unlock date is
treated as the start of that day in the timezone of the supplied `now`.
The time used is whatever the client observes; there is no server clock.
"""

import math
from datetime import date, datetime, time, timedelta

from timecapsule.schema import Capsule, CapsuleState

SECONDS_PER_DAY = 24 * 60 * 60


def local_now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


def _as_datetime(moment: date | datetime) -> datetime:
    if isinstance(moment, datetime):
        return moment
    return datetime.combine(moment, time.min)


def _as_date(moment: date | datetime) -> date:
    if isinstance(moment, datetime):
        return moment.date()
    return moment


def is_unlockable(unlock_date: date, now: date | datetime) -> bool:
    """True once `now` has reached the calendar day of `unlock_date`."""
    return unlock_date <= _as_date(now)


def days_remaining(unlock_date: date, now: date | datetime) -> int:
    """
    Whole days until the unlock date, rounded up.

    Zero or negative once the capsule is unlockable.
    """
    moment = _as_datetime(now)
    start_of_day = datetime.combine(unlock_date, time.min, tzinfo=moment.tzinfo)
    delta: timedelta = start_of_day - moment
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def capsule_state(capsule: Capsule, now: date | datetime) -> CapsuleState:
    """Display state of a capsule at `now`."""
    if not capsule.is_sealed:
        return CapsuleState.OPENED
    if is_unlockable(capsule.unlock_date, now):
        return CapsuleState.READY
    return CapsuleState.SEALED
