"""
Timecapsule - sealed messages that open on a future date.

Timecapsule provides:
- A sealed/unsealed capsule lifecycle driven by the calendar
- Durable local storage in a single SQLite file
- An optional remote mirror (Supabase/PostgREST) keyed by owner identity
- A CLI for creating, listing, opening and deleting capsules
"""

__version__ = "0.1.0"

from timecapsule.factory import CapsuleFactory
from timecapsule.repository import CapsuleRepository
from timecapsule.schema import Capsule, CapsuleState

__all__ = [
    "Capsule",
    "CapsuleFactory",
    "CapsuleRepository",
    "CapsuleState",
    "__version__",
]
