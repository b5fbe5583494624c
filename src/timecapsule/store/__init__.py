"""
Storage module for Timecapsule.

Two stores hold the capsule collection:
    - Local: SQLite file, durable source of truth, whole-collection writes
    - Remote: optional Supabase table, one row per capsule, best-effort mirror

Remote operations return RemoteResult rather than raising, so a missing or
failing remote never blocks a local mutation.
"""

from timecapsule.store.local import LocalStore, SqliteLocalStore
from timecapsule.store.remote import RemoteResult, RemoteStore, SupabaseRemoteStore

__all__ = [
    "LocalStore",
    "RemoteResult",
    "RemoteStore",
    "SqliteLocalStore",
    "SupabaseRemoteStore",
]
