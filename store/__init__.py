"""
Store package - remote record store and auth adapter, plus the local cache.

SupabaseStore lives in store.supabase_store and is imported on demand.
"""

from store.base import (
    AuthRejectedError,
    AuthSession,
    ConflictError,
    NotFoundError,
    Principal,
    StoreAdapter,
    StoreError,
)
from store.local_cache import LocalCache

__all__ = [
    "AuthRejectedError",
    "AuthSession",
    "ConflictError",
    "LocalCache",
    "NotFoundError",
    "Principal",
    "StoreAdapter",
    "StoreError",
]
