"""
Storage abstractions.

Integration Points:
- MetadataStorage → PostgreSQL (users, sessions, tokens, Pro requests)
- CacheStorage → Redis (rate-limit counters)
"""

from career_tracker.storage.base import (
    MetadataStorage,
    CacheStorage,
    StorageProvider,
    Collections,
    DuplicateKeyError,
    StorageError,
    init_storage,
)
from career_tracker.storage.local import create_local_storage

__all__ = [
    "MetadataStorage",
    "CacheStorage",
    "StorageProvider",
    "Collections",
    "DuplicateKeyError",
    "StorageError",
    "init_storage",
    "create_local_storage",
]
