"""
Local storage implementations for development and tests.

These are in-memory implementations that work without any external services.
They honour the same atomicity contract as a real database: single writes
cannot interleave, and transaction() serialises writers and rolls back on
failure.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from career_tracker.storage.base import (
    CacheStorage,
    DuplicateKeyError,
    MetadataStorage,
    StorageProvider,
)


# =============================================================================
# Filter evaluation
# =============================================================================


def _matches(doc: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True

    for key, expected in filters.items():
        field, _, op = key.partition("__")
        value = doc.get(field)

        if op == "":
            ok = value == expected
        elif op == "is_null":
            ok = (value is None) == bool(expected)
        elif op == "ne":
            ok = value != expected
        elif op == "in":
            ok = value in expected
        elif value is None:
            ok = False
        elif op == "lt":
            ok = value < expected
        elif op == "lte":
            ok = value <= expected
        elif op == "gt":
            ok = value > expected
        elif op == "gte":
            ok = value >= expected
        else:
            raise ValueError(f"Unknown filter operator: {op}")

        if not ok:
            return False
    return True


# =============================================================================
# In-Memory Metadata Storage
# =============================================================================


class InMemoryMetadataStorage(MetadataStorage):
    """In-memory record storage."""

    def __init__(self):
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._unique: dict[str, list[tuple[str, ...]]] = {}
        self._lock = asyncio.Lock()
        self._in_transaction: ContextVar[bool] = ContextVar(f"in_tx_{id(self)}", default=False)

    # -------------------------------------------------------------------------
    # Locking
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        # Writers outside a transaction wait for any open transaction to finish
        if self._in_transaction.get():
            yield
        else:
            async with self._lock:
                yield

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MetadataStorage]:
        if self._in_transaction.get():
            yield self
            return

        async with self._lock:
            snapshot = {
                collection: {doc_id: dict(doc) for doc_id, doc in docs.items()}
                for collection, docs in self._data.items()
            }
            token = self._in_transaction.set(True)
            try:
                yield self
            except BaseException:
                self._data = snapshot
                raise
            finally:
                self._in_transaction.reset(token)

    # -------------------------------------------------------------------------
    # Unique indexes
    # -------------------------------------------------------------------------

    async def ensure_unique_index(self, collection: str, fields: tuple[str, ...]) -> None:
        indexes = self._unique.setdefault(collection, [])
        if fields not in indexes:
            indexes.append(fields)

    def _check_unique(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        for fields in self._unique.get(collection, []):
            key = tuple(doc.get(f) for f in fields)
            if any(v is None for v in key):
                continue
            for other_id, other in self._data.get(collection, {}).items():
                if other_id == doc_id:
                    continue
                if tuple(other.get(f) for f in fields) == key:
                    raise DuplicateKeyError(collection, fields)

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    async def insert(self, collection: str, id: str, data: dict[str, Any]) -> None:
        async with self._guard():
            docs = self._data.setdefault(collection, {})
            if id in docs:
                raise DuplicateKeyError(collection, ("id",))
            doc = {**data, "id": id}
            self._check_unique(collection, id, doc)
            docs[id] = doc

    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        async with self._guard():
            doc = self._data.get(collection, {}).get(id)
            return dict(doc) if doc is not None else None

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        async with self._guard():
            results = [
                dict(doc)
                for doc in self._data.get(collection, {}).values()
                if _matches(doc, filters)
            ]

        if order_by:
            # None sorts first ascending, last descending
            results.sort(
                key=lambda d: (d.get(order_by) is not None, d.get(order_by) or 0),
                reverse=descending,
            )

        return results[offset:offset + limit]

    async def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        async with self._guard():
            return sum(1 for doc in self._data.get(collection, {}).values() if _matches(doc, filters))

    async def update(
        self,
        collection: str,
        id: str,
        updates: dict[str, Any],
        where: dict[str, Any] | None = None,
    ) -> bool:
        async with self._guard():
            doc = self._data.get(collection, {}).get(id)
            if doc is None or not _matches(doc, where):
                return False
            candidate = {**doc, **updates, "id": id}
            self._check_unique(collection, id, candidate)
            self._data[collection][id] = candidate
            return True

    async def update_many(
        self,
        collection: str,
        filters: dict[str, Any],
        updates: dict[str, Any],
    ) -> int:
        async with self._guard():
            changed = 0
            for doc in self._data.get(collection, {}).values():
                if _matches(doc, filters):
                    doc.update(updates)
                    changed += 1
            return changed

    async def increment(
        self,
        collection: str,
        id: str,
        field: str,
        amount: int = 1,
        where: dict[str, Any] | None = None,
    ) -> bool:
        async with self._guard():
            doc = self._data.get(collection, {}).get(id)
            if doc is None or not _matches(doc, where):
                return False
            doc[field] = (doc.get(field) or 0) + amount
            return True


# =============================================================================
# In-Memory Cache Storage
# =============================================================================


class InMemoryCacheStorage(CacheStorage):
    """In-memory cache for development."""

    def __init__(self):
        self._cache: dict[str, tuple[Any, float | None]] = {}

    def _now(self) -> float:
        return datetime.now(timezone.utc).timestamp()

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = None
        if ttl:
            expires_at = self._now() + ttl
        self._cache[key] = (value, expires_at)

    async def get(self, key: str) -> Any | None:
        if key not in self._cache:
            return None

        value, expires_at = self._cache[key]
        if expires_at and self._now() > expires_at:
            del self._cache[key]
            return None

        return value

    async def delete(self, key: str) -> bool:
        if key in self._cache:
            del self._cache[key]
            return True
        return False

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    async def incr(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        current = await self.get(key)
        if current is None:
            await self.set(key, amount, ttl)
            return amount

        _, expires_at = self._cache[key]
        value = int(current) + amount
        self._cache[key] = (value, expires_at)
        return value


# =============================================================================
# Factory
# =============================================================================


def create_local_storage() -> StorageProvider:
    """Create a StorageProvider with in-memory implementations."""
    return StorageProvider(
        metadata=InMemoryMetadataStorage(),
        cache=InMemoryCacheStorage(),
    )
