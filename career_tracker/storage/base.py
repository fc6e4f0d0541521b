"""
Storage abstraction layer.

All persistence goes through these interfaces. Components receive a
StorageProvider at construction time; nothing reaches for a global store.

Every state transition in the auth core is expressed as either one conditional
write (`update(..., where=...)`, `increment(..., where=...)`) or one
`transaction()` block. Implementations must make both atomic with respect to
concurrent callers.

Filters are dicts of `field` or `field__<op>` keys:
    {"user_id": "user_1"}                 equality
    {"revoked_at__is_null": True}         IS NULL / IS NOT NULL
    {"ai_free_uses_used__lt": 5}          lt / lte / gt / gte / ne / in
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any

from pydantic import BaseModel


class StorageError(Exception):
    """Base class for storage failures."""


class DuplicateKeyError(StorageError):
    """A write would violate a unique index (or reuse an existing id)."""

    def __init__(self, collection: str, fields: tuple[str, ...]):
        self.collection = collection
        self.fields = fields
        super().__init__(f"Duplicate key in {collection}: {', '.join(fields)}")


# =============================================================================
# Storage Interfaces
# =============================================================================


class MetadataStorage(ABC):
    """
    Storage for structured records (users, sessions, tokens, requests).

    Production implementation: PostgreSQL
    Local Implementation: in-memory
    """

    @abstractmethod
    async def ensure_unique_index(self, collection: str, fields: tuple[str, ...]) -> None:
        """Declare that `fields` must be unique across a collection (NULLs excluded)."""
        pass

    @abstractmethod
    async def insert(self, collection: str, id: str, data: dict[str, Any]) -> None:
        """Create a record. Raises DuplicateKeyError on id or unique index collision."""
        pass

    @abstractmethod
    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        """Get a record by ID."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """Query records with optional filters."""
        pass

    async def find_one(
        self,
        collection: str,
        filters: dict[str, Any],
        order_by: str | None = None,
        descending: bool = False,
    ) -> dict[str, Any] | None:
        rows = await self.query(collection, filters, limit=1, order_by=order_by, descending=descending)
        return rows[0] if rows else None

    @abstractmethod
    async def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        pass

    @abstractmethod
    async def update(
        self,
        collection: str,
        id: str,
        updates: dict[str, Any],
        where: dict[str, Any] | None = None,
    ) -> bool:
        """
        Partial update of one record.

        With `where`, the update only applies if the record still matches the
        filters at write time (compare-and-set). Returns whether a row changed.
        """
        pass

    @abstractmethod
    async def update_many(
        self,
        collection: str,
        filters: dict[str, Any],
        updates: dict[str, Any],
    ) -> int:
        """Update every matching record; returns the number of rows changed."""
        pass

    @abstractmethod
    async def increment(
        self,
        collection: str,
        id: str,
        field: str,
        amount: int = 1,
        where: dict[str, Any] | None = None,
    ) -> bool:
        """Atomically add `amount` to a numeric field, conditionally."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[MetadataStorage]:
        """
        All-or-nothing unit of work.

            async with storage.transaction():
                ...

        If the block raises (including cancellation) every write made inside
        it is discarded. Nested calls join the outer transaction.
        """
        pass


class CacheStorage(ABC):
    """
    Fast key-value cache with TTLs (rate-limit counters).

    Production implementation: Redis
    Local Implementation: In-memory dict
    """

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set a value with optional TTL in seconds."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        pass

    @abstractmethod
    async def incr(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """
        Atomically increment a counter and return the new value.

        The TTL is applied only when the key is created (fixed window).
        """
        pass


# =============================================================================
# Storage Provider (dependency injection container)
# =============================================================================


class StorageProvider(BaseModel):
    """
    Container for all storage backends.

    Initialize once at app startup with appropriate implementations.
    Services receive this and use the interfaces without knowing
    the underlying implementation.
    """

    model_config = {"arbitrary_types_allowed": True}

    metadata: MetadataStorage
    cache: CacheStorage


# =============================================================================
# Collection Names (for MetadataStorage)
# =============================================================================


class Collections:
    """Standard collection/table names."""

    USERS = "users"
    AUTH_SESSIONS = "auth_sessions"
    EMAIL_VERIFICATION_TOKENS = "email_verification_tokens"
    PASSWORD_RESET_TOKENS = "password_reset_tokens"
    OAUTH_ACCOUNTS = "oauth_accounts"
    PRO_REQUESTS = "pro_requests"


UNIQUE_INDEXES: dict[str, list[tuple[str, ...]]] = {
    Collections.USERS: [("email",)],
    Collections.AUTH_SESSIONS: [("refresh_token_hash",)],
    Collections.EMAIL_VERIFICATION_TOKENS: [("token_hash",)],
    Collections.PASSWORD_RESET_TOKENS: [("token_hash",)],
    Collections.OAUTH_ACCOUNTS: [("provider", "provider_account_id")],
}


async def init_storage(storage: StorageProvider) -> None:
    """Declare the unique indexes the auth core relies on."""
    for collection, indexes in UNIQUE_INDEXES.items():
        for fields in indexes:
            await storage.metadata.ensure_unique_index(collection, fields)
