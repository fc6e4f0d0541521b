"""
Identity records.

These are the shapes persisted through MetadataStorage. `to_record()` /
`from_record()` are the only conversions between models and storage dicts.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from career_tracker.core.utils import generate_id, utc_now


class Record(BaseModel):
    """Base for persisted models."""

    def to_record(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_record(cls, data: dict[str, Any]):
        return cls.model_validate(data)


# =============================================================================
# Users
# =============================================================================


class User(Record):
    """An account. Never hard-deleted; deactivation flips `is_active`."""

    id: str = Field(default_factory=lambda: generate_id("user"))
    email: str
    password_hash: str
    name: str | None = None
    email_verified_at: datetime | None = None
    is_active: bool = True
    is_admin: bool = False
    ai_pro_enabled: bool = False
    ai_free_uses_used: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def email_verified(self) -> bool:
        return self.email_verified_at is not None


class UserResponse(BaseModel):
    """User data returned to clients (no credential material)."""

    id: str
    email: str
    name: str | None
    email_verified: bool
    is_admin: bool
    ai_pro_enabled: bool
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            email_verified=user.email_verified,
            is_admin=user.is_admin,
            ai_pro_enabled=user.ai_pro_enabled,
            created_at=user.created_at,
        )


# =============================================================================
# Sessions
# =============================================================================


class AuthSession(Record):
    """
    One refresh credential.

    Rotation revokes the current row and inserts a successor with the same
    `chain_id`; `replaced_by` on the predecessor tells a replayed rotated token
    apart from a logged-out one.
    """

    id: str = Field(default_factory=lambda: generate_id("sess"))
    user_id: str
    refresh_token_hash: str
    csrf_token_hash: str
    chain_id: str
    expires_at: datetime
    revoked_at: datetime | None = None
    replaced_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# One-time tokens
# =============================================================================


class OneTimeToken(Record):
    id: str = Field(default_factory=lambda: generate_id("tok"))
    user_id: str
    token_hash: str
    expires_at: datetime
    consumed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)


class EmailVerificationToken(OneTimeToken):
    pass


class PasswordResetToken(OneTimeToken):
    pass


# =============================================================================
# Federated identities
# =============================================================================


class OAuthProvider(str, Enum):
    GOOGLE = "GOOGLE"


class OAuthAccount(Record):
    id: str = Field(default_factory=lambda: generate_id("oauth"))
    provider: OAuthProvider
    provider_account_id: str
    user_id: str
    created_at: datetime = Field(default_factory=utc_now)
