"""
AI quota ledger.

Regular users get a fixed number of free AI runs. Pro users and admins are
unlimited. A run is only charged after it succeeds, and the charge is a
single conditional increment:

    ai_free_uses_used += 1
    WHERE ai_pro_enabled = false AND is_admin = false AND ai_free_uses_used < cap

so concurrent runs can never push the counter past the cap.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel

from career_tracker.auth.models import User
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.core.utils import utc_now
from career_tracker.storage import Collections, StorageProvider

logger = logging.getLogger(__name__)

AI_FREE_QUOTA = 5


class AiTier(str, Enum):
    """Admin overrides Pro; Pro overrides regular."""

    REGULAR = "regular"
    PRO = "pro"
    ADMIN = "admin"


class AiAccessStatus(BaseModel):
    tier: AiTier
    unlimited: bool
    used: int
    cap: int
    remaining: int | None


def resolve_tier(user: User) -> AiTier:
    if user.is_admin:
        return AiTier.ADMIN
    if user.ai_pro_enabled:
        return AiTier.PRO
    return AiTier.REGULAR


class QuotaLedger:
    def __init__(self, storage: StorageProvider, cap: int = AI_FREE_QUOTA):
        self.storage = storage
        self.cap = cap

    async def _load(self, user_id: str) -> User:
        data = await self.storage.metadata.get(Collections.USERS, user_id)
        if data is None:
            raise AppError(ErrorKind.UNAUTHORIZED)
        return User.from_record(data)

    async def resolve_tier(self, user_id: str) -> AiTier:
        return resolve_tier(await self._load(user_id))

    async def status(self, user_id: str) -> AiAccessStatus:
        user = await self._load(user_id)
        tier = resolve_tier(user)
        unlimited = tier != AiTier.REGULAR
        return AiAccessStatus(
            tier=tier,
            unlimited=unlimited,
            used=user.ai_free_uses_used,
            cap=self.cap,
            remaining=None if unlimited else max(self.cap - user.ai_free_uses_used, 0),
        )

    async def assert_access(self, user_id: str) -> AiTier:
        """Pre-flight check; raises AI_QUOTA_EXCEEDED when a regular user is out of runs."""
        user = await self._load(user_id)
        tier = resolve_tier(user)
        if tier == AiTier.REGULAR and user.ai_free_uses_used >= self.cap:
            raise AppError(
                ErrorKind.AI_QUOTA_EXCEEDED,
                detail={"used": user.ai_free_uses_used, "cap": self.cap},
            )
        return tier

    async def consume_on_success(self, user_id: str) -> None:
        """Charge one free run after a successful AI call."""
        charged = await self.storage.metadata.increment(
            Collections.USERS,
            user_id,
            "ai_free_uses_used",
            1,
            where={
                "ai_pro_enabled": False,
                "is_admin": False,
                "ai_free_uses_used__lt": self.cap,
            },
        )
        if charged:
            return

        # Nothing charged: either unlimited, or the cap was reached meanwhile
        user = await self._load(user_id)
        if resolve_tier(user) != AiTier.REGULAR:
            return

        logger.warning(f"AI quota exhausted for user {user_id} ({user.ai_free_uses_used}/{self.cap})")
        raise AppError(
            ErrorKind.AI_QUOTA_EXCEEDED,
            detail={"used": user.ai_free_uses_used, "cap": self.cap},
        )

    async def reset(self, user_id: str) -> bool:
        """Give a regular user a fresh set of free runs."""
        return await self.storage.metadata.update(
            Collections.USERS,
            user_id,
            {"ai_free_uses_used": 0, "updated_at": utc_now()},
        )
