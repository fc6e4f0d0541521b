"""
Fixed-window rate limiting on top of CacheStorage.

    @router.post("/register", dependencies=[Depends(rate_limit("register", "rate_limit_register"))])

Counters live in the cache backend, so limits hold across replicas when the
cache is shared (Redis in production).
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Depends, Request

from career_tracker.auth.context import AuthContext
from career_tracker.auth.policies import get_services, require_auth
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.storage import CacheStorage

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


class RateLimiter:
    def __init__(self, cache: CacheStorage):
        self.cache = cache

    async def hit(self, key: str, limit: int, window_seconds: int) -> None:
        """Count one request against `key`; raise RATE_LIMITED past `limit`."""
        if limit <= 0:
            return
        count = await self.cache.incr(f"ratelimit:{key}", 1, ttl=window_seconds)
        if count > limit:
            logger.warning(f"Rate limit exceeded for {key.split(':', 1)[0]}")
            raise AppError(
                ErrorKind.RATE_LIMITED,
                detail={"retry_after_seconds": window_seconds},
            )


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def rate_limit(scope: str, limit_setting: str, window_seconds: int | None = None) -> Callable:
    """Per-IP limit. `limit_setting` names the Settings field holding the limit."""

    async def dependency(request: Request) -> None:
        services = get_services(request)
        settings = services.settings
        await services.rate_limiter.hit(
            f"{scope}:{client_ip(request)}",
            getattr(settings, limit_setting),
            window_seconds or settings.rate_limit_window_seconds,
        )

    return dependency


def rate_limit_per_user(scope: str, limit_setting: str, window_seconds: int = DAY_SECONDS) -> Callable:
    """Per-user limit; runs after authentication."""

    async def dependency(
        request: Request,
        ctx: AuthContext = Depends(require_auth),
    ) -> None:
        services = get_services(request)
        await services.rate_limiter.hit(
            f"{scope}:{ctx.user_id}",
            getattr(services.settings, limit_setting),
            window_seconds,
        )

    return dependency
