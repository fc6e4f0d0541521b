"""
Policies - the clean interface for route authorization.

Just use: `ctx: AuthContext = Depends(require(require_verified_email))`

Design:
- `require(*gates)` returns a FastAPI dependency that resolves to AuthContext
- `require_auth` always runs first, so an anonymous caller never learns
  anything a later gate would reveal (verified email, admin, Pro)
- Gates run in the order given; the first failure raises an AppError
- Gates only read; the AuthContext is the only thing they produce
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from career_tracker.auth.context import AuthContext
from career_tracker.auth.tokens import TokenKind, constant_time_equals
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.integrations.sentry import set_user

if TYPE_CHECKING:
    from career_tracker.api.dependencies import Services

Gate = Callable[[AuthContext, "Services"], Awaitable[None]]

ADMIN_API_KEY_HEADER = "X-Admin-Api-Key"


def get_services(request: Request) -> Services:
    """The per-app service container built by create_app()."""
    return request.app.state.services


# =============================================================================
# Authentication
# =============================================================================


# Doesn't fail on a missing header; require_auth raises the typed error instead
optional_bearer = HTTPBearer(auto_error=False)


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
) -> AuthContext:
    """
    Resolve the bearer access token to a live, active user.

    Raises:
        AppError(UNAUTHORIZED): no bearer token, or the user no longer exists
        AppError(TOKEN_INVALID / TOKEN_EXPIRED / TOKEN_KIND_MISMATCH): bad token
        AppError(ACCOUNT_DEACTIVATED): user is inactive
    """
    if credentials is None or not credentials.credentials:
        raise AppError(ErrorKind.UNAUTHORIZED, "Missing Bearer token")

    services = get_services(request)
    claims = services.codec.verify(credentials.credentials, TokenKind.ACCESS)

    user = await services.users.get(claims.sub)
    if user is None:
        raise AppError(ErrorKind.UNAUTHORIZED)
    if not user.is_active:
        raise AppError(ErrorKind.ACCOUNT_DEACTIVATED)

    set_user(user.id)
    return AuthContext(user_id=user.id, email=user.email, user=user)


# =============================================================================
# Gates (run after require_auth)
# =============================================================================


async def require_verified_email(ctx: AuthContext, services: Services) -> None:
    if not ctx.user.email_verified:
        raise AppError(ErrorKind.EMAIL_NOT_VERIFIED)


async def require_admin(ctx: AuthContext, services: Services) -> None:
    if not ctx.user.is_admin:
        raise AppError(ErrorKind.ADMIN_FORBIDDEN)


async def require_ai_access(ctx: AuthContext, services: Services) -> None:
    await services.quota.assert_access(ctx.user_id)


# =============================================================================
# Main Interface - the require() function
# =============================================================================


def require(*gates: Gate) -> Callable:
    """
    Compose gates behind authentication.

    Usage:
        @router.post("/application-from-jd")
        async def extract(
            ctx: AuthContext = Depends(require(require_verified_email, require_ai_access)),
        ):
            ...
    """

    async def dependency(
        request: Request,
        ctx: AuthContext = Depends(require_auth),
    ) -> AuthContext:
        services = get_services(request)
        for gate in gates:
            await gate(ctx, services)
        return ctx

    return dependency


# =============================================================================
# Operator credential (out-of-band from user sessions)
# =============================================================================


async def require_admin_api_key(request: Request) -> None:
    """Constant-time check of the X-Admin-Api-Key header."""
    expected = get_services(request).settings.admin_api_key
    provided = request.headers.get(ADMIN_API_KEY_HEADER)
    if not expected or not constant_time_equals(provided, expected):
        raise AppError(ErrorKind.ADMIN_UNAUTHORIZED)
