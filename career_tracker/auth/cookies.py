# =============================================================================
# Auth HTTP boundary helpers
# =============================================================================
#
# Cookies, Origin and CSRF header parsing for the cookie-authenticated
# endpoints, kept out of the route handlers.
#
#   career_tracker_refresh                 refresh token, path = auth prefix
#   career_tracker_google_oauth_state      OAuth state, path = callback route
#   career_tracker_google_oauth_verifier   PKCE verifier, path = callback route
#
# =============================================================================

from __future__ import annotations

from fastapi import Request, Response

from career_tracker.auth.oauth import OAuthCookies, OAuthStart
from career_tracker.config import Settings
from career_tracker.core.errors import AppError, ErrorKind

REFRESH_COOKIE = "career_tracker_refresh"
OAUTH_STATE_COOKIE = "career_tracker_google_oauth_state"
OAUTH_VERIFIER_COOKIE = "career_tracker_google_oauth_verifier"

CSRF_HEADER = "X-CSRF-Token"


def _cookie_flags(settings: Settings) -> dict:
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "none" if settings.is_production else "lax",
    }


# =============================================================================
# Refresh cookie
# =============================================================================


def set_refresh_cookie(response: Response, settings: Settings, refresh_token: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        path=settings.auth_prefix,
        **_cookie_flags(settings),
    )


def clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(REFRESH_COOKIE, path=settings.auth_prefix, **_cookie_flags(settings))


def read_refresh_cookie(request: Request) -> str | None:
    return request.cookies.get(REFRESH_COOKIE) or None


# =============================================================================
# OAuth cookies
# =============================================================================


def set_oauth_cookies(response: Response, settings: Settings, start: OAuthStart) -> None:
    options = {
        "max_age": settings.oauth_state_max_age_seconds,
        "path": settings.oauth_callback_path,
        **_cookie_flags(settings),
    }
    response.set_cookie(OAUTH_STATE_COOKIE, start.state, **options)
    response.set_cookie(OAUTH_VERIFIER_COOKIE, start.code_verifier, **options)


def clear_oauth_cookies(response: Response, settings: Settings) -> None:
    for name in (OAUTH_STATE_COOKIE, OAUTH_VERIFIER_COOKIE):
        response.delete_cookie(name, path=settings.oauth_callback_path, **_cookie_flags(settings))


def read_oauth_cookies(request: Request) -> OAuthCookies | None:
    """Both cookies or nothing."""
    state = request.cookies.get(OAUTH_STATE_COOKIE)
    verifier = request.cookies.get(OAUTH_VERIFIER_COOKIE)
    if not state or not verifier:
        return None
    return OAuthCookies(state=state, code_verifier=verifier)


# =============================================================================
# Origin / CSRF
# =============================================================================


def assert_allowed_origin(request: Request, settings: Settings) -> None:
    """
    Strict Origin check for cookie-authenticated endpoints.

    Production requires an Origin header; development tolerates its absence
    (curl, test clients).
    """
    origin = request.headers.get("origin")
    if not origin:
        if settings.is_production:
            raise AppError(ErrorKind.ORIGIN_FORBIDDEN, "Missing Origin")
        return
    if origin not in settings.cors_origins_list:
        raise AppError(ErrorKind.ORIGIN_FORBIDDEN, "Origin not allowed")


def read_csrf_header(request: Request) -> str | None:
    """The X-CSRF-Token header, or None when absent or implausibly sized."""
    raw = request.headers.get(CSRF_HEADER)
    if not raw or len(raw) < 10 or len(raw) > 500:
        return None
    return raw
