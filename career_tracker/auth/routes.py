# =============================================================================
# Auth API Routes
# =============================================================================
#
# Endpoints (mounted under settings.auth_prefix, default /auth):
#   POST /register             - Create account
#   POST /login                - Sign in
#   POST /refresh              - Rotate the refresh cookie, new access token
#   POST /logout               - Revoke this session
#   POST /logout-all           - Revoke every session of the user
#   GET  /csrf                 - Re-issue the CSRF token for the refresh cookie
#   GET  /me                   - Current user
#   POST /verify-email         - Verify email address
#   POST /resend-verification  - Send a new verification email
#   POST /forgot-password      - Request password reset
#   POST /reset-password       - Reset password with token
#
# OAuth:
#   GET  /oauth/google          - Redirect to Google (sets state/verifier cookies)
#   GET  /oauth/callback/google - Complete sign-in, redirect to the frontend
#
# The refresh token only ever travels in the httpOnly cookie, never in JSON.
#
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, EmailStr, Field

from career_tracker.auth.context import AuthContext
from career_tracker.auth.cookies import (
    assert_allowed_origin,
    clear_oauth_cookies,
    clear_refresh_cookie,
    read_csrf_header,
    read_oauth_cookies,
    read_refresh_cookie,
    set_oauth_cookies,
    set_refresh_cookie,
)
from career_tracker.auth.models import User, UserResponse
from career_tracker.auth.policies import get_services, require
from career_tracker.auth.rate_limit import client_ip, rate_limit
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.core.utils import normalize_email

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

# Failures after which the browser's refresh cookie is useless
SESSION_ERRORS = {
    ErrorKind.SESSION_NOT_FOUND,
    ErrorKind.SESSION_REVOKED,
    ErrorKind.SESSION_EXPIRED,
    ErrorKind.SESSION_REUSE_DETECTED,
    ErrorKind.ACCOUNT_DEACTIVATED,
}

TOKEN_ERRORS = {ErrorKind.TOKEN_INVALID, ErrorKind.TOKEN_EXPIRED}


# =============================================================================
# Request/Response Models
# =============================================================================


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=200)
    name: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=200)


class TokenRequest(BaseModel):
    token: str = Field(min_length=1, max_length=500)


class EmailRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=500)
    new_password: str = Field(min_length=1, max_length=200)


class AuthResponse(BaseModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    csrf_token: str


class CsrfResponse(BaseModel):
    csrf_token: str | None


class OkResponse(BaseModel):
    ok: bool = True


def _auth_response(request: Request, user: User, access_token: str, csrf_token: str) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.from_user(user),
        access_token=access_token,
        expires_in=get_services(request).codec.access_expires_in,
        csrf_token=csrf_token,
    )


def _invalid_token(e: AppError) -> AppError:
    """Verification and reset links fail with one generic 400."""
    if e.kind in TOKEN_ERRORS:
        return AppError(e.kind, "Invalid or expired token", status_override=400)
    return e


# =============================================================================
# Password Sign-in
# =============================================================================


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    dependencies=[Depends(rate_limit("register", "rate_limit_register"))],
)
async def register(data: RegisterRequest, request: Request, response: Response):
    """
    Create a new account.

    Signs the user in immediately and sends a verification email.
    """
    services = get_services(request)
    result = await services.auth.register(data.email, data.password, data.name)
    set_refresh_cookie(response, services.settings, result.session.refresh_token)
    return _auth_response(request, result.user, result.access_token, result.session.csrf_token)


@router.post(
    "/login",
    response_model=AuthResponse,
    dependencies=[Depends(rate_limit("login", "rate_limit_login"))],
)
async def login(data: LoginRequest, request: Request, response: Response):
    services = get_services(request)
    settings = services.settings
    await services.rate_limiter.hit(
        f"login:{client_ip(request)}:{normalize_email(data.email)}",
        settings.rate_limit_login,
        settings.rate_limit_window_seconds,
    )

    result = await services.auth.login(data.email, data.password)
    set_refresh_cookie(response, settings, result.session.refresh_token)
    return _auth_response(request, result.user, result.access_token, result.session.csrf_token)


# =============================================================================
# Cookie Session
# =============================================================================


@router.post("/refresh", response_model=AuthResponse)
async def refresh(request: Request, response: Response):
    """
    Rotate the refresh cookie.

    Requires an allowed Origin and the X-CSRF-Token issued with the session.
    """
    services = get_services(request)
    settings = services.settings
    assert_allowed_origin(request, settings)

    raw = read_refresh_cookie(request)
    if raw is None:
        raise AppError(ErrorKind.SESSION_NOT_FOUND)

    # CSRF is bound to the live session; dead tokens go straight to rotate()
    # so replays of rotated tokens are still detected
    active = await services.sessions.get_active(raw)
    if active is not None:
        services.sessions.verify_csrf(active, read_csrf_header(request))

    try:
        rotated = await services.auth.refresh(raw)
    except AppError as e:
        if e.kind not in SESSION_ERRORS:
            raise
        failed = JSONResponse(e.to_response(), status_code=e.status_code)
        clear_refresh_cookie(failed, settings)
        return failed

    set_refresh_cookie(response, settings, rotated.refresh_token)
    return _auth_response(request, rotated.user, rotated.access_token, rotated.csrf_token)


@router.post("/logout", response_model=OkResponse)
async def logout(request: Request, response: Response):
    services = get_services(request)
    assert_allowed_origin(request, services.settings)
    await services.auth.logout(read_refresh_cookie(request))
    clear_refresh_cookie(response, services.settings)
    return OkResponse()


@router.post("/logout-all", response_model=OkResponse)
async def logout_all(
    request: Request,
    response: Response,
    ctx: AuthContext = Depends(require()),
):
    services = get_services(request)
    await services.auth.logout_all(ctx.user_id)
    clear_refresh_cookie(response, services.settings)
    return OkResponse()


@router.get("/csrf", response_model=CsrfResponse)
async def reissue_csrf(request: Request):
    """New CSRF token for the current refresh cookie, or null without one."""
    raw = read_refresh_cookie(request)
    if raw is None:
        return CsrfResponse(csrf_token=None)
    return CsrfResponse(csrf_token=await get_services(request).sessions.reissue_csrf(raw))


@router.get("/me", response_model=UserResponse)
async def get_current_user(ctx: AuthContext = Depends(require())):
    return UserResponse.from_user(ctx.user)


# =============================================================================
# Email Verification & Password Reset
# =============================================================================


@router.post("/verify-email", response_model=OkResponse)
async def verify_email(data: TokenRequest, request: Request):
    try:
        await get_services(request).verification.consume(data.token)
    except AppError as e:
        raise _invalid_token(e)
    return OkResponse()


@router.post(
    "/resend-verification",
    response_model=OkResponse,
    dependencies=[Depends(rate_limit("resend_verification", "rate_limit_email_requests"))],
)
async def resend_verification(data: EmailRequest, request: Request):
    """Always succeeds so the response never reveals whether an account exists."""
    await get_services(request).verification.resend(data.email)
    return OkResponse()


@router.post(
    "/forgot-password",
    response_model=OkResponse,
    dependencies=[Depends(rate_limit("forgot_password", "rate_limit_email_requests"))],
)
async def forgot_password(data: EmailRequest, request: Request):
    """Always succeeds so the response never reveals whether an account exists."""
    await get_services(request).password_reset.request(data.email)
    return OkResponse()


@router.post("/reset-password", response_model=OkResponse)
async def reset_password(data: ResetPasswordRequest, request: Request):
    try:
        await get_services(request).password_reset.reset(data.token, data.new_password)
    except AppError as e:
        raise _invalid_token(e)
    return OkResponse()


# =============================================================================
# Google OAuth
# =============================================================================


@router.get("/oauth/google")
async def oauth_google_start(request: Request):
    services = get_services(request)
    start = services.oauth.start()
    response = RedirectResponse(start.url, status_code=302)
    set_oauth_cookies(response, services.settings, start)
    return response


@router.get("/oauth/callback/google")
async def oauth_google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
):
    """
    Finish Google sign-in and send the browser back to the frontend.

    The state/verifier cookies are cleared on every outcome.
    """
    services = get_services(request)
    settings = services.settings
    frontend = settings.frontend_base_url

    try:
        result = await services.oauth.callback(code, state, read_oauth_cookies(request), error)
    except AppError as e:
        outcome = "cancelled" if e.kind == ErrorKind.OAUTH_CANCELLED else "failed"
        logger.warning(f"Google sign-in {outcome}: {e.code}")
        response = RedirectResponse(f"{frontend}/login?oauth={outcome}", status_code=302)
        clear_oauth_cookies(response, settings)
        return response
    except Exception:
        logger.exception("Google sign-in crashed")
        response = RedirectResponse(f"{frontend}/login?oauth=failed", status_code=302)
        clear_oauth_cookies(response, settings)
        return response

    response = RedirectResponse(f"{frontend}/oauth/callback", status_code=302)
    clear_oauth_cookies(response, settings)
    set_refresh_cookie(response, settings, result.session.refresh_token)
    return response
