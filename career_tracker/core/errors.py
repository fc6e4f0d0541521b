"""
Error taxonomy.

Every gate and ledger raises an AppError tagged with an ErrorKind. The HTTP
boundary never matches on exception classes: it looks the kind up in
ERROR_STATUS, so adding a kind without a status is caught by the test-suite.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable error codes returned to clients as `code`."""

    # Credentials / access tokens
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_KIND_MISMATCH = "TOKEN_KIND_MISMATCH"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    DUPLICATE_EMAIL = "DUPLICATE_EMAIL"

    # Gates
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    ADMIN_FORBIDDEN = "ADMIN_FORBIDDEN"
    ADMIN_UNAUTHORIZED = "ADMIN_UNAUTHORIZED"
    AI_QUOTA_EXCEEDED = "AI_QUOTA_EXCEEDED"
    AI_EXTRACTION_FAILED = "AI_EXTRACTION_FAILED"

    # Refresh sessions
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_REVOKED = "SESSION_REVOKED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    SESSION_REUSE_DETECTED = "SESSION_REUSE_DETECTED"
    CSRF_FAILED = "CSRF_FAILED"
    ORIGIN_FORBIDDEN = "ORIGIN_FORBIDDEN"

    # OAuth
    OAUTH_STATE_MISMATCH = "OAUTH_STATE_MISMATCH"
    OAUTH_MISSING_CODE = "OAUTH_MISSING_CODE"
    OAUTH_EMAIL_UNVERIFIED = "OAUTH_EMAIL_UNVERIFIED"
    OAUTH_CANCELLED = "OAUTH_CANCELLED"
    OAUTH_PROVIDER_ERROR = "OAUTH_PROVIDER_ERROR"
    OAUTH_NOT_CONFIGURED = "OAUTH_NOT_CONFIGURED"

    # Pro workflow
    PRO_REQUEST_ALREADY_PENDING = "PRO_REQUEST_ALREADY_PENDING"
    PRO_REQUEST_COOLDOWN = "PRO_REQUEST_COOLDOWN"
    PRO_REQUEST_NOT_FOUND = "PRO_REQUEST_NOT_FOUND"

    # Generic
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"


ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.TOKEN_INVALID: 401,
    ErrorKind.TOKEN_EXPIRED: 401,
    ErrorKind.TOKEN_KIND_MISMATCH: 401,
    ErrorKind.WEAK_PASSWORD: 400,
    ErrorKind.DUPLICATE_EMAIL: 409,
    ErrorKind.ACCOUNT_DEACTIVATED: 403,
    ErrorKind.EMAIL_NOT_VERIFIED: 403,
    ErrorKind.ADMIN_FORBIDDEN: 403,
    ErrorKind.ADMIN_UNAUTHORIZED: 401,
    ErrorKind.AI_QUOTA_EXCEEDED: 403,
    ErrorKind.AI_EXTRACTION_FAILED: 502,
    ErrorKind.SESSION_NOT_FOUND: 401,
    ErrorKind.SESSION_REVOKED: 401,
    ErrorKind.SESSION_EXPIRED: 401,
    ErrorKind.SESSION_REUSE_DETECTED: 401,
    ErrorKind.CSRF_FAILED: 403,
    ErrorKind.ORIGIN_FORBIDDEN: 403,
    ErrorKind.OAUTH_STATE_MISMATCH: 400,
    ErrorKind.OAUTH_MISSING_CODE: 400,
    ErrorKind.OAUTH_EMAIL_UNVERIFIED: 400,
    ErrorKind.OAUTH_CANCELLED: 400,
    ErrorKind.OAUTH_PROVIDER_ERROR: 400,
    ErrorKind.OAUTH_NOT_CONFIGURED: 500,
    ErrorKind.PRO_REQUEST_ALREADY_PENDING: 409,
    ErrorKind.PRO_REQUEST_COOLDOWN: 409,
    ErrorKind.PRO_REQUEST_NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.NOT_FOUND: 404,
}


DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_CREDENTIALS: "Invalid credentials",
    ErrorKind.UNAUTHORIZED: "Unauthorized",
    ErrorKind.TOKEN_INVALID: "Invalid token",
    ErrorKind.TOKEN_EXPIRED: "Token has expired",
    ErrorKind.TOKEN_KIND_MISMATCH: "Wrong token type",
    ErrorKind.ACCOUNT_DEACTIVATED: "Account deactivated",
    ErrorKind.EMAIL_NOT_VERIFIED: "Email not verified",
    ErrorKind.ADMIN_FORBIDDEN: "Forbidden",
    ErrorKind.ADMIN_UNAUTHORIZED: "Unauthorized",
    ErrorKind.AI_QUOTA_EXCEEDED: "AI quota exceeded",
    ErrorKind.AI_EXTRACTION_FAILED: "AI extraction failed, please try again",
    ErrorKind.SESSION_NOT_FOUND: "Session not found",
    ErrorKind.SESSION_REVOKED: "Session revoked",
    ErrorKind.SESSION_EXPIRED: "Session expired, please log in again",
    ErrorKind.SESSION_REUSE_DETECTED: "Session revoked",
    ErrorKind.DUPLICATE_EMAIL: "Email already in use",
    ErrorKind.RATE_LIMITED: "Too many requests",
}


class AppError(Exception):
    """
    An expected, client-facing failure.

    Usage:
        raise AppError(ErrorKind.EMAIL_NOT_VERIFIED)
        raise AppError(ErrorKind.WEAK_PASSWORD, "Password must ...", detail={...})

    `status_override` lets a route keep a historical status for one endpoint
    (the kind, and therefore `code`, is unchanged).
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        *,
        detail: dict[str, Any] | None = None,
        status_override: int | None = None,
    ):
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES.get(kind, kind.value.replace("_", " ").capitalize())
        self.detail = detail or {}
        self.status_override = status_override
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def status_code(self) -> int:
        if self.status_override is not None:
            return self.status_override
        return ERROR_STATUS[self.kind]

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"message": self.message, "code": self.code}
        if self.detail:
            body["detail"] = self.detail
        return body

    def __repr__(self) -> str:
        return f"AppError({self.kind.value}, {self.message!r})"
