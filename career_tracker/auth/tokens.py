# =============================================================================
# Token Codec
# =============================================================================
#
# Two kinds of credentials:
#   - Signed JWTs (PyJWT, HS256) for short-lived access tokens.
#   - Opaque random strings for refresh / verification / reset tokens. Only a
#     keyed hash of these is ever persisted.
#
# =============================================================================

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum

import jwt
from pydantic import BaseModel

from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.core.utils import generate_id, utc_now


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenClaims(BaseModel):
    """Verified JWT claims."""

    sub: str  # user_id
    email: str | None = None
    type: TokenKind
    iat: datetime
    exp: datetime
    jti: str


class TokenCodec:
    """Signs and verifies JWTs with a single server secret."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        if not secret:
            raise ValueError("Token signing secret must not be empty")
        self.secret = secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @property
    def access_expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return int(self.access_ttl.total_seconds())

    def sign(self, user_id: str, email: str | None, kind: TokenKind) -> str:
        now = utc_now()
        ttl = self.access_ttl if kind == TokenKind.ACCESS else self.refresh_ttl
        payload = {
            "sub": user_id,
            "type": kind.value,
            "iat": now,
            "exp": now + ttl,
            "jti": generate_id("tok"),
        }
        if email is not None:
            payload["email"] = email
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def sign_access(self, user_id: str, email: str) -> str:
        return self.sign(user_id, email, TokenKind.ACCESS)

    def verify(self, token: str, expected_kind: TokenKind = TokenKind.ACCESS) -> TokenClaims:
        """
        Decode and validate a JWT.

        Raises:
            AppError(TOKEN_EXPIRED): signature fine, `exp` in the past
            AppError(TOKEN_INVALID): bad signature, malformed, missing claims
            AppError(TOKEN_KIND_MISMATCH): valid token of the other kind
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp", "iat", "type"]},
            )
        except jwt.ExpiredSignatureError:
            raise AppError(ErrorKind.TOKEN_EXPIRED)
        except jwt.InvalidTokenError:
            raise AppError(ErrorKind.TOKEN_INVALID)

        try:
            kind = TokenKind(payload["type"])
        except ValueError:
            raise AppError(ErrorKind.TOKEN_INVALID)

        if kind != expected_kind:
            raise AppError(ErrorKind.TOKEN_KIND_MISMATCH)

        return TokenClaims(
            sub=payload["sub"],
            email=payload.get("email"),
            type=kind,
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            jti=payload.get("jti", ""),
        )

    # =========================================================================
    # Opaque tokens
    # =========================================================================

    def hash_token(self, raw: str) -> str:
        """Keyed SHA-256 of an opaque token; the only form that is stored."""
        return hmac.new(self.secret.encode("utf-8"), raw.encode("utf-8"), hashlib.sha256).hexdigest()


def generate_token(nbytes: int = 32) -> str:
    """URL-safe random token with `nbytes` bytes of entropy."""
    return secrets.token_urlsafe(nbytes)


def pkce_challenge(verifier: str) -> str:
    """S256 code challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def constant_time_equals(a: str | None, b: str | None) -> bool:
    if a is None or b is None:
        return False
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
