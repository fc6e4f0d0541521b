"""
Session ledger: refresh credentials, rotation and revocation.

Each login starts a chain. Rotating a refresh token revokes the current row
and inserts its successor in one transaction, so a chain has at most one
valid session at any time. Presenting a token that was already rotated
means two parties hold the chain; the whole chain is revoked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from career_tracker.auth.models import AuthSession, User
from career_tracker.auth.tokens import TokenCodec, constant_time_equals, generate_token
from career_tracker.auth.users import CredentialStore
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.core.utils import generate_id, utc_now
from career_tracker.storage import Collections, StorageProvider

logger = logging.getLogger(__name__)

REFRESH_TOKEN_BYTES = 48
CSRF_TOKEN_BYTES = 32


@dataclass
class IssuedSession:
    """Raw values go to the client once; only their hashes are stored."""

    refresh_token: str
    csrf_token: str
    session: AuthSession


@dataclass
class RotatedSession:
    access_token: str
    refresh_token: str
    csrf_token: str
    session: AuthSession
    user: User


class SessionLedger:
    def __init__(
        self,
        storage: StorageProvider,
        codec: TokenCodec,
        users: CredentialStore,
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        self.storage = storage
        self.codec = codec
        self.users = users
        self.refresh_ttl = refresh_ttl

    # =========================================================================
    # Issue
    # =========================================================================

    def _new_session(self, user_id: str, chain_id: str | None = None) -> IssuedSession:
        refresh_token = generate_token(REFRESH_TOKEN_BYTES)
        csrf_token = generate_token(CSRF_TOKEN_BYTES)
        now = utc_now()
        session = AuthSession(
            user_id=user_id,
            refresh_token_hash=self.codec.hash_token(refresh_token),
            csrf_token_hash=self.codec.hash_token(csrf_token),
            chain_id=chain_id or generate_id("chain"),
            expires_at=now + self.refresh_ttl,
            created_at=now,
        )
        return IssuedSession(refresh_token=refresh_token, csrf_token=csrf_token, session=session)

    async def create_session(self, user_id: str, chain_id: str | None = None) -> IssuedSession:
        """Start a new chain (login, register, OAuth) or extend `chain_id`."""
        issued = self._new_session(user_id, chain_id)
        await self.storage.metadata.insert(
            Collections.AUTH_SESSIONS,
            issued.session.id,
            issued.session.to_record(),
        )
        logger.debug(f"Created session {issued.session.id} for user {user_id}")
        return issued

    # =========================================================================
    # Lookup
    # =========================================================================

    async def _find(self, raw_refresh_token: str) -> AuthSession | None:
        data = await self.storage.metadata.find_one(
            Collections.AUTH_SESSIONS,
            {"refresh_token_hash": self.codec.hash_token(raw_refresh_token)},
        )
        return AuthSession.from_record(data) if data else None

    async def get_active(self, raw_refresh_token: str) -> AuthSession | None:
        """The session for this token if it is unrevoked and unexpired."""
        session = await self._find(raw_refresh_token)
        if session is None or session.revoked_at is not None:
            return None
        if session.expires_at <= utc_now():
            return None
        return session

    # =========================================================================
    # Rotation
    # =========================================================================

    async def rotate(self, raw_refresh_token: str) -> RotatedSession:
        """
        Exchange a refresh token for a new access token and a new refresh token.

        Raises:
            AppError(SESSION_NOT_FOUND): unknown token
            AppError(SESSION_REUSE_DETECTED): token was already rotated; chain revoked
            AppError(SESSION_REVOKED): token was logged out
            AppError(SESSION_EXPIRED): token past its expiry
            AppError(ACCOUNT_DEACTIVATED): owner deactivated; chain revoked
        """
        metadata = self.storage.metadata
        failure: ErrorKind | None = None
        failed_session: AuthSession | None = None

        async with metadata.transaction():
            current = await self._find(raw_refresh_token)
            if current is None:
                raise AppError(ErrorKind.SESSION_NOT_FOUND)

            now = utc_now()

            if current.revoked_at is not None:
                if current.replaced_by is None:
                    raise AppError(ErrorKind.SESSION_REVOKED)
                failure, failed_session = ErrorKind.SESSION_REUSE_DETECTED, current
            elif current.expires_at <= now:
                raise AppError(ErrorKind.SESSION_EXPIRED)
            else:
                user = await self.users.get(current.user_id)
                if user is None or not user.is_active:
                    failure, failed_session = ErrorKind.ACCOUNT_DEACTIVATED, current
                else:
                    successor = self._new_session(current.user_id, current.chain_id)
                    revoked = await metadata.update(
                        Collections.AUTH_SESSIONS,
                        current.id,
                        {"revoked_at": now, "replaced_by": successor.session.id},
                        where={"revoked_at__is_null": True},
                    )
                    if not revoked:
                        # Lost a race with another rotation of the same token
                        failure, failed_session = ErrorKind.SESSION_REUSE_DETECTED, current
                    else:
                        await metadata.insert(
                            Collections.AUTH_SESSIONS,
                            successor.session.id,
                            successor.session.to_record(),
                        )

        # Revocations below must persist, so they run outside the transaction
        if failure is not None:
            await self.revoke_chain(failed_session.chain_id)
            if failure == ErrorKind.SESSION_REUSE_DETECTED:
                logger.warning(
                    f"Refresh token reuse detected for user {failed_session.user_id}; "
                    f"revoked chain {failed_session.chain_id}"
                )
            else:
                logger.warning(f"Refresh refused: user {failed_session.user_id} is inactive")
            raise AppError(failure)

        return RotatedSession(
            access_token=self.codec.sign_access(user.id, user.email),
            refresh_token=successor.refresh_token,
            csrf_token=successor.csrf_token,
            session=successor.session,
            user=user,
        )

    # =========================================================================
    # Revocation
    # =========================================================================

    async def revoke(self, raw_refresh_token: str) -> bool:
        """Logout one session. Unknown or already revoked tokens are a no-op."""
        session = await self._find(raw_refresh_token)
        if session is None:
            return False
        return await self.storage.metadata.update(
            Collections.AUTH_SESSIONS,
            session.id,
            {"revoked_at": utc_now()},
            where={"revoked_at__is_null": True},
        )

    async def revoke_chain(self, chain_id: str) -> int:
        return await self.storage.metadata.update_many(
            Collections.AUTH_SESSIONS,
            {"chain_id": chain_id, "revoked_at__is_null": True},
            {"revoked_at": utc_now()},
        )

    async def revoke_all(self, user_id: str) -> int:
        """Logout everywhere."""
        count = await self.storage.metadata.update_many(
            Collections.AUTH_SESSIONS,
            {"user_id": user_id, "revoked_at__is_null": True},
            {"revoked_at": utc_now()},
        )
        logger.info(f"Revoked {count} session(s) for user {user_id}")
        return count

    async def list_active(self, user_id: str) -> list[AuthSession]:
        rows = await self.storage.metadata.query(
            Collections.AUTH_SESSIONS,
            {"user_id": user_id, "revoked_at__is_null": True, "expires_at__gt": utc_now()},
            order_by="created_at",
        )
        return [AuthSession.from_record(r) for r in rows]

    # =========================================================================
    # CSRF (double-submit, bound to the refresh session)
    # =========================================================================

    def verify_csrf(self, session: AuthSession, raw_csrf_token: str | None) -> None:
        if not raw_csrf_token:
            raise AppError(ErrorKind.CSRF_FAILED, "Missing CSRF token")
        if not constant_time_equals(self.codec.hash_token(raw_csrf_token), session.csrf_token_hash):
            raise AppError(ErrorKind.CSRF_FAILED, "Invalid CSRF token")

    async def reissue_csrf(self, raw_refresh_token: str) -> str | None:
        """New CSRF token for an active session (page reloads lose the old one)."""
        session = await self.get_active(raw_refresh_token)
        if session is None:
            return None
        csrf_token = generate_token(CSRF_TOKEN_BYTES)
        updated = await self.storage.metadata.update(
            Collections.AUTH_SESSIONS,
            session.id,
            {"csrf_token_hash": self.codec.hash_token(csrf_token)},
            where={"revoked_at__is_null": True},
        )
        return csrf_token if updated else None
