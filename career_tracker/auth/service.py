"""
Auth service: the token-issuance path shared by register, login and OAuth.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from career_tracker.auth.models import User
from career_tracker.auth.sessions import IssuedSession, RotatedSession, SessionLedger
from career_tracker.auth.tokens import TokenCodec
from career_tracker.auth.users import CredentialStore
from career_tracker.auth.verification import EmailVerificationLedger

logger = logging.getLogger(__name__)


@dataclass
class AuthResult:
    """A signed-in user: access token for the body, session for the cookie."""

    user: User
    access_token: str
    session: IssuedSession


class AuthService:
    def __init__(
        self,
        users: CredentialStore,
        sessions: SessionLedger,
        verification: EmailVerificationLedger,
        codec: TokenCodec,
    ):
        self.users = users
        self.sessions = sessions
        self.verification = verification
        self.codec = codec

    async def issue_for_user(self, user: User) -> AuthResult:
        """Start a new session chain for an authenticated user."""
        session = await self.sessions.create_session(user.id)
        return AuthResult(
            user=user,
            access_token=self.codec.sign_access(user.id, user.email),
            session=session,
        )

    async def register(self, email: str, password: str, name: str | None = None) -> AuthResult:
        user = await self.users.create(email, password, name)
        result = await self.issue_for_user(user)
        await self.verification.send_for(user.id, user.email, user.name)
        return result

    async def login(self, email: str, password: str) -> AuthResult:
        user = await self.users.authenticate(email, password)
        logger.info(f"User {user.id} logged in")
        return await self.issue_for_user(user)

    async def refresh(self, raw_refresh_token: str) -> RotatedSession:
        return await self.sessions.rotate(raw_refresh_token)

    async def logout(self, raw_refresh_token: str | None) -> None:
        if raw_refresh_token:
            await self.sessions.revoke(raw_refresh_token)

    async def logout_all(self, user_id: str) -> int:
        return await self.sessions.revoke_all(user_id)
