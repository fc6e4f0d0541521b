"""
Password-reset ledger.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from career_tracker.auth.models import PasswordResetToken
from career_tracker.auth.passwords import validate_password
from career_tracker.auth.sessions import SessionLedger
from career_tracker.auth.tokens import TokenCodec
from career_tracker.auth.users import CredentialStore
from career_tracker.auth.verification import OneTimeTokenLedger
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.integrations.email import EmailService
from career_tracker.storage import Collections, StorageProvider

logger = logging.getLogger(__name__)


class PasswordResetLedger(OneTimeTokenLedger):
    collection = Collections.PASSWORD_RESET_TOKENS
    model = PasswordResetToken

    def __init__(
        self,
        storage: StorageProvider,
        codec: TokenCodec,
        users: CredentialStore,
        sessions: SessionLedger,
        email: EmailService,
        ttl: timedelta = timedelta(hours=1),
    ):
        super().__init__(storage, codec, ttl)
        self.users = users
        self.sessions = sessions
        self.email = email

    async def request(self, email: str) -> None:
        """Always returns normally; a reset link is only sent to an existing active account."""
        user = await self.users.get_by_email(email)
        if user is None or not user.is_active:
            return
        raw = await self.issue(user.id)
        await self.email.send_password_reset(user.email, raw)

    async def reset(self, raw: str, new_password: str) -> str:
        """
        Replace the password and sign the user out everywhere. Returns the user id.
        """
        async with self.storage.metadata.transaction():
            token = await self._claim(raw)
            user = await self.users.get(token.user_id)
            if user is None:
                raise AppError(ErrorKind.TOKEN_INVALID)
            validate_password(new_password, user.email)
            await self.users.set_password(user.id, new_password)
            await self.sessions.revoke_all(user.id)

        logger.info(f"Password reset for user {user.id}")
        return user.id
