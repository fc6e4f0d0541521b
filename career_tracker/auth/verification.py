"""
Email-verification ledger.

Tokens are single-use and expire after 24 hours. Issuing a new token
invalidates any other open token of the same user, so only the most recent
email link works.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from career_tracker.auth.models import EmailVerificationToken, OneTimeToken
from career_tracker.auth.tokens import TokenCodec, generate_token
from career_tracker.auth.users import CredentialStore
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.core.utils import utc_now
from career_tracker.integrations.email import EmailService
from career_tracker.storage import Collections, StorageProvider

logger = logging.getLogger(__name__)


class OneTimeTokenLedger:
    """Issue/consume bookkeeping shared by verification and reset tokens."""

    collection: str = ""
    model: type[OneTimeToken] = OneTimeToken

    def __init__(self, storage: StorageProvider, codec: TokenCodec, ttl: timedelta):
        self.storage = storage
        self.codec = codec
        self.ttl = ttl

    async def issue(self, user_id: str) -> str:
        """Create a token for the user and return the raw value (sent by email, never stored)."""
        raw = generate_token(32)
        now = utc_now()
        record = self.model(
            user_id=user_id,
            token_hash=self.codec.hash_token(raw),
            expires_at=now + self.ttl,
            created_at=now,
        )

        async with self.storage.metadata.transaction():
            await self.storage.metadata.update_many(
                self.collection,
                {"user_id": user_id, "consumed_at__is_null": True},
                {"consumed_at": now},
            )
            await self.storage.metadata.insert(self.collection, record.id, record.to_record())

        return raw

    async def _claim(self, raw: str) -> OneTimeToken:
        """
        Mark a token consumed. Must run inside a transaction.

        Raises:
            AppError(TOKEN_INVALID): unknown or already consumed
            AppError(TOKEN_EXPIRED): past expiry
        """
        data = await self.storage.metadata.find_one(
            self.collection,
            {"token_hash": self.codec.hash_token(raw)},
        )
        if data is None:
            raise AppError(ErrorKind.TOKEN_INVALID)

        token = self.model.from_record(data)
        now = utc_now()
        if token.consumed_at is not None:
            raise AppError(ErrorKind.TOKEN_INVALID)
        if token.expires_at <= now:
            raise AppError(ErrorKind.TOKEN_EXPIRED)

        claimed = await self.storage.metadata.update(
            self.collection,
            token.id,
            {"consumed_at": now},
            where={"consumed_at__is_null": True},
        )
        if not claimed:
            raise AppError(ErrorKind.TOKEN_INVALID)
        return token


class EmailVerificationLedger(OneTimeTokenLedger):
    collection = Collections.EMAIL_VERIFICATION_TOKENS
    model = EmailVerificationToken

    def __init__(
        self,
        storage: StorageProvider,
        codec: TokenCodec,
        users: CredentialStore,
        email: EmailService,
        ttl: timedelta = timedelta(hours=24),
    ):
        super().__init__(storage, codec, ttl)
        self.users = users
        self.email = email

    async def consume(self, raw: str) -> str:
        """
        Verify an email address. Returns the user id.

        The token is consumed and `email_verified_at` set in one transaction;
        of two concurrent consumptions exactly one succeeds.
        """
        async with self.storage.metadata.transaction():
            token = await self._claim(raw)
            await self.users.mark_email_verified(token.user_id)

        logger.info(f"Email verified for user {token.user_id}")
        return token.user_id

    async def send_for(self, user_id: str, email: str, name: str | None) -> None:
        raw = await self.issue(user_id)
        await self.email.send_verification(email, name, raw)

    async def resend(self, email: str) -> None:
        """Always returns normally; only an existing unverified account gets an email."""
        user = await self.users.get_by_email(email)
        if user is None or user.email_verified or not user.is_active:
            return
        await self.send_for(user.id, user.email, user.name)
