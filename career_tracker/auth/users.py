"""
Credential store: user accounts and password login.
"""

from __future__ import annotations

import logging
from typing import Any

from career_tracker.auth.models import User
from career_tracker.auth.passwords import PasswordHasher, validate_password
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.core.utils import clean_optional_text, normalize_email, utc_now
from career_tracker.storage import Collections, DuplicateKeyError, StorageProvider

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Looks up and creates users, and checks passwords.

    Emails are normalized on every path in and out, so "A@X.com " and
    "a@x.com" always address the same account.
    """

    def __init__(self, storage: StorageProvider, hasher: PasswordHasher):
        self.storage = storage
        self.hasher = hasher
        # Verified against when the email is unknown so both paths cost the same
        self._dummy_hash = hasher.hash("not-a-real-password")

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get(self, user_id: str) -> User | None:
        data = await self.storage.metadata.get(Collections.USERS, user_id)
        return User.from_record(data) if data else None

    async def get_by_email(self, email: str) -> User | None:
        data = await self.storage.metadata.find_one(
            Collections.USERS,
            {"email": normalize_email(email)},
        )
        return User.from_record(data) if data else None

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(
        self,
        email: str,
        password: str,
        name: str | None = None,
    ) -> User:
        """
        Register a password account.

        Raises:
            AppError(WEAK_PASSWORD): password policy violated
            AppError(DUPLICATE_EMAIL): email already registered
        """
        email = normalize_email(email)
        validate_password(password, email)

        user = User(
            email=email,
            password_hash=await self.hasher.hash_async(password),
            name=clean_optional_text(name, 100),
        )
        await self.insert(user)
        logger.info(f"Registered user {user.id}")
        return user

    async def insert(self, user: User) -> None:
        try:
            await self.storage.metadata.insert(Collections.USERS, user.id, user.to_record())
        except DuplicateKeyError:
            raise AppError(ErrorKind.DUPLICATE_EMAIL)

    async def update(self, user_id: str, **fields: Any) -> bool:
        fields["updated_at"] = utc_now()
        return await self.storage.metadata.update(Collections.USERS, user_id, fields)

    async def mark_email_verified(self, user_id: str) -> bool:
        """Set email_verified_at once; later calls keep the first timestamp."""
        now = utc_now()
        return await self.storage.metadata.update(
            Collections.USERS,
            user_id,
            {"email_verified_at": now, "updated_at": now},
            where={"email_verified_at__is_null": True},
        )

    async def set_password(self, user_id: str, password: str) -> None:
        await self.update(user_id, password_hash=await self.hasher.hash_async(password))

    async def deactivate(self, user_id: str) -> bool:
        return await self.update(user_id, is_active=False)

    async def set_admin(self, user_id: str, is_admin: bool = True) -> bool:
        return await self.update(user_id, is_admin=is_admin)

    # =========================================================================
    # Authentication
    # =========================================================================

    async def authenticate(self, email: str, password: str) -> User:
        """
        Check an email/password pair.

        Unknown email and wrong password are indistinguishable to the caller.
        A correct password on a deactivated account raises ACCOUNT_DEACTIVATED.
        """
        user = await self.get_by_email(email)

        if user is None:
            await self.hasher.verify_async(password, self._dummy_hash)
            logger.warning("Login failed: unknown email")
            raise AppError(ErrorKind.INVALID_CREDENTIALS)

        if not await self.hasher.verify_async(password, user.password_hash):
            logger.warning(f"Login failed: wrong password for user {user.id}")
            raise AppError(ErrorKind.INVALID_CREDENTIALS)

        if not user.is_active:
            logger.warning(f"Login refused: user {user.id} is deactivated")
            raise AppError(ErrorKind.ACCOUNT_DEACTIVATED)

        return user
