"""
Google OAuth flow controller.

start():    new state + PKCE verifier, returned to the HTTP layer to be kept in
            short-lived cookies, and the Google authorization URL.
callback(): checks the echoed state against the cookie, exchanges the code
            with the verifier, then resolves the Google identity to a local
            user and issues a session in a single transaction.

Identity resolution:
    1. (GOOGLE, sub) already linked   -> that user (email verified if needed)
    2. a user with the same email     -> link it (email verified if needed)
    3. otherwise                      -> new user with an unusable password + link
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from career_tracker.auth.models import OAuthAccount, OAuthProvider, User
from career_tracker.auth.passwords import PasswordHasher
from career_tracker.auth.service import AuthResult, AuthService
from career_tracker.auth.tokens import constant_time_equals, generate_token, pkce_challenge
from career_tracker.auth.users import CredentialStore
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.core.utils import normalize_email, utc_now
from career_tracker.integrations.oauth import GoogleOAuthClient, GoogleProfile, OAuthError
from career_tracker.storage import Collections, DuplicateKeyError, StorageProvider

logger = logging.getLogger(__name__)

STATE_BYTES = 24
VERIFIER_BYTES = 48


@dataclass
class OAuthStart:
    url: str
    state: str
    code_verifier: str


@dataclass
class OAuthCookies:
    """The two values the browser carried from start() to the callback."""

    state: str
    code_verifier: str


class GoogleOAuthFlow:
    def __init__(
        self,
        storage: StorageProvider,
        client: GoogleOAuthClient,
        users: CredentialStore,
        auth: AuthService,
        hasher: PasswordHasher,
    ):
        self.storage = storage
        self.client = client
        self.users = users
        self.auth = auth
        self.hasher = hasher

    # =========================================================================
    # Start
    # =========================================================================

    def start(self) -> OAuthStart:
        if not self.client.is_configured:
            raise AppError(ErrorKind.OAUTH_NOT_CONFIGURED, "Google OAuth is not configured")

        state = generate_token(STATE_BYTES)
        code_verifier = generate_token(VERIFIER_BYTES)
        url = self.client.build_authorize_url(state, pkce_challenge(code_verifier))
        return OAuthStart(url=url, state=state, code_verifier=code_verifier)

    # =========================================================================
    # Callback
    # =========================================================================

    async def callback(
        self,
        code: str | None,
        state: str | None,
        cookies: OAuthCookies | None,
        error: str | None = None,
    ) -> AuthResult:
        """
        Complete the flow.

        Every check that can fail runs before any write, so a rejected
        callback leaves no user, link or session behind.
        """
        if error:
            logger.info(f"Google OAuth cancelled by provider: {error}")
            raise AppError(ErrorKind.OAUTH_CANCELLED)

        if not code:
            raise AppError(ErrorKind.OAUTH_MISSING_CODE)

        if cookies is None or not constant_time_equals(state, cookies.state):
            logger.warning("Google OAuth state mismatch")
            raise AppError(ErrorKind.OAUTH_STATE_MISMATCH)

        if not self.client.is_configured:
            raise AppError(ErrorKind.OAUTH_NOT_CONFIGURED, "Google OAuth is not configured")

        try:
            provider_token = await self.client.exchange_code(code, cookies.code_verifier)
            profile = await self.client.fetch_profile(provider_token)
        except OAuthError as e:
            logger.warning(f"Google OAuth provider error: {e}")
            raise AppError(ErrorKind.OAUTH_PROVIDER_ERROR, "Google sign-in failed")

        if not profile.email:
            raise AppError(ErrorKind.OAUTH_EMAIL_UNVERIFIED, "Google account did not return an email")
        if not profile.email_verified:
            raise AppError(ErrorKind.OAUTH_EMAIL_UNVERIFIED, "Google email is not verified")

        return await self.sign_in(profile)

    async def sign_in(self, profile: GoogleProfile) -> AuthResult:
        """Resolve the identity and issue a session, atomically."""
        # Only used if the profile creates a new user
        password_hash = await self.hasher.hash_async(generate_token(32))

        try:
            return await self._sign_in_once(profile, password_hash)
        except DuplicateKeyError as e:
            # A concurrent callback created the same user or link first
            logger.info(f"Retrying Google identity resolution after {e}")

        try:
            return await self._sign_in_once(profile, password_hash)
        except DuplicateKeyError as e:
            logger.error(f"Google identity resolution failed twice: {e}")
            raise AppError(ErrorKind.OAUTH_PROVIDER_ERROR, "Google sign-in failed")

    async def _sign_in_once(self, profile: GoogleProfile, password_hash: str) -> AuthResult:
        async with self.storage.metadata.transaction():
            user = await self._resolve_user(profile, password_hash)
            return await self.auth.issue_for_user(user)

    async def _resolve_user(self, profile: GoogleProfile, password_hash: str) -> User:
        metadata = self.storage.metadata
        email = normalize_email(profile.email)

        link = await metadata.find_one(
            Collections.OAUTH_ACCOUNTS,
            {"provider": OAuthProvider.GOOGLE, "provider_account_id": profile.sub},
        )

        if link is not None:
            user = await self.users.get(link["user_id"])
            if user is None:
                raise AppError(ErrorKind.UNAUTHORIZED)
            if not user.email_verified:
                await self.users.mark_email_verified(user.id)
        else:
            user = await self.users.get_by_email(email)
            if user is None:
                now = utc_now()
                user = User(
                    email=email,
                    password_hash=password_hash,
                    name=profile.name or email.split("@")[0],
                    email_verified_at=now,
                    created_at=now,
                    updated_at=now,
                )
                await metadata.insert(Collections.USERS, user.id, user.to_record())
                logger.info(f"Created user {user.id} from Google sign-in")
            elif not user.email_verified:
                await self.users.mark_email_verified(user.id)

            account = OAuthAccount(
                provider=OAuthProvider.GOOGLE,
                provider_account_id=profile.sub,
                user_id=user.id,
            )
            await metadata.insert(Collections.OAUTH_ACCOUNTS, account.id, account.to_record())
            logger.info(f"Linked Google account to user {user.id}")

        if not user.is_active:
            raise AppError(ErrorKind.ACCOUNT_DEACTIVATED)

        return await self.users.get(user.id)
