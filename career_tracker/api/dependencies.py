"""
Service container.

Everything a request handler needs is built once per app by build_services()
and stored on `app.state.services`. Nothing here is a module global, so every
test can build an isolated app around its own storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from career_tracker.ai.extractor import ApplicationExtractor, OpenAIApplicationExtractor
from career_tracker.ai.quota import QuotaLedger
from career_tracker.auth.oauth import GoogleOAuthFlow
from career_tracker.auth.password_reset import PasswordResetLedger
from career_tracker.auth.passwords import PasswordHasher
from career_tracker.auth.rate_limit import RateLimiter
from career_tracker.auth.service import AuthService
from career_tracker.auth.sessions import SessionLedger
from career_tracker.auth.tokens import TokenCodec
from career_tracker.auth.users import CredentialStore
from career_tracker.auth.verification import EmailVerificationLedger
from career_tracker.config import Settings
from career_tracker.integrations.email import EmailSender, EmailService, create_email_sender
from career_tracker.integrations.oauth import GoogleOAuthClient, HttpGoogleOAuthClient
from career_tracker.pro.workflow import ProRequestWorkflow
from career_tracker.storage import StorageProvider


@dataclass
class Services:
    settings: Settings
    storage: StorageProvider
    hasher: PasswordHasher
    codec: TokenCodec
    users: CredentialStore
    sessions: SessionLedger
    verification: EmailVerificationLedger
    password_reset: PasswordResetLedger
    auth: AuthService
    oauth: GoogleOAuthFlow
    quota: QuotaLedger
    pro: ProRequestWorkflow
    email: EmailService
    extractor: ApplicationExtractor
    rate_limiter: RateLimiter


def build_services(
    settings: Settings,
    storage: StorageProvider,
    *,
    oauth_client: GoogleOAuthClient | None = None,
    email_sender: EmailSender | None = None,
    extractor: ApplicationExtractor | None = None,
) -> Services:
    """Wire every component around one storage handle."""
    hasher = PasswordHasher(iterations=settings.password_hash_iterations)
    codec = TokenCodec(
        secret=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
        refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
    )
    email = EmailService(email_sender or create_email_sender(settings), settings)

    users = CredentialStore(storage, hasher)
    sessions = SessionLedger(
        storage,
        codec,
        users,
        refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
    )
    verification = EmailVerificationLedger(
        storage,
        codec,
        users,
        email,
        ttl=timedelta(hours=settings.email_verification_expire_hours),
    )
    password_reset = PasswordResetLedger(
        storage,
        codec,
        users,
        sessions,
        email,
        ttl=timedelta(minutes=settings.password_reset_expire_minutes),
    )
    auth = AuthService(users, sessions, verification, codec)
    oauth = GoogleOAuthFlow(
        storage,
        oauth_client or HttpGoogleOAuthClient(settings),
        users,
        auth,
        hasher,
    )
    quota = QuotaLedger(storage, cap=settings.ai_free_quota)
    pro = ProRequestWorkflow(
        storage,
        users,
        quota,
        email,
        pending_window=timedelta(days=settings.pro_pending_expire_days),
        default_cooldown_days=settings.pro_default_cooldown_days,
    )

    return Services(
        settings=settings,
        storage=storage,
        hasher=hasher,
        codec=codec,
        users=users,
        sessions=sessions,
        verification=verification,
        password_reset=password_reset,
        auth=auth,
        oauth=oauth,
        quota=quota,
        pro=pro,
        email=email,
        extractor=extractor or OpenAIApplicationExtractor(settings.openai_api_key, settings.openai_model),
        rate_limiter=RateLimiter(storage.cache),
    )
