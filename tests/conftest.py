"""
Shared fixtures: isolated storage, fake integrations and a test app.

Every test builds its own storage and services, so nothing leaks between
tests. Password hashing runs with a low iteration count.
"""

from __future__ import annotations

import re
from urllib.parse import urlencode

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from career_tracker.ai.extractor import (
    AiSummary,
    ApplicationDraft,
    ApplicationExtractor,
    ExtractedFields,
    ExtractionError,
    WorkMode,
)
from career_tracker.api.app import create_app
from career_tracker.api.dependencies import build_services
from career_tracker.auth.models import User
from career_tracker.config import Settings
from career_tracker.integrations.email import EmailMessage, EmailSender
from career_tracker.integrations.oauth import GoogleOAuthClient, GoogleProfile, OAuthError
from career_tracker.storage import create_local_storage, init_storage

TEST_SECRET = "test-jwt-secret-0123456789abcdef0123456789"
ADMIN_KEY = "operator-key-0123456789"
PASSWORD = "Abcd1234!"
FRONTEND = "http://localhost:3000"


def make_settings(**overrides) -> Settings:
    values = {
        "_env_file": None,
        "environment": "test",
        "jwt_secret_key": TEST_SECRET,
        "password_hash_iterations": 1000,
        "admin_api_key": ADMIN_KEY,
        "frontend_url": FRONTEND,
        "cors_origins": FRONTEND,
        "google_oauth_client_id": "client-id",
        "google_oauth_client_secret": "client-secret",
        "google_oauth_redirect_uri": "http://testserver/auth/oauth/callback/google",
        "owner_email": "owner@jobs.io",
        "rate_limit_register": 100,
        "rate_limit_login": 100,
        "rate_limit_email_requests": 100,
    }
    values.update(overrides)
    return Settings(**values)


# =============================================================================
# Fakes
# =============================================================================


class FakeGoogleClient(GoogleOAuthClient):
    """Stands in for Google: returns `profile` for any code."""

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"

    def __init__(self, profile: GoogleProfile | None = None, configured: bool = True):
        self.profile = profile or GoogleProfile(
            sub="google-sub-1",
            email="jane@jobs.io",
            email_verified=True,
            name="Jane Doe",
        )
        self.configured = configured
        self.fail_exchange = False
        self.exchanges: list[tuple[str, str]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def build_authorize_url(self, state: str, code_challenge: str) -> str:
        params = {
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, code_verifier: str) -> str:
        self.exchanges.append((code, code_verifier))
        if self.fail_exchange:
            raise OAuthError("invalid_grant")
        return f"google-access-{code}"

    async def fetch_profile(self, access_token: str) -> GoogleProfile:
        return self.profile


class RecordingEmailSender(EmailSender):
    def __init__(self):
        self.messages: list[EmailMessage] = []

    async def deliver(self, message: EmailMessage) -> None:
        self.messages.append(message)

    def sent(self, template: str, to: str | None = None) -> list[EmailMessage]:
        return [
            m for m in self.messages
            if m.template == template and (to is None or m.to == to)
        ]

    def last_token(self, template: str, to: str | None = None) -> str:
        """The raw token from the newest link sent with `template`."""
        message = self.sent(template, to)[-1]
        return re.search(r"token=([A-Za-z0-9_\-]+)", message.text).group(1)


class FakeExtractor(ApplicationExtractor):
    def __init__(self):
        self.calls = 0
        self.fail = False

    async def extract(self, jd_text: str) -> ApplicationDraft:
        self.calls += 1
        if self.fail:
            raise ExtractionError("model unavailable")
        return ApplicationDraft(
            extracted=ExtractedFields(company="Acme", position="Backend Engineer", work_mode=WorkMode.REMOTE),
            ai=AiSummary(jd_summary="Backend role at Acme.", notes=["Python", "FastAPI"]),
        )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def google():
    return FakeGoogleClient()


@pytest.fixture
def mailer():
    return RecordingEmailSender()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest_asyncio.fixture
async def storage():
    provider = create_local_storage()
    await init_storage(provider)
    return provider


@pytest.fixture
def services(settings, storage, google, mailer, extractor):
    return build_services(
        settings,
        storage,
        oauth_client=google,
        email_sender=mailer,
        extractor=extractor,
    )


@pytest.fixture
def app(settings, google, mailer, extractor):
    return create_app(
        settings,
        oauth_client=google,
        email_sender=mailer,
        extractor=extractor,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


# =============================================================================
# Helpers
# =============================================================================


async def make_user(
    services,
    email: str = "jane@jobs.io",
    password: str = PASSWORD,
    verified: bool = True,
    **fields,
) -> User:
    """Create a user directly through the credential store."""
    user = await services.users.create(email, password, name="Jane")
    if verified:
        await services.users.mark_email_verified(user.id)
    if fields:
        await services.users.update(user.id, **fields)
    return await services.users.get(user.id)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register(client: TestClient, email: str = "jane@jobs.io", password: str = PASSWORD) -> dict:
    response = client.post("/auth/register", json={"email": email, "password": password, "name": "Jane"})
    assert response.status_code == 201, response.text
    return response.json()


def register_verified(client: TestClient, mailer: RecordingEmailSender, email: str = "jane@jobs.io") -> dict:
    body = register(client, email)
    token = mailer.last_token("verify_email", email)
    assert client.post("/auth/verify-email", json={"token": token}).status_code == 200
    return body
