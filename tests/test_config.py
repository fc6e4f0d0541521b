"""
Tests for settings validation and the rate limiter.
"""

import pytest

from career_tracker.auth.rate_limit import RateLimiter
from career_tracker.config import DEV_JWT_SECRET, ConfigurationError
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.storage.local import InMemoryCacheStorage

from conftest import make_settings


class TestSettings:
    def test_development_accepts_defaults(self):
        make_settings(jwt_secret_key=DEV_JWT_SECRET, admin_api_key="").validate_required()

    def test_empty_secret_rejected(self):
        with pytest.raises(ConfigurationError):
            make_settings(jwt_secret_key="").validate_required()

    def test_production_requires_everything(self):
        settings = make_settings(
            environment="production",
            jwt_secret_key=DEV_JWT_SECRET,
            admin_api_key="",
            google_oauth_client_id="",
        )
        with pytest.raises(ConfigurationError) as exc:
            settings.validate_required()

        message = str(exc.value)
        assert "JWT_SECRET_KEY" in message
        assert "ADMIN_API_KEY" in message
        assert "GOOGLE_OAUTH_CLIENT_ID" in message

    def test_production_complete(self):
        make_settings(environment="production").validate_required()

    def test_derived_values(self):
        settings = make_settings(cors_origins="http://a.io, http://b.io", frontend_url="http://a.io/")
        assert settings.cors_origins_list == ["http://a.io", "http://b.io"]
        assert settings.frontend_base_url == "http://a.io"
        assert settings.oauth_callback_path == "/auth/oauth/callback/google"


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_limit_per_key(self):
        limiter = RateLimiter(InMemoryCacheStorage())

        for _ in range(3):
            await limiter.hit("login:1.2.3.4", limit=3, window_seconds=60)

        with pytest.raises(AppError) as exc:
            await limiter.hit("login:1.2.3.4", limit=3, window_seconds=60)
        assert exc.value.kind == ErrorKind.RATE_LIMITED
        assert exc.value.status_code == 429

        await limiter.hit("login:5.6.7.8", limit=3, window_seconds=60)

    @pytest.mark.asyncio
    async def test_zero_disables(self):
        limiter = RateLimiter(InMemoryCacheStorage())
        for _ in range(10):
            await limiter.hit("k", limit=0, window_seconds=60)
