"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEV_JWT_SECRET = "dev-jwt-secret-change-in-production"


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are missing."""


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000"
    auth_prefix: str = "/auth"
    frontend_url: str = "http://localhost:3000"

    # ==========================================================================
    # Authentication
    # ==========================================================================

    jwt_secret_key: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    email_verification_expire_hours: int = 24
    password_reset_expire_minutes: int = 60
    password_hash_iterations: int = 600_000

    # Operator credential for Pro decisions (X-Admin-Api-Key header)
    admin_api_key: str = ""

    # Google OAuth
    google_oauth_client_id: str = ""
    google_oauth_client_secret: str = ""
    google_oauth_redirect_uri: str = ""
    oauth_state_max_age_seconds: int = 600

    # ==========================================================================
    # AI access / Pro workflow
    # ==========================================================================

    ai_free_quota: int = 5
    pro_pending_expire_days: int = 7
    pro_default_cooldown_days: int = 14
    owner_email: str = ""

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # ==========================================================================
    # Rate limits (requests per window)
    # ==========================================================================

    rate_limit_register: int = 10
    rate_limit_login: int = 10
    rate_limit_window_seconds: int = 60
    rate_limit_email_requests: int = 5
    rate_limit_pro_requests_per_day: int = 3

    # ==========================================================================
    # AWS (email delivery)
    # ==========================================================================

    aws_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_ses_from_email: str = ""

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def use_aws(self) -> bool:
        """Whether AWS services should be used."""
        return bool(self.aws_access_key_id and self.aws_secret_access_key)

    @property
    def google_oauth_configured(self) -> bool:
        return bool(
            self.google_oauth_client_id
            and self.google_oauth_client_secret
            and self.google_oauth_redirect_uri
        )

    @property
    def frontend_base_url(self) -> str:
        return self.frontend_url.rstrip("/")

    @property
    def oauth_callback_path(self) -> str:
        return f"{self.auth_prefix}/oauth/callback/google"

    def validate_required(self) -> None:
        """
        Fail fast on missing configuration.

        In development only the signing secret is required (a default is
        provided); production refuses to start with dev defaults.
        """
        missing: list[str] = []

        if not self.jwt_secret_key:
            missing.append("JWT_SECRET_KEY")

        if self.is_production:
            if self.jwt_secret_key == DEV_JWT_SECRET:
                missing.append("JWT_SECRET_KEY")
            if not self.google_oauth_configured:
                missing.append("GOOGLE_OAUTH_CLIENT_ID/GOOGLE_OAUTH_CLIENT_SECRET/GOOGLE_OAUTH_REDIRECT_URI")
            if not self.admin_api_key:
                missing.append("ADMIN_API_KEY")
            if not self.frontend_url:
                missing.append("FRONTEND_URL")

        if missing:
            message = f"Missing required environment variable(s): {', '.join(missing)}"
            logger.error(f"[startup] {message}")
            raise ConfigurationError(message)

        if self.is_production and not self.use_aws:
            logger.warning("[startup] AWS SES not configured. Email flows will only be logged.")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
