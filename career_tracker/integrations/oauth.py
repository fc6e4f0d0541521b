# =============================================================================
# OAuth Integration (Google, authorization code + PKCE)
# =============================================================================
#
# Setup (Google):
#   1. Go to https://console.cloud.google.com/apis/credentials
#   2. Create OAuth 2.0 Client ID (Web application)
#   3. Add authorized redirect URI: https://api.yourdomain.com/auth/oauth/callback/google
#   4. Set env vars:
#      - GOOGLE_OAUTH_CLIENT_ID=...
#      - GOOGLE_OAUTH_CLIENT_SECRET=...
#      - GOOGLE_OAUTH_REDIRECT_URI=...
#
# This module only talks to Google. State/verifier bookkeeping and account
# linking live in career_tracker.auth.oauth.
#
# =============================================================================

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from career_tracker.config import Settings

logger = logging.getLogger(__name__)


# =============================================================================
# Models
# =============================================================================


class GoogleProfile(BaseModel):
    """OpenID Connect userinfo returned by Google."""

    sub: str  # stable Google account id
    email: str | None = None
    email_verified: bool = False
    name: str | None = None
    picture: str | None = None


class OAuthError(Exception):
    """The provider rejected a request or returned something unusable."""
    pass


# =============================================================================
# Provider interface
# =============================================================================


class GoogleOAuthClient(ABC):
    """What the flow controller needs from Google."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        pass

    @abstractmethod
    def build_authorize_url(self, state: str, code_challenge: str) -> str:
        pass

    @abstractmethod
    async def exchange_code(self, code: str, code_verifier: str) -> str:
        """Trade an authorization code for a provider access token."""
        pass

    @abstractmethod
    async def fetch_profile(self, access_token: str) -> GoogleProfile:
        pass


# =============================================================================
# Google OAuth (httpx)
# =============================================================================


class HttpGoogleOAuthClient(GoogleOAuthClient):
    """Google OAuth 2.0 implementation."""

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self.settings = settings
        self.transport = transport
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return self.settings.google_oauth_configured

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=self.timeout)

    def build_authorize_url(self, state: str, code_challenge: str) -> str:
        """
        Get URL to redirect user to for Google sign-in.

        Args:
            state: CSRF state, echoed back on the callback
            code_challenge: S256 PKCE challenge of the verifier kept in a cookie
        """
        if not self.is_configured:
            raise OAuthError("Google OAuth not configured")

        params = {
            "client_id": self.settings.google_oauth_client_id,
            "redirect_uri": self.settings.google_oauth_redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, code_verifier: str) -> str:
        """
        Exchange authorization code for tokens.

        Never retried: an authorization code is single-use.
        """
        if not self.is_configured:
            raise OAuthError("Google OAuth not configured")

        async with self._client() as client:
            try:
                response = await client.post(
                    self.TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self.settings.google_oauth_client_id,
                        "client_secret": self.settings.google_oauth_client_secret,
                        "redirect_uri": self.settings.google_oauth_redirect_uri,
                        "grant_type": "authorization_code",
                        "code_verifier": code_verifier,
                    },
                )
            except httpx.HTTPError as e:
                raise OAuthError(f"Token exchange failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Google token exchange failed: {response.status_code}")
            raise OAuthError(f"Token exchange failed: {response.status_code}")

        try:
            access_token = response.json().get("access_token")
        except ValueError as e:
            raise OAuthError(f"Token exchange returned invalid JSON: {e}") from e
        if not access_token:
            raise OAuthError("Token exchange returned no access_token")
        return access_token

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _get_userinfo(self, access_token: str) -> httpx.Response:
        async with self._client() as client:
            return await client.get(
                self.USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )

    async def fetch_profile(self, access_token: str) -> GoogleProfile:
        try:
            response = await self._get_userinfo(access_token)
        except httpx.HTTPError as e:
            raise OAuthError(f"Failed to get user info: {e}") from e

        if response.status_code != 200:
            logger.error(f"Google userinfo failed: {response.status_code}")
            raise OAuthError(f"Failed to get user info: {response.status_code}")

        try:
            return GoogleProfile.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise OAuthError(f"Unexpected userinfo payload: {e}") from e
