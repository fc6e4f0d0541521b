# =============================================================================
# Email Delivery Integration (AWS SES)
# =============================================================================
#
# Setup:
#   1. Verify your sending email in AWS SES console
#   2. Set env vars:
#      - AWS_SES_FROM_EMAIL=noreply@yourdomain.com
#      - AWS_ACCESS_KEY_ID=...
#      - AWS_SECRET_ACCESS_KEY=...
#      - AWS_REGION=us-east-1
#
# Without AWS credentials, emails are written to the log instead (development).
#
# Delivery is best-effort everywhere it is used: EmailService.send() never
# raises, it logs and returns False.
#
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from html import escape
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from career_tracker.config import Settings
from career_tracker.core.utils import redact_email

logger = logging.getLogger(__name__)


class EmailMessage(BaseModel):
    to: str
    subject: str
    html: str
    text: str
    template: str


# =============================================================================
# Email Templates
# =============================================================================

_BUTTON = (
    'style="background: #2F6FEB; color: white; padding: 12px 30px; '
    'text-decoration: none; border-radius: 6px; display: inline-block;"'
)

TEMPLATES = {
    "verify_email": {
        "subject": "Verify your email for Career Tracker",
        "html": """
        <html>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #333;">Welcome, {name}!</h1>
            <p>Please confirm your email address to unlock AI features and Pro access requests.</p>
            <p style="text-align: center; margin: 30px 0;">
                <a href="{verify_url}" """ + _BUTTON + """>Verify Email</a>
            </p>
            <p style="color: #666; font-size: 14px;">Or copy this link: {verify_url}</p>
            <p style="color: #666; font-size: 14px;">This link expires in {expires_hours} hours.</p>
        </body>
        </html>
        """,
        "text": """
Welcome, {name}!

Please confirm your email address by visiting:
{verify_url}

This link expires in {expires_hours} hours.
        """,
    },

    "password_reset": {
        "subject": "Reset your Career Tracker password",
        "html": """
        <html>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #333;">Reset Your Password</h1>
            <p>We received a request to reset your password. Click the button below to choose a new one:</p>
            <p style="text-align: center; margin: 30px 0;">
                <a href="{reset_url}" """ + _BUTTON + """>Reset Password</a>
            </p>
            <p style="color: #666; font-size: 14px;">Or copy this link: {reset_url}</p>
            <p style="color: #666; font-size: 14px;">This link expires in {expires_minutes} minutes.</p>
            <p style="color: #666; font-size: 14px;">If you didn't request this, you can safely ignore this email.</p>
        </body>
        </html>
        """,
        "text": """
Reset Your Password

We received a request to reset your password. Visit this link to choose a new one:
{reset_url}

This link expires in {expires_minutes} minutes.

If you didn't request this, you can safely ignore this email.
        """,
    },

    "pro_request_owner": {
        "subject": "New Pro access request",
        "html": """
        <html>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #333;">Pro access requested</h1>
            <p><strong>{user_email}</strong> (user {user_id}) asked for Pro access.</p>
            <p>Note: {note}</p>
        </body>
        </html>
        """,
        "text": """
Pro access requested

{user_email} (user {user_id}) asked for Pro access.
Note: {note}
        """,
    },

    "pro_approved": {
        "subject": "Your Pro access was approved",
        "html": """
        <html>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #333;">You're Pro!</h1>
            <p>Your request was approved. AI features are now unlimited on your account.</p>
            <p style="text-align: center; margin: 30px 0;">
                <a href="{app_url}" """ + _BUTTON + """>Open Career Tracker</a>
            </p>
        </body>
        </html>
        """,
        "text": """
You're Pro!

Your request was approved. AI features are now unlimited on your account.
Open Career Tracker: {app_url}
        """,
    },

    "pro_denied": {
        "subject": "Update on your Pro access request",
        "html": """
        <html>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #333;">Pro access request</h1>
            <p>Your request was not approved this time.</p>
            <p>You can ask again after {cooldown_until}.</p>
        </body>
        </html>
        """,
        "text": """
Pro access request

Your request was not approved this time.
You can ask again after {cooldown_until}.
        """,
    },
}


# =============================================================================
# Senders
# =============================================================================


class EmailSender(ABC):
    """Transport for rendered messages."""

    @abstractmethod
    async def deliver(self, message: EmailMessage) -> None:
        """Deliver or raise."""
        pass


class LoggingEmailSender(EmailSender):
    """Development transport: writes the text body to the log."""

    async def deliver(self, message: EmailMessage) -> None:
        logger.warning(f"Email not configured - would send '{message.template}' to {redact_email(message.to)}")
        logger.info(f"Email content: {message.text.strip()}")


class SESEmailSender(EmailSender):
    """Send emails via AWS SES."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._client = None

    @property
    def client(self):
        """Lazy-load SES client."""
        if self._client is None:
            self._client = boto3.client(
                "ses",
                region_name=self.settings.aws_region,
                aws_access_key_id=self.settings.aws_access_key_id,
                aws_secret_access_key=self.settings.aws_secret_access_key,
            )
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((ClientError, BotoCoreError)),
        reraise=True,
    )
    async def deliver(self, message: EmailMessage) -> None:
        response = await asyncio.to_thread(
            self.client.send_email,
            Source=self.settings.aws_ses_from_email,
            Destination={"ToAddresses": [message.to]},
            Message={
                "Subject": {"Data": message.subject, "Charset": "UTF-8"},
                "Body": {
                    "Html": {"Data": message.html, "Charset": "UTF-8"},
                    "Text": {"Data": message.text, "Charset": "UTF-8"},
                },
            },
        )
        logger.info(
            f"Email sent to {redact_email(message.to)}: {message.template} "
            f"(MessageId: {response['MessageId']})"
        )


def create_email_sender(settings: Settings) -> EmailSender:
    if settings.use_aws and settings.aws_ses_from_email:
        return SESEmailSender(settings)
    return LoggingEmailSender()


# =============================================================================
# Email Service
# =============================================================================


class EmailService:
    """Renders templates and hands them to a sender."""

    def __init__(self, sender: EmailSender, settings: Settings):
        self.sender = sender
        self.settings = settings

    def render(self, to: str, template: str, data: dict[str, Any]) -> EmailMessage:
        tpl = TEMPLATES[template]
        # Values may be user-supplied; only the HTML body needs escaping
        escaped = {key: escape(str(value)) for key, value in data.items()}
        return EmailMessage(
            to=to,
            subject=tpl["subject"],
            html=tpl["html"].format(**escaped),
            text=tpl["text"].format(**data),
            template=template,
        )

    async def send(self, to: str, template: str, data: dict[str, Any] | None = None) -> bool:
        """
        Send an email using a template.

        Returns:
            True if delivered, False otherwise (failures are logged, never raised)
        """
        if template not in TEMPLATES:
            logger.error(f"Unknown email template: {template}")
            return False

        try:
            message = self.render(to, template, data or {})
        except KeyError as e:
            logger.error(f"Missing template variable for '{template}': {e}")
            return False

        try:
            await self.sender.deliver(message)
        except (ClientError, BotoCoreError, OSError) as e:
            logger.error(f"Failed to send '{template}' to {redact_email(to)}: {e}")
            return False
        return True

    async def send_verification(self, email: str, name: str | None, token: str) -> bool:
        verify_url = f"{self.settings.frontend_base_url}/verify-email?token={token}"
        return await self.send(
            to=email,
            template="verify_email",
            data={
                "name": name or "there",
                "verify_url": verify_url,
                "expires_hours": self.settings.email_verification_expire_hours,
            },
        )

    async def send_password_reset(self, email: str, token: str) -> bool:
        reset_url = f"{self.settings.frontend_base_url}/reset-password?token={token}"
        return await self.send(
            to=email,
            template="password_reset",
            data={
                "reset_url": reset_url,
                "expires_minutes": self.settings.password_reset_expire_minutes,
            },
        )

    async def send_pro_request_to_owner(self, user_id: str, user_email: str, note: str | None) -> bool:
        if not self.settings.owner_email:
            logger.info("OWNER_EMAIL not set - skipping Pro request notification")
            return False
        return await self.send(
            to=self.settings.owner_email,
            template="pro_request_owner",
            data={"user_id": user_id, "user_email": user_email, "note": note or "(none)"},
        )

    async def send_pro_approved(self, email: str) -> bool:
        return await self.send(
            to=email,
            template="pro_approved",
            data={"app_url": self.settings.frontend_base_url},
        )

    async def send_pro_denied(self, email: str, cooldown_until: str) -> bool:
        return await self.send(
            to=email,
            template="pro_denied",
            data={"cooldown_until": cooldown_until},
        )
