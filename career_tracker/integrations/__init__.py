"""Third-party integrations: email delivery, Google OAuth, Sentry."""
