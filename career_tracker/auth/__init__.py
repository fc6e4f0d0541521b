"""
Authentication and authorization.

Routes declare what they need with one dependency:

    ctx: AuthContext = Depends(require(require_verified_email, require_ai_access))
"""

from career_tracker.auth.context import AuthContext
from career_tracker.auth.models import User, UserResponse
from career_tracker.auth.passwords import PasswordHasher, validate_password
from career_tracker.auth.policies import (
    require,
    require_auth,
    require_verified_email,
    require_admin,
    require_ai_access,
    require_admin_api_key,
)
from career_tracker.auth.tokens import TokenCodec, TokenKind

__all__ = [
    # Main interface
    "require",
    "require_auth",
    "require_verified_email",
    "require_admin",
    "require_ai_access",
    "require_admin_api_key",
    "AuthContext",
    # Credentials
    "PasswordHasher",
    "validate_password",
    "TokenCodec",
    "TokenKind",
    # Models
    "User",
    "UserResponse",
]
