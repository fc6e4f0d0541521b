"""
Auth context - who is making the request.

This is the only state a gate attaches to a request. Route handlers receive
it from `Depends(require(...))`.
"""

from __future__ import annotations

from dataclasses import dataclass

from career_tracker.auth.models import User


@dataclass
class AuthContext:
    """
    Usage in routes:
        async def my_route(ctx: AuthContext = Depends(require(require_verified_email))):
            print(f"User {ctx.user_id} is verified")
    """

    user_id: str
    email: str
    user: User

    @property
    def is_admin(self) -> bool:
        return self.user.is_admin

    @property
    def email_verified(self) -> bool:
        return self.user.email_verified
