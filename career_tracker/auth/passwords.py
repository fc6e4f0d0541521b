# =============================================================================
# Password Hashing & Policy
# =============================================================================
#
# PBKDF2-SHA256 with a per-password random salt. Stored format:
#
#   pbkdf2_sha256$<iterations>$<salt>$<hash-hex>
#
# The iteration count travels with the hash so it can be raised later without
# invalidating existing accounts.
#
# =============================================================================

from __future__ import annotations

import asyncio
import hashlib
import logging
import secrets

from career_tracker.core.errors import AppError, ErrorKind

logger = logging.getLogger(__name__)

ALGORITHM = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 600_000

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 72


class HashingError(RuntimeError):
    """The underlying key-derivation call failed."""


class PasswordHasher:
    """Salted, slow password hashing with constant-time verification."""

    def __init__(self, iterations: int = DEFAULT_ITERATIONS):
        self.iterations = iterations

    def _derive(self, plaintext: str, salt: str, iterations: int) -> str:
        try:
            return hashlib.pbkdf2_hmac(
                "sha256",
                plaintext.encode("utf-8"),
                salt.encode("utf-8"),
                iterations=iterations,
            ).hex()
        except (ValueError, OverflowError) as e:
            raise HashingError(f"Key derivation failed: {e}") from e

    def hash(self, plaintext: str) -> str:
        salt = secrets.token_hex(16)
        digest = self._derive(plaintext, salt, self.iterations)
        return f"{ALGORITHM}${self.iterations}${salt}${digest}"

    def verify(self, plaintext: str, password_hash: str) -> bool:
        """Malformed or foreign hashes simply fail verification."""
        try:
            algorithm, iterations, salt, stored = password_hash.split("$")
            if algorithm != ALGORITHM:
                return False
            rounds = int(iterations)
            if rounds <= 0:
                return False
            digest = self._derive(plaintext, salt, rounds)
        except (ValueError, AttributeError, HashingError):
            return False
        return secrets.compare_digest(digest, stored)

    # Async wrappers keep the event loop responsive while hashing

    async def hash_async(self, plaintext: str) -> str:
        return await asyncio.to_thread(self.hash, plaintext)

    async def verify_async(self, plaintext: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self.verify, plaintext, password_hash)


# =============================================================================
# Password Policy
# =============================================================================


def password_problems(password: str, email: str | None = None) -> list[str]:
    """Return the user-facing reasons a password is rejected (empty if acceptable)."""
    problems: list[str] = []

    if not password.strip():
        return ["Password must not be empty"]

    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password) > MAX_PASSWORD_LENGTH:
        problems.append(f"Password must be at most {MAX_PASSWORD_LENGTH} characters")

    if not any(c.islower() for c in password):
        problems.append("Password must contain a lowercase letter")
    if not any(c.isupper() for c in password):
        problems.append("Password must contain an uppercase letter")
    if not any(c.isdigit() for c in password):
        problems.append("Password must contain a number")
    if not any(not c.isalnum() and not c.isspace() for c in password):
        problems.append("Password must contain a symbol")

    if email:
        lowered = password.lower()
        address = email.strip().lower()
        local = address.split("@", 1)[0]
        if address in lowered or (len(local) >= 3 and local in lowered):
            problems.append("Password must not contain your email")

    if len(set(password)) <= 2:
        problems.append("Password is too repetitive")

    return problems


def validate_password(password: str, email: str | None = None) -> None:
    """Raise WEAK_PASSWORD listing every violated rule."""
    problems = password_problems(password, email)
    if problems:
        raise AppError(
            ErrorKind.WEAK_PASSWORD,
            problems[0],
            detail={"reasons": problems},
        )
