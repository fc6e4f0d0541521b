"""
Tests for password hashing and the password policy.
"""

import pytest

from career_tracker.auth.passwords import PasswordHasher, password_problems, validate_password
from career_tracker.core.errors import AppError, ErrorKind


@pytest.fixture
def hasher():
    return PasswordHasher(iterations=1000)


# =============================================================================
# Hashing
# =============================================================================


class TestPasswordHasher:
    def test_verify_roundtrip(self, hasher):
        stored = hasher.hash("Abcd1234!")
        assert hasher.verify("Abcd1234!", stored)

    def test_single_character_mutations_fail(self, hasher):
        plaintext = "Abcd1234!"
        stored = hasher.hash(plaintext)

        for i in range(len(plaintext)):
            mutated = plaintext[:i] + chr(ord(plaintext[i]) + 1) + plaintext[i + 1:]
            assert not hasher.verify(mutated, stored), mutated

        assert not hasher.verify(plaintext + "x", stored)
        assert not hasher.verify(plaintext[:-1], stored)

    def test_hashes_are_salted(self, hasher):
        assert hasher.hash("Abcd1234!") != hasher.hash("Abcd1234!")

    def test_format_carries_iterations(self, hasher):
        algorithm, iterations, salt, digest = hasher.hash("Abcd1234!").split("$")
        assert algorithm == "pbkdf2_sha256"
        assert iterations == "1000"
        assert salt and digest

    def test_hash_from_other_cost_still_verifies(self, hasher):
        stored = PasswordHasher(iterations=2000).hash("Abcd1234!")
        assert hasher.verify("Abcd1234!", stored)

    @pytest.mark.parametrize(
        "stored",
        ["", "garbage", "bcrypt$10$salt$abc", "pbkdf2_sha256$notanumber$salt$abc", "pbkdf2_sha256$0$salt$abc"],
    )
    def test_malformed_hash_verifies_false(self, hasher, stored):
        assert hasher.verify("Abcd1234!", stored) is False

    @pytest.mark.asyncio
    async def test_async_wrappers(self, hasher):
        stored = await hasher.hash_async("Abcd1234!")
        assert await hasher.verify_async("Abcd1234!", stored)
        assert not await hasher.verify_async("Abcd1234?", stored)


# =============================================================================
# Policy
# =============================================================================


class TestPasswordPolicy:
    def test_strong_password_passes(self):
        assert password_problems("Abcd1234!", "jane@jobs.io") == []

    def test_each_rule_reported(self):
        problems = password_problems("abc")
        assert any("at least 8" in p for p in problems)
        assert any("uppercase" in p for p in problems)
        assert any("number" in p for p in problems)
        assert any("symbol" in p for p in problems)

    def test_too_long(self):
        assert any("at most 72" in p for p in password_problems("Aa1!" * 20))

    def test_must_not_contain_email(self):
        problems = password_problems("Xjanedoe1!", "janedoe@jobs.io")
        assert "Password must not contain your email" in problems

    def test_short_local_part_is_ignored(self):
        assert password_problems("Abcd1234!", "a@x.com") == []

    def test_validate_raises_weak_password(self):
        with pytest.raises(AppError) as exc:
            validate_password("password")

        assert exc.value.kind == ErrorKind.WEAK_PASSWORD
        assert exc.value.status_code == 400
        assert len(exc.value.detail["reasons"]) >= 2
