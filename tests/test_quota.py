"""
Tests for the AI quota ledger.
"""

import asyncio

import pytest

from career_tracker.ai.quota import AiTier
from career_tracker.core.errors import AppError, ErrorKind

from conftest import make_user


class TestTier:
    @pytest.mark.asyncio
    async def test_tiers(self, services):
        regular = await make_user(services, email="reg@jobs.io")
        pro = await make_user(services, email="pro@jobs.io", ai_pro_enabled=True)
        admin = await make_user(services, email="boss@jobs.io", is_admin=True, ai_pro_enabled=True)

        assert await services.quota.resolve_tier(regular.id) == AiTier.REGULAR
        assert await services.quota.resolve_tier(pro.id) == AiTier.PRO
        assert await services.quota.resolve_tier(admin.id) == AiTier.ADMIN

    @pytest.mark.asyncio
    async def test_status(self, services):
        user = await make_user(services, ai_free_uses_used=2)
        status = await services.quota.status(user.id)

        assert status.tier == AiTier.REGULAR
        assert not status.unlimited
        assert (status.used, status.cap, status.remaining) == (2, 5, 3)

    @pytest.mark.asyncio
    async def test_status_unlimited(self, services):
        user = await make_user(services, ai_pro_enabled=True)
        status = await services.quota.status(user.id)
        assert status.unlimited
        assert status.remaining is None


class TestAssertAccess:
    @pytest.mark.asyncio
    async def test_regular_under_cap(self, services):
        user = await make_user(services, ai_free_uses_used=4)
        assert await services.quota.assert_access(user.id) == AiTier.REGULAR

    @pytest.mark.asyncio
    async def test_regular_at_cap(self, services):
        user = await make_user(services, ai_free_uses_used=5)
        with pytest.raises(AppError) as exc:
            await services.quota.assert_access(user.id)

        assert exc.value.kind == ErrorKind.AI_QUOTA_EXCEEDED
        assert exc.value.status_code == 403

    @pytest.mark.asyncio
    async def test_pro_and_admin_always_pass(self, services):
        pro = await make_user(services, email="pro@jobs.io", ai_pro_enabled=True, ai_free_uses_used=5)
        admin = await make_user(services, email="boss@jobs.io", is_admin=True, ai_free_uses_used=5)

        assert await services.quota.assert_access(pro.id) == AiTier.PRO
        assert await services.quota.assert_access(admin.id) == AiTier.ADMIN


class TestConsumeOnSuccess:
    @pytest.mark.asyncio
    async def test_increments_counter(self, services):
        user = await make_user(services)
        await services.quota.consume_on_success(user.id)
        assert (await services.users.get(user.id)).ai_free_uses_used == 1

    @pytest.mark.asyncio
    async def test_concurrent_consumption_at_cap_minus_one(self, services):
        user = await make_user(services, ai_free_uses_used=4)

        results = await asyncio.gather(
            *[services.quota.consume_on_success(user.id) for _ in range(10)],
            return_exceptions=True,
        )

        successes = [r for r in results if r is None]
        failures = [r for r in results if isinstance(r, AppError)]
        assert len(successes) == 1
        assert len(failures) == 9
        assert all(f.kind == ErrorKind.AI_QUOTA_EXCEEDED for f in failures)
        assert (await services.users.get(user.id)).ai_free_uses_used == 5

    @pytest.mark.asyncio
    async def test_pro_is_never_charged(self, services):
        user = await make_user(services, ai_pro_enabled=True, ai_free_uses_used=5)
        await services.quota.consume_on_success(user.id)
        assert (await services.users.get(user.id)).ai_free_uses_used == 5

    @pytest.mark.asyncio
    async def test_admin_is_never_charged(self, services):
        user = await make_user(services, is_admin=True)
        await services.quota.consume_on_success(user.id)
        assert (await services.users.get(user.id)).ai_free_uses_used == 0

    @pytest.mark.asyncio
    async def test_reset(self, services):
        user = await make_user(services, ai_free_uses_used=5)
        assert await services.quota.reset(user.id)
        assert await services.quota.assert_access(user.id) == AiTier.REGULAR
