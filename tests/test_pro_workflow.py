"""
Tests for the Pro request workflow.
"""

from datetime import timedelta

import pytest

from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.core.utils import utc_now
from career_tracker.pro.models import ProRequestStatus
from career_tracker.storage import Collections

from conftest import make_user


async def _age_request(services, request_id, days):
    await services.storage.metadata.update(
        Collections.PRO_REQUESTS,
        request_id,
        {"requested_at": utc_now() - timedelta(days=days)},
    )


class TestRequest:
    @pytest.mark.asyncio
    async def test_creates_pending_and_notifies_owner(self, services, mailer):
        user = await make_user(services)
        result = await services.pro.request(user.id, "  I apply to a lot of jobs  ")

        assert not result.already_pro
        assert result.request.status == ProRequestStatus.PENDING
        assert result.request.note == "I apply to a lot of jobs"

        [notification] = mailer.sent("pro_request_owner")
        assert notification.to == "owner@jobs.io"
        assert user.email in notification.text

    @pytest.mark.asyncio
    async def test_already_pro(self, services):
        user = await make_user(services, ai_pro_enabled=True)
        result = await services.pro.request(user.id)

        assert result.already_pro
        assert result.request is None
        assert await services.pro.latest(user.id) is None

    @pytest.mark.asyncio
    async def test_second_request_while_pending(self, services):
        user = await make_user(services)
        await services.pro.request(user.id)

        with pytest.raises(AppError) as exc:
            await services.pro.request(user.id)

        assert exc.value.kind == ErrorKind.PRO_REQUEST_ALREADY_PENDING
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_stale_pending_expires_on_new_request(self, services):
        user = await make_user(services)
        old = (await services.pro.request(user.id)).request
        await _age_request(services, old.id, days=8)

        new = (await services.pro.request(user.id)).request

        expired = await services.storage.metadata.get(Collections.PRO_REQUESTS, old.id)
        assert expired["status"] == ProRequestStatus.EXPIRED
        assert new.status == ProRequestStatus.PENDING
        assert (await services.pro.latest(user.id)).id == new.id


class TestDecisions:
    @pytest.mark.asyncio
    async def test_approve_enables_pro(self, services, mailer):
        user = await make_user(services)
        await services.pro.request(user.id)

        decided = await services.pro.approve(user.id, "welcome")

        assert decided.status == ProRequestStatus.APPROVED
        assert decided.decided_at is not None
        assert (await services.users.get(user.id)).ai_pro_enabled
        assert [m.to for m in mailer.sent("pro_approved")] == [user.email]

    @pytest.mark.asyncio
    async def test_approve_without_pending(self, services):
        user = await make_user(services)
        with pytest.raises(AppError) as exc:
            await services.pro.approve(user.id)

        assert exc.value.kind == ErrorKind.PRO_REQUEST_NOT_FOUND
        assert not (await services.users.get(user.id)).ai_pro_enabled

    @pytest.mark.asyncio
    async def test_deny_sets_cooldown(self, services, mailer):
        user = await make_user(services)
        await services.pro.request(user.id)

        decided = await services.pro.deny(user.id, cooldown_days=7)

        assert decided.status == ProRequestStatus.DENIED
        assert abs((decided.cooldown_until - (utc_now() + timedelta(days=7))).total_seconds()) < 5
        assert not (await services.users.get(user.id)).ai_pro_enabled
        assert len(mailer.sent("pro_denied")) == 1

        with pytest.raises(AppError) as exc:
            await services.pro.request(user.id)
        assert exc.value.kind == ErrorKind.PRO_REQUEST_COOLDOWN

    @pytest.mark.asyncio
    async def test_request_allowed_after_cooldown(self, services):
        user = await make_user(services)
        await services.pro.request(user.id)
        denied = await services.pro.deny(user.id, cooldown_days=7)
        await services.storage.metadata.update(
            Collections.PRO_REQUESTS,
            denied.id,
            {"cooldown_until": utc_now() - timedelta(seconds=1)},
        )

        result = await services.pro.request(user.id)
        assert result.request.status == ProRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_deny_without_cooldown(self, services):
        user = await make_user(services)
        await services.pro.request(user.id)

        decided = await services.pro.deny(user.id, cooldown_days=0)

        assert decided.cooldown_until is None
        assert (await services.pro.request(user.id)).request.status == ProRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_default_cooldown(self, services):
        user = await make_user(services)
        await services.pro.request(user.id)

        decided = await services.pro.deny(user.id)
        assert decided.cooldown_until > utc_now() + timedelta(days=13)

    @pytest.mark.asyncio
    async def test_grant_credits_closes_pending(self, services):
        user = await make_user(services, ai_free_uses_used=5)
        await services.pro.request(user.id)

        decided = await services.pro.grant_credits(user.id, "have five more")

        assert decided.status == ProRequestStatus.CREDITS_GRANTED
        refreshed = await services.users.get(user.id)
        assert refreshed.ai_free_uses_used == 0
        assert not refreshed.ai_pro_enabled

    @pytest.mark.asyncio
    async def test_grant_credits_without_request(self, services):
        user = await make_user(services, ai_free_uses_used=5)
        assert await services.pro.grant_credits(user.id) is None
        assert (await services.users.get(user.id)).ai_free_uses_used == 0

    @pytest.mark.asyncio
    async def test_grant_credits_unknown_user(self, services):
        with pytest.raises(AppError) as exc:
            await services.pro.grant_credits("user_missing")
        assert exc.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_list_requests_by_status(self, services):
        first = await make_user(services, email="one@jobs.io")
        second = await make_user(services, email="two@jobs.io")
        await services.pro.request(first.id)
        await services.pro.request(second.id)
        await services.pro.approve(first.id)

        pending = await services.pro.list_requests(ProRequestStatus.PENDING)
        everything = await services.pro.list_requests()

        assert [r.user_id for r in pending] == [second.id]
        assert len(everything) == 2
