"""
Tests for the session ledger: issue, rotation, reuse detection, revocation.
"""

import asyncio
from datetime import timedelta

import pytest

from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.core.utils import utc_now
from career_tracker.storage import Collections

from conftest import make_user


async def _session_row(services, session_id):
    return await services.storage.metadata.get(Collections.AUTH_SESSIONS, session_id)


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_only_hashes_are_stored(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)

        row = await _session_row(services, issued.session.id)
        assert row["refresh_token_hash"] == services.codec.hash_token(issued.refresh_token)
        assert row["csrf_token_hash"] == services.codec.hash_token(issued.csrf_token)
        assert issued.refresh_token not in row.values()
        assert issued.csrf_token not in row.values()

    @pytest.mark.asyncio
    async def test_expires_in_seven_days(self, services):
        user = await make_user(services)
        before = utc_now()
        issued = await services.sessions.create_session(user.id)

        expected = before + timedelta(days=7)
        assert abs((issued.session.expires_at - expected).total_seconds()) < 5

    @pytest.mark.asyncio
    async def test_each_login_starts_a_chain(self, services):
        user = await make_user(services)
        first = await services.sessions.create_session(user.id)
        second = await services.sessions.create_session(user.id)
        assert first.session.chain_id != second.session.chain_id


class TestRotate:
    @pytest.mark.asyncio
    async def test_rotation_returns_new_pair(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)

        rotated = await services.sessions.rotate(issued.refresh_token)

        assert rotated.refresh_token != issued.refresh_token
        assert rotated.session.chain_id == issued.session.chain_id
        assert services.codec.verify(rotated.access_token).sub == user.id

        old = await _session_row(services, issued.session.id)
        assert old["revoked_at"] is not None
        assert old["replaced_by"] == rotated.session.id

    @pytest.mark.asyncio
    async def test_successor_can_rotate(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)

        second = await services.sessions.rotate(issued.refresh_token)
        third = await services.sessions.rotate(second.refresh_token)
        assert third.session.chain_id == issued.session.chain_id

    @pytest.mark.asyncio
    async def test_replay_revokes_chain_only(self, services):
        user = await make_user(services)
        stolen = await services.sessions.create_session(user.id)
        other_device = await services.sessions.create_session(user.id)

        rotated = await services.sessions.rotate(stolen.refresh_token)

        with pytest.raises(AppError) as exc:
            await services.sessions.rotate(stolen.refresh_token)
        assert exc.value.kind == ErrorKind.SESSION_REUSE_DETECTED

        # The legitimate successor is dead too
        assert await services.sessions.get_active(rotated.refresh_token) is None
        with pytest.raises(AppError):
            await services.sessions.rotate(rotated.refresh_token)

        # Another login of the same user is untouched
        assert await services.sessions.get_active(other_device.refresh_token) is not None
        active = await services.sessions.list_active(user.id)
        assert [s.id for s in active] == [other_device.session.id]

    @pytest.mark.asyncio
    async def test_concurrent_rotation_yields_one_pair(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)

        results = await asyncio.gather(
            *[services.sessions.rotate(issued.refresh_token) for _ in range(5)],
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, AppError)]
        assert len(successes) == 1
        assert len(failures) == 4
        assert all(f.kind == ErrorKind.SESSION_REUSE_DETECTED for f in failures)

        # Reuse detection revoked the winner's successor as well
        assert await services.sessions.get_active(successes[0].refresh_token) is None

    @pytest.mark.asyncio
    async def test_unknown_token(self, services):
        with pytest.raises(AppError) as exc:
            await services.sessions.rotate("not-a-real-token")
        assert exc.value.kind == ErrorKind.SESSION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_logged_out_token(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)
        await services.sessions.revoke(issued.refresh_token)

        with pytest.raises(AppError) as exc:
            await services.sessions.rotate(issued.refresh_token)
        assert exc.value.kind == ErrorKind.SESSION_REVOKED

    @pytest.mark.asyncio
    async def test_expired_token(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)
        await services.storage.metadata.update(
            Collections.AUTH_SESSIONS,
            issued.session.id,
            {"expires_at": utc_now() - timedelta(seconds=1)},
        )

        with pytest.raises(AppError) as exc:
            await services.sessions.rotate(issued.refresh_token)
        assert exc.value.kind == ErrorKind.SESSION_EXPIRED

    @pytest.mark.asyncio
    async def test_deactivated_owner(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)
        await services.users.deactivate(user.id)

        with pytest.raises(AppError) as exc:
            await services.sessions.rotate(issued.refresh_token)
        assert exc.value.kind == ErrorKind.ACCOUNT_DEACTIVATED
        assert await services.sessions.list_active(user.id) == []


class TestRevoke:
    @pytest.mark.asyncio
    async def test_revoke_is_idempotent(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)

        assert await services.sessions.revoke(issued.refresh_token)
        assert not await services.sessions.revoke(issued.refresh_token)
        assert not await services.sessions.revoke("unknown")

    @pytest.mark.asyncio
    async def test_revoke_all(self, services):
        user = await make_user(services)
        other = await make_user(services, email="sam@jobs.io")
        for _ in range(3):
            await services.sessions.create_session(user.id)
        kept = await services.sessions.create_session(other.id)

        assert await services.sessions.revoke_all(user.id) == 3
        assert await services.sessions.revoke_all(user.id) == 0
        assert await services.sessions.list_active(user.id) == []
        assert await services.sessions.get_active(kept.refresh_token) is not None


class TestCsrf:
    @pytest.mark.asyncio
    async def test_verify_csrf(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)

        services.sessions.verify_csrf(issued.session, issued.csrf_token)

        for bad in [None, "", "wrong-token-value"]:
            with pytest.raises(AppError) as exc:
                services.sessions.verify_csrf(issued.session, bad)
            assert exc.value.kind == ErrorKind.CSRF_FAILED

    @pytest.mark.asyncio
    async def test_reissue_replaces_token(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)

        fresh = await services.sessions.reissue_csrf(issued.refresh_token)
        session = await services.sessions.get_active(issued.refresh_token)

        services.sessions.verify_csrf(session, fresh)
        with pytest.raises(AppError):
            services.sessions.verify_csrf(session, issued.csrf_token)

    @pytest.mark.asyncio
    async def test_reissue_for_dead_session(self, services):
        user = await make_user(services)
        issued = await services.sessions.create_session(user.id)
        await services.sessions.revoke(issued.refresh_token)

        assert await services.sessions.reissue_csrf(issued.refresh_token) is None
