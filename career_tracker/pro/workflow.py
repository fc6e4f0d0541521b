"""
Pro request workflow.

    NONE -> PENDING -> APPROVED | DENIED | CREDITS_GRANTED
    PENDING (older than the pending window) -> EXPIRED when the user asks again
    DENIED -> a new PENDING once `cooldown_until` has passed

A user has at most one PENDING request. Decisions act on that request and, for
approval, flip `ai_pro_enabled` in the same transaction.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from career_tracker.ai.quota import QuotaLedger
from career_tracker.auth.users import CredentialStore
from career_tracker.core.errors import AppError, ErrorKind
from career_tracker.core.utils import clean_optional_text, utc_now
from career_tracker.integrations.email import EmailService
from career_tracker.pro.models import ProRequest, ProRequestResult, ProRequestStatus
from career_tracker.storage import Collections, StorageProvider

logger = logging.getLogger(__name__)

NOTE_MAX_LENGTH = 500


class ProRequestWorkflow:
    def __init__(
        self,
        storage: StorageProvider,
        users: CredentialStore,
        quota: QuotaLedger,
        email: EmailService,
        pending_window: timedelta = timedelta(days=7),
        default_cooldown_days: int = 14,
    ):
        self.storage = storage
        self.users = users
        self.quota = quota
        self.email = email
        self.pending_window = pending_window
        self.default_cooldown_days = default_cooldown_days

    # =========================================================================
    # Reads
    # =========================================================================

    async def latest(self, user_id: str) -> ProRequest | None:
        data = await self.storage.metadata.find_one(
            Collections.PRO_REQUESTS,
            {"user_id": user_id},
            order_by="requested_at",
            descending=True,
        )
        return ProRequest.from_record(data) if data else None

    async def _pending(self, user_id: str) -> ProRequest | None:
        data = await self.storage.metadata.find_one(
            Collections.PRO_REQUESTS,
            {"user_id": user_id, "status": ProRequestStatus.PENDING},
        )
        return ProRequest.from_record(data) if data else None

    async def list_requests(
        self,
        status: ProRequestStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ProRequest]:
        filters = {"status": status} if status else None
        rows = await self.storage.metadata.query(
            Collections.PRO_REQUESTS,
            filters,
            limit=limit,
            offset=offset,
            order_by="requested_at",
            descending=True,
        )
        return [ProRequest.from_record(r) for r in rows]

    # =========================================================================
    # User action
    # =========================================================================

    async def request(self, user_id: str, note: str | None = None) -> ProRequestResult:
        """
        Ask for Pro access.

        Raises:
            AppError(PRO_REQUEST_ALREADY_PENDING): a recent request is still open
            AppError(PRO_REQUEST_COOLDOWN): denied and the cooldown has not passed
        """
        metadata = self.storage.metadata

        async with metadata.transaction():
            user = await self.users.get(user_id)
            if user is None:
                raise AppError(ErrorKind.UNAUTHORIZED)
            if user.ai_pro_enabled:
                return ProRequestResult(already_pro=True)

            now = utc_now()
            latest = await self.latest(user_id)

            pending = await self._pending(user_id)
            if pending is not None:
                if pending.requested_at + self.pending_window > now:
                    raise AppError(
                        ErrorKind.PRO_REQUEST_ALREADY_PENDING,
                        "A Pro request is already pending",
                        detail={"request_id": pending.id},
                    )
                await metadata.update(
                    Collections.PRO_REQUESTS,
                    pending.id,
                    {
                        "status": ProRequestStatus.EXPIRED,
                        "decided_at": now,
                        "decision_note": "Auto-expired (no response). User re-requested.",
                    },
                    where={"status": ProRequestStatus.PENDING},
                )
            elif (
                latest is not None
                and latest.status == ProRequestStatus.DENIED
                and latest.cooldown_until is not None
                and latest.cooldown_until > now
            ):
                raise AppError(
                    ErrorKind.PRO_REQUEST_COOLDOWN,
                    "You can request Pro access again later",
                    detail={"cooldown_until": latest.cooldown_until.isoformat()},
                )

            created = ProRequest(
                user_id=user_id,
                note=clean_optional_text(note, NOTE_MAX_LENGTH),
                requested_at=now,
            )
            await metadata.insert(Collections.PRO_REQUESTS, created.id, created.to_record())

        logger.info(f"User {user_id} requested Pro access ({created.id})")
        await self.email.send_pro_request_to_owner(user_id, user.email, created.note)
        return ProRequestResult(request=created)

    # =========================================================================
    # Operator decisions
    # =========================================================================

    async def _decide(self, user_id: str, updates: dict) -> ProRequest:
        """Close the user's PENDING request. Must run inside a transaction."""
        pending = await self._pending(user_id)
        if pending is None:
            raise AppError(ErrorKind.PRO_REQUEST_NOT_FOUND, "No pending Pro request for this user")

        decided = await self.storage.metadata.update(
            Collections.PRO_REQUESTS,
            pending.id,
            updates,
            where={"status": ProRequestStatus.PENDING},
        )
        if not decided:
            raise AppError(ErrorKind.PRO_REQUEST_NOT_FOUND, "No pending Pro request for this user")
        return pending.model_copy(update=updates)

    async def approve(self, user_id: str, decision_note: str | None = None) -> ProRequest:
        async with self.storage.metadata.transaction():
            decided = await self._decide(
                user_id,
                {
                    "status": ProRequestStatus.APPROVED,
                    "decided_at": utc_now(),
                    "decision_note": clean_optional_text(decision_note, NOTE_MAX_LENGTH),
                },
            )
            await self.users.update(user_id, ai_pro_enabled=True)
            user = await self.users.get(user_id)

        logger.info(f"Pro access approved for user {user_id}")
        if user is not None:
            await self.email.send_pro_approved(user.email)
        return decided

    async def deny(
        self,
        user_id: str,
        cooldown_days: int | None = None,
        decision_note: str | None = None,
    ) -> ProRequest:
        days = self.default_cooldown_days if cooldown_days is None else cooldown_days
        now = utc_now()
        cooldown_until = now + timedelta(days=days) if days > 0 else None

        async with self.storage.metadata.transaction():
            decided = await self._decide(
                user_id,
                {
                    "status": ProRequestStatus.DENIED,
                    "decided_at": now,
                    "decision_note": clean_optional_text(decision_note, NOTE_MAX_LENGTH),
                    "cooldown_until": cooldown_until,
                },
            )
            user = await self.users.get(user_id)

        logger.info(f"Pro access denied for user {user_id} (cooldown {days} days)")
        if user is not None:
            until = cooldown_until.date().isoformat() if cooldown_until else "now"
            await self.email.send_pro_denied(user.email, until)
        return decided

    async def grant_credits(self, user_id: str, decision_note: str | None = None) -> ProRequest | None:
        """
        Reset the user's free AI runs. A pending request, if any, is closed as
        CREDITS_GRANTED.
        """
        async with self.storage.metadata.transaction():
            user = await self.users.get(user_id)
            if user is None:
                raise AppError(ErrorKind.NOT_FOUND, "User not found")

            await self.quota.reset(user_id)

            decided = None
            if await self._pending(user_id) is not None:
                decided = await self._decide(
                    user_id,
                    {
                        "status": ProRequestStatus.CREDITS_GRANTED,
                        "decided_at": utc_now(),
                        "decision_note": clean_optional_text(decision_note, NOTE_MAX_LENGTH),
                    },
                )

        logger.info(f"Granted fresh AI credits to user {user_id}")
        return decided
