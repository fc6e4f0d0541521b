"""
Pro access request records.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from career_tracker.auth.models import Record
from career_tracker.core.utils import generate_id, utc_now


class ProRequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    EXPIRED = "EXPIRED"  # pending for too long, superseded by a new request
    CREDITS_GRANTED = "CREDITS_GRANTED"  # operator reset free runs instead of granting Pro


class ProRequest(Record):
    id: str = Field(default_factory=lambda: generate_id("prq"))
    user_id: str
    status: ProRequestStatus = ProRequestStatus.PENDING
    note: str | None = None
    decision_note: str | None = None
    requested_at: datetime = Field(default_factory=utc_now)
    decided_at: datetime | None = None
    cooldown_until: datetime | None = None


class ProRequestResult(BaseModel):
    already_pro: bool = False
    request: ProRequest | None = None
