"""
Pro access routes.

User:
    POST /pro/request                  auth + verified email, 3/day per user
    GET  /pro/request                  auth; latest request

Operator (X-Admin-Api-Key, no user session):
    POST /pro/admin/approve
    POST /pro/admin/deny

Admin users (session + verified email + is_admin):
    GET  /admin/pro-requests
    POST /admin/pro-requests/{user_id}/grant-credits
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from career_tracker.auth.context import AuthContext
from career_tracker.auth.policies import (
    get_services,
    require,
    require_admin,
    require_admin_api_key,
    require_verified_email,
)
from career_tracker.auth.rate_limit import rate_limit_per_user
from career_tracker.pro.models import ProRequest, ProRequestResult, ProRequestStatus

router = APIRouter(prefix="/pro", tags=["pro"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Request/Response Models
# =============================================================================


class ProRequestBody(BaseModel):
    note: str | None = Field(default=None, max_length=2000)


class ApproveBody(BaseModel):
    user_id: str = Field(min_length=1, max_length=100)
    decision_note: str | None = Field(default=None, max_length=2000)


class DenyBody(BaseModel):
    user_id: str = Field(min_length=1, max_length=100)
    cooldown_days: int | None = Field(default=None, ge=0, le=365)
    decision_note: str | None = Field(default=None, max_length=2000)


class GrantCreditsBody(BaseModel):
    decision_note: str | None = Field(default=None, max_length=2000)


class ProRequestResponse(ProRequestResult):
    ok: bool = True


class DecisionResponse(BaseModel):
    ok: bool = True
    request: ProRequest | None = None


class ProRequestList(BaseModel):
    requests: list[ProRequest]


# =============================================================================
# User Endpoints
# =============================================================================


@router.post("/request", response_model=ProRequestResponse)
async def request_pro(
    data: ProRequestBody,
    request: Request,
    ctx: AuthContext = Depends(require(require_verified_email)),
    _limit: None = Depends(rate_limit_per_user("pro_request", "rate_limit_pro_requests_per_day")),
):
    result = await get_services(request).pro.request(ctx.user_id, data.note)
    return ProRequestResponse(already_pro=result.already_pro, request=result.request)


@router.get("/request", response_model=DecisionResponse)
async def latest_pro_request(request: Request, ctx: AuthContext = Depends(require())):
    return DecisionResponse(request=await get_services(request).pro.latest(ctx.user_id))


# =============================================================================
# Operator Endpoints
# =============================================================================


@router.post(
    "/admin/approve",
    response_model=DecisionResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def approve_pro(data: ApproveBody, request: Request):
    decided = await get_services(request).pro.approve(data.user_id, data.decision_note)
    return DecisionResponse(request=decided)


@router.post(
    "/admin/deny",
    response_model=DecisionResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def deny_pro(data: DenyBody, request: Request):
    decided = await get_services(request).pro.deny(data.user_id, data.cooldown_days, data.decision_note)
    return DecisionResponse(request=decided)


# =============================================================================
# Admin Endpoints
# =============================================================================


@admin_router.get("/pro-requests", response_model=ProRequestList)
async def list_pro_requests(
    request: Request,
    status: ProRequestStatus | None = None,
    limit: int = 50,
    offset: int = 0,
    ctx: AuthContext = Depends(require(require_verified_email, require_admin)),
):
    limit = max(1, min(limit, 200))
    requests = await get_services(request).pro.list_requests(status, limit=limit, offset=max(offset, 0))
    return ProRequestList(requests=requests)


@admin_router.post("/pro-requests/{user_id}/grant-credits", response_model=DecisionResponse)
async def grant_credits(
    user_id: str,
    request: Request,
    data: GrantCreditsBody | None = None,
    ctx: AuthContext = Depends(require(require_verified_email, require_admin)),
):
    decided = await get_services(request).pro.grant_credits(user_id, data.decision_note if data else None)
    return DecisionResponse(request=decided)
