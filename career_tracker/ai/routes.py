"""
AI routes.

POST /ai/application-from-jd   auth + verified email + AI quota
GET  /ai/access                auth; quota status for the UI
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from career_tracker.ai.extractor import ApplicationDraft, ExtractionError
from career_tracker.ai.quota import AiAccessStatus
from career_tracker.auth.context import AuthContext
from career_tracker.auth.policies import get_services, require, require_ai_access, require_verified_email
from career_tracker.core.errors import AppError, ErrorKind

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


class JobDescriptionRequest(BaseModel):
    text: str = Field(min_length=1, max_length=100_000)


class ApplicationDraftResponse(BaseModel):
    application_draft: ApplicationDraft


@router.post("/application-from-jd", response_model=ApplicationDraftResponse)
async def application_from_jd(
    data: JobDescriptionRequest,
    request: Request,
    ctx: AuthContext = Depends(require(require_verified_email, require_ai_access)),
):
    """
    Draft an application from a pasted job description.

    A free run is only charged once the extraction has succeeded.
    """
    services = get_services(request)

    try:
        draft = await services.extractor.extract(data.text)
    except ExtractionError as e:
        logger.warning(f"JD extraction failed for user {ctx.user_id}: {e}")
        raise AppError(ErrorKind.AI_EXTRACTION_FAILED)

    await services.quota.consume_on_success(ctx.user_id)
    return ApplicationDraftResponse(application_draft=draft)


@router.get("/access", response_model=AiAccessStatus)
async def ai_access(request: Request, ctx: AuthContext = Depends(require())):
    return await get_services(request).quota.status(ctx.user_id)
