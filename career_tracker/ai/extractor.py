"""
Job-description extraction.

Turns a pasted job description into a draft application. The quota ledger
decides whether a user may run it; this module only does the extraction.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError

from career_tracker.core.utils import clean_optional_text

logger = logging.getLogger(__name__)

JD_EXTRACT_MAX_OUTPUT_TOKENS = 900


class ExtractionError(RuntimeError):
    """The model call failed or returned unusable output."""


# =============================================================================
# Models
# =============================================================================


class WorkMode(str, Enum):
    REMOTE = "REMOTE"
    HYBRID = "HYBRID"
    ONSITE = "ONSITE"


class JobType(str, Enum):
    FULL_TIME = "FULL_TIME"
    PART_TIME = "PART_TIME"
    CONTRACT = "CONTRACT"
    INTERNSHIP = "INTERNSHIP"


class ExtractedFields(BaseModel):
    company: str | None = Field(default=None, max_length=200)
    position: str | None = Field(default=None, max_length=200)
    location: str | None = Field(default=None, max_length=200)
    location_details: str | None = Field(default=None, max_length=500)
    work_mode: WorkMode | None = None
    work_mode_details: str | None = Field(default=None, max_length=200)
    job_type: JobType | None = None
    job_type_details: str | None = Field(default=None, max_length=200)
    salary_text: str | None = Field(default=None, max_length=200)
    job_link: str | None = Field(default=None, max_length=2048)
    tags_text: str | None = Field(default=None, max_length=500)


class AiSummary(BaseModel):
    jd_summary: str
    notes: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ApplicationDraft(BaseModel):
    extracted: ExtractedFields
    ai: AiSummary


# =============================================================================
# Extractor interface
# =============================================================================


class ApplicationExtractor(ABC):
    @abstractmethod
    async def extract(self, jd_text: str) -> ApplicationDraft:
        """Raises ExtractionError on failure."""
        pass


SYSTEM_PROMPT = "\n".join([
    "You extract structured fields from a pasted job description.",
    "Return ONLY a JSON object with keys 'extracted' and 'ai'.",
    "",
    "extracted: company, position, location, location_details, work_mode,",
    "work_mode_details, job_type, job_type_details, salary_text, job_link, tags_text.",
    "ai: jd_summary (2-4 sentences), notes (5-10 short bullets), warnings (list).",
    "",
    "Rules:",
    "- If a field is not clearly present, omit it (do NOT guess).",
    "- work_mode must be exactly REMOTE, HYBRID or ONSITE, or omitted.",
    "- job_type must be exactly FULL_TIME, PART_TIME, CONTRACT or INTERNSHIP, or omitted.",
    "- location is a geographic place only. Never put Remote/Hybrid/Onsite there.",
    "- salary_text is only the base pay amount or range with currency.",
    "- warnings: [] unless critical info is missing or the JD states an explicit",
    "  constraint (no visa sponsorship, clearance required, location eligibility).",
])


def normalize_draft(raw: dict) -> ApplicationDraft:
    """Trim strings, drop empties and cap list sizes before validation."""
    extracted = raw.get("extracted") or {}
    ai = raw.get("ai") or {}

    cleaned = {}
    for key, value in extracted.items():
        if key not in ExtractedFields.model_fields:
            continue
        if isinstance(value, str):
            value = clean_optional_text(value, 2048)
        if value in (None, "UNKNOWN"):
            continue
        cleaned[key] = value

    def _strings(items, limit: int) -> list[str]:
        if not isinstance(items, list):
            return []
        out = [clean_optional_text(i, 300) for i in items if isinstance(i, str)]
        return [i for i in out if i][:limit]

    return ApplicationDraft(
        extracted=ExtractedFields.model_validate(cleaned),
        ai=AiSummary(
            jd_summary=clean_optional_text(ai.get("jd_summary"), 2000) or "(No summary provided)",
            notes=_strings(ai.get("notes"), 20),
            warnings=_strings(ai.get("warnings"), 10),
        ),
    )


class OpenAIApplicationExtractor(ApplicationExtractor):
    """Extraction with an OpenAI chat model in JSON mode."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        self.model = model
        self._api_key = api_key
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-load OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise ExtractionError("OPENAI_API_KEY not set")
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def extract(self, jd_text: str) -> ApplicationDraft:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": jd_text},
                ],
                response_format={"type": "json_object"},
                max_tokens=JD_EXTRACT_MAX_OUTPUT_TOKENS,
            )
        except OpenAIError as e:
            logger.error(f"JD extraction request failed: {e}")
            raise ExtractionError("AI request failed") from e

        content = response.choices[0].message.content or ""
        try:
            return normalize_draft(json.loads(content))
        except (json.JSONDecodeError, ValidationError, AttributeError) as e:
            logger.error(f"JD extraction returned unusable output ({len(content)} chars): {e}")
            raise ExtractionError("AI returned an invalid response") from e
