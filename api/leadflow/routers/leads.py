import logging
import uuid
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.config import settings
from leadflow.core.database import get_db
from leadflow.core.dependencies import get_lead_or_404
from leadflow.core.errors import ValidationError
from leadflow.models.lead import FormSubmission, Lead, LeadActivity

logger = logging.getLogger(__name__)

router = APIRouter(tags=["leads"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class LeadCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    job_title: str | None = None
    industry: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    website: str | None = None
    source: str = "manual"
    enriched_data: dict[str, Any] | None = None


class FormSubmissionIn(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    job_title: str | None = None
    industry: str | None = None
    phone: str | None = None
    website: str | None = None
    form_name: str | None = None
    fields: dict[str, Any] = Field(default_factory=dict)
    page_views: int = Field(default=0, ge=0)


class LeadOut(BaseModel):
    id: UUID
    email: str
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    job_title: str | None = None
    industry: str | None = None
    source: str
    status: str
    score: float | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/leads", response_model=LeadOut, status_code=status.HTTP_201_CREATED)
async def create_lead(
    body: LeadCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> LeadOut:
    """Create a lead and queue it for scoring with the default algorithm, if one is configured."""
    existing = await db.execute(select(Lead.id).where(Lead.email == body.email))
    if existing.scalar_one_or_none() is not None:
        raise ValidationError(f"A lead with email {body.email} already exists")

    lead = Lead(**body.model_dump())
    db.add(lead)
    await db.flush()
    await db.refresh(lead)
    # The scoring worker uses its own session, so the lead must be visible first.
    await db.commit()

    _queue_default_scoring(request, lead.id)
    return lead


@router.post("/leads/form-submission", response_model=LeadOut, status_code=status.HTTP_201_CREATED)
async def submit_form(
    body: FormSubmissionIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> LeadOut:
    """Web-form intake.

    Creates the lead on first contact; a returning lead is marked
    ``qualified``.  The lead's single form-submission row is created or
    replaced with the latest payload.
    """
    result = await db.execute(select(Lead).where(Lead.email == body.email))
    lead = result.scalar_one_or_none()

    if lead is None:
        lead = Lead(
            **body.model_dump(exclude={"form_name", "fields", "page_views"}),
            source="form_submission",
        )
        db.add(lead)
        await db.flush()
        db.add(LeadActivity(lead_id=lead.id, type="lead_created", description="Lead created from form submission"))
    else:
        lead.status = "qualified"

    result = await db.execute(select(FormSubmission).where(FormSubmission.lead_id == lead.id))
    submission = result.scalar_one_or_none()
    if submission is None:
        submission = FormSubmission(lead_id=lead.id)
        db.add(submission)
    submission.form_name = body.form_name
    submission.payload = body.fields
    submission.page_views = body.page_views

    db.add(
        LeadActivity(
            lead_id=lead.id,
            type="form_submitted",
            description=f"Form submitted: {body.form_name or 'unnamed form'}",
        )
    )
    await db.flush()
    await db.refresh(lead)
    await db.commit()

    _queue_default_scoring(request, lead.id)
    logger.info("Form submission received for lead %s", lead.id)
    return lead


@router.get("/leads/{lead_id}", response_model=LeadOut)
async def get_lead(lead_id: UUID, db: AsyncSession = Depends(get_db)) -> LeadOut:
    return await get_lead_or_404(lead_id, db)


def _queue_default_scoring(request: Request, lead_id: UUID) -> None:
    queue = getattr(request.app.state, "scoring_queue", None)
    if settings.DEFAULT_SCORING_ALGORITHM_ID and queue is not None:
        queue.enqueue(lead_id, uuid.UUID(settings.DEFAULT_SCORING_ALGORITHM_ID))
    else:
        logger.debug("No default scoring algorithm; lead %s not queued", lead_id)
