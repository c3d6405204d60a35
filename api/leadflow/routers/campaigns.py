import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.database import get_db
from leadflow.core.dependencies import get_lead_or_404
from leadflow.core.errors import NotFoundError
from leadflow.models.campaign import Campaign, CampaignExecution, ExecutionStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["campaigns"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class CampaignCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: str = "email"
    status: str = "draft"


class CampaignOut(BaseModel):
    id: UUID
    name: str
    type: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ExecutionCreate(BaseModel):
    lead_id: UUID
    status: ExecutionStatus = ExecutionStatus.sent


class ExecutionOut(BaseModel):
    id: UUID
    campaign_id: UUID
    lead_id: UUID
    status: ExecutionStatus
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

async def _get_campaign(campaign_id: UUID, db: AsyncSession) -> Campaign:
    campaign = await db.get(Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign", campaign_id)
    return campaign


@router.post("/campaigns", response_model=CampaignOut, status_code=status.HTTP_201_CREATED)
async def create_campaign(body: CampaignCreate, db: AsyncSession = Depends(get_db)) -> CampaignOut:
    campaign = Campaign(**body.model_dump())
    db.add(campaign)
    await db.flush()
    await db.refresh(campaign)
    logger.info("Campaign created: %s (%s)", campaign.name, campaign.id)
    return campaign


@router.get("/campaigns", response_model=list[CampaignOut])
async def list_campaigns(db: AsyncSession = Depends(get_db)) -> list[CampaignOut]:
    result = await db.execute(select(Campaign).order_by(Campaign.created_at.desc()))
    return result.scalars().all()


@router.get("/campaigns/{campaign_id}", response_model=CampaignOut)
async def get_campaign(campaign_id: UUID, db: AsyncSession = Depends(get_db)) -> CampaignOut:
    return await _get_campaign(campaign_id, db)


@router.post(
    "/campaigns/{campaign_id}/executions",
    response_model=ExecutionOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_execution(
    campaign_id: UUID,
    body: ExecutionCreate,
    db: AsyncSession = Depends(get_db),
) -> ExecutionOut:
    """Record one campaign touch sent to a lead."""
    await _get_campaign(campaign_id, db)
    await get_lead_or_404(body.lead_id, db)

    execution = CampaignExecution(campaign_id=campaign_id, lead_id=body.lead_id, status=body.status)
    db.add(execution)
    await db.flush()
    await db.refresh(execution)
    logger.debug("Execution %s created for campaign %s", execution.id, campaign_id)
    return execution
