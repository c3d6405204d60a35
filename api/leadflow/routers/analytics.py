from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.database import get_db
from leadflow.models.campaign import EmailEventKind
from leadflow.services.campaign_analytics import CampaignAnalyticsService

router = APIRouter(tags=["analytics"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class CampaignMetrics(BaseModel):
    campaign_id: UUID
    campaign_name: str
    type: str | None = None
    total_sent: int
    total_delivered: int
    total_opened: int
    total_clicked: int
    total_replied: int
    total_bounced: int
    total_unsubscribed: int
    total_converted: int
    total_revenue: float
    delivery_rate: float
    open_rate: float
    click_rate: float
    reply_rate: float
    bounce_rate: float
    unsubscribe_rate: float
    conversion_rate: float
    avg_revenue_per_conversion: float
    created_at: datetime | None = None
    last_calculated: datetime


class EmailEventRequest(BaseModel):
    kind: EmailEventKind
    metadata: dict[str, Any] | None = None


class Overview(BaseModel):
    total_leads: int
    total_campaigns: int
    total_revenue: float
    average_score: float
    conversion_rate: float
    active_leads: int


class LeadSource(BaseModel):
    source: str | None = None
    count: int
    percentage: float
    conversion_rate: float


class Dashboard(BaseModel):
    overview: Overview
    campaign_performance: list[CampaignMetrics]
    lead_sources: list[LeadSource]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/analytics/dashboard", response_model=Dashboard)
async def get_dashboard(db: AsyncSession = Depends(get_db)) -> Dashboard:
    return await CampaignAnalyticsService(db).dashboard()


@router.get("/analytics/campaigns/compare", response_model=list[CampaignMetrics])
async def compare_campaigns(
    campaign_ids: list[UUID] = Query(...),
    db: AsyncSession = Depends(get_db),
) -> list[CampaignMetrics]:
    """Metrics for two or more campaigns, best conversion rate first."""
    return await CampaignAnalyticsService(db).compare(campaign_ids)


@router.get("/analytics/campaigns/{campaign_id}", response_model=CampaignMetrics)
async def get_campaign_metrics(campaign_id: UUID, db: AsyncSession = Depends(get_db)) -> CampaignMetrics:
    return await CampaignAnalyticsService(db).compute_metrics(campaign_id)


@router.post("/analytics/campaigns/{campaign_id}/recalculate", response_model=CampaignMetrics)
async def recalculate_campaign_metrics(campaign_id: UUID, db: AsyncSession = Depends(get_db)) -> CampaignMetrics:
    """Recompute the cached metrics snapshot from the executions."""
    return await CampaignAnalyticsService(db).compute_metrics(campaign_id)


@router.post("/analytics/executions/{execution_id}/events", status_code=status.HTTP_204_NO_CONTENT)
async def track_email_event(
    execution_id: UUID,
    body: EmailEventRequest,
    db: AsyncSession = Depends(get_db),
) -> None:
    await CampaignAnalyticsService(db).track_email_event(execution_id, body.kind, body.metadata)
