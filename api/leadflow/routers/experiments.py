import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.database import get_db
from leadflow.models.experiment import ExperimentStatus
from leadflow.schemas.experiments import ExperimentCreate
from leadflow.services.experiments import ExperimentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["experiments"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class VariantOut(BaseModel):
    id: UUID
    name: str
    content: dict[str, Any] | None = None
    traffic_percent: float
    impressions: int
    clicks: int
    conversions: int
    revenue: float

    model_config = {"from_attributes": True}


class ExperimentOut(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    campaign_id: UUID | None = None
    test_type: str
    status: ExperimentStatus
    confidence_level: float
    min_sample_size: int
    start_date: datetime | None = None
    end_date: datetime | None = None
    winning_variant_id: UUID | None = None
    significance: float | None = None
    created_at: datetime
    variants: list[VariantOut]

    model_config = {"from_attributes": True}


class ActiveExperimentOut(BaseModel):
    id: UUID
    name: str
    test_type: str
    campaign_id: UUID | None = None
    variant_count: int
    total_events: int
    start_date: datetime | None = None
    status: ExperimentStatus


class TrafficSplitUpdate(BaseModel):
    split: dict[str, float]


class VariantResult(BaseModel):
    id: UUID
    name: str
    impressions: int
    clicks: int
    conversions: int
    revenue: float
    conversion_rate: float
    revenue_per_conversion: float
    confidence: dict[str, float] | None = None


class Winner(BaseModel):
    variant_id: UUID
    variant_name: str
    significance: float
    improvement: float | None = None


class ExperimentResults(BaseModel):
    experiment_id: UUID
    status: ExperimentStatus
    start_date: datetime | None = None
    end_date: datetime | None = None
    variants: list[VariantResult]
    winner: Winner | None = None
    statistical_significance: float
    z_score: float | None = None
    p_value: float | None = None
    recommended_action: str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/experiments", response_model=list[ExperimentOut])
async def list_experiments(
    status_filter: ExperimentStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> list[ExperimentOut]:
    """List experiments, newest first, optionally filtered by status."""
    return await ExperimentService(db).list_experiments(status_filter)


@router.post("/experiments", response_model=ExperimentOut, status_code=status.HTTP_201_CREATED)
async def create_experiment(
    body: ExperimentCreate,
    db: AsyncSession = Depends(get_db),
) -> ExperimentOut:
    """Create a draft experiment with its variants."""
    return await ExperimentService(db).create(body)


@router.get("/experiments/active", response_model=list[ActiveExperimentOut])
async def list_active_experiments(db: AsyncSession = Depends(get_db)) -> list[ActiveExperimentOut]:
    return await ExperimentService(db).list_active()


@router.get("/experiments/{experiment_id}", response_model=ExperimentOut)
async def get_experiment(experiment_id: UUID, db: AsyncSession = Depends(get_db)) -> ExperimentOut:
    return await ExperimentService(db).get(experiment_id)


@router.post("/experiments/{experiment_id}/start", response_model=ExperimentOut)
async def start_experiment(experiment_id: UUID, db: AsyncSession = Depends(get_db)) -> ExperimentOut:
    return await ExperimentService(db).start(experiment_id)


@router.post("/experiments/{experiment_id}/pause", response_model=ExperimentOut)
async def pause_experiment(experiment_id: UUID, db: AsyncSession = Depends(get_db)) -> ExperimentOut:
    return await ExperimentService(db).pause(experiment_id)


@router.post("/experiments/{experiment_id}/cancel", response_model=ExperimentOut)
async def cancel_experiment(experiment_id: UUID, db: AsyncSession = Depends(get_db)) -> ExperimentOut:
    return await ExperimentService(db).cancel(experiment_id)


@router.put("/experiments/{experiment_id}/traffic", response_model=ExperimentOut)
async def update_traffic_split(
    experiment_id: UUID,
    body: TrafficSplitUpdate,
    db: AsyncSession = Depends(get_db),
) -> ExperimentOut:
    """Replace the traffic split of a draft experiment, keyed by variant name."""
    return await ExperimentService(db).update_traffic_split(experiment_id, body.split)


@router.get("/experiments/{experiment_id}/results", response_model=ExperimentResults)
async def get_experiment_results(experiment_id: UUID, db: AsyncSession = Depends(get_db)) -> ExperimentResults:
    """Current significance report; the frozen snapshot once concluded."""
    return await ExperimentService(db).evaluate(experiment_id)


@router.post("/experiments/{experiment_id}/conclude", response_model=ExperimentResults)
async def conclude_experiment(experiment_id: UUID, db: AsyncSession = Depends(get_db)) -> ExperimentResults:
    results = await ExperimentService(db).conclude(experiment_id)
    logger.info("Experiment %s concluded via API", experiment_id)
    return results
