import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.database import get_db
from leadflow.scoring.config import ScoringAlgorithmConfig
from leadflow.services.scoring import ScoringService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["scoring"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class AlgorithmOut(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    version: str
    algorithm_type: str
    is_active: bool
    weights: dict[str, float]
    thresholds: dict[str, float]
    confidence_multiplier: float
    accuracy: float | None = None
    precision: float | None = None
    recall: float | None = None
    f1_score: float | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AlgorithmSummary(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    version: str
    algorithm_type: str
    leads_scored: int
    accuracy: float | None = None
    created_at: datetime


class Explanation(BaseModel):
    top_factors: list[dict[str, Any]]
    reasoning: str


class ScoreOut(BaseModel):
    score: float
    confidence: float
    category: str
    features: dict[str, Any]
    explanation: Explanation


class BatchScoreRequest(BaseModel):
    lead_ids: list[UUID] = Field(min_length=1)
    algorithm_id: UUID


class BatchScoreResponse(BaseModel):
    scored: int
    failed: int
    results: dict[UUID, ScoreOut]


class LeadScoreOut(BaseModel):
    algorithm_id: UUID
    algorithm_name: str
    algorithm_version: str
    score: float
    confidence: float
    category: str
    created_at: datetime
    explanation: Explanation


class PerformanceUpdate(BaseModel):
    accuracy: float | None = None
    precision: float | None = None
    recall: float | None = None
    f1_score: float | None = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/scoring/algorithms", response_model=AlgorithmOut, status_code=status.HTTP_201_CREATED)
async def create_algorithm(
    body: ScoringAlgorithmConfig,
    db: AsyncSession = Depends(get_db),
) -> AlgorithmOut:
    return await ScoringService(db).create_algorithm(body)


@router.get("/scoring/algorithms", response_model=list[AlgorithmSummary])
async def list_algorithms(db: AsyncSession = Depends(get_db)) -> list[AlgorithmSummary]:
    """Active algorithms with the number of leads each has scored."""
    return await ScoringService(db).list_algorithms()


@router.get("/scoring/algorithms/{algorithm_id}", response_model=AlgorithmOut)
async def get_algorithm(algorithm_id: UUID, db: AsyncSession = Depends(get_db)) -> AlgorithmOut:
    return await ScoringService(db).get_algorithm(algorithm_id)


@router.put("/scoring/algorithms/{algorithm_id}/performance", response_model=AlgorithmOut)
async def update_performance(
    algorithm_id: UUID,
    body: PerformanceUpdate,
    db: AsyncSession = Depends(get_db),
) -> AlgorithmOut:
    return await ScoringService(db).update_performance(algorithm_id, **body.model_dump(exclude_none=True))


@router.post("/scoring/leads/{lead_id}", response_model=ScoreOut)
async def score_lead(
    lead_id: UUID,
    algorithm_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ScoreOut:
    return await ScoringService(db).score_lead(lead_id, algorithm_id)


@router.post("/scoring/batch", response_model=BatchScoreResponse)
async def batch_score(body: BatchScoreRequest, db: AsyncSession = Depends(get_db)) -> BatchScoreResponse:
    """Score many leads; leads that fail are logged and left out."""
    results = await ScoringService(db).batch_score(body.lead_ids, body.algorithm_id)
    return BatchScoreResponse(
        scored=len(results),
        failed=len(body.lead_ids) - len(results),
        results=results,
    )


@router.get("/scoring/leads/{lead_id}", response_model=list[LeadScoreOut])
async def get_lead_scores(lead_id: UUID, db: AsyncSession = Depends(get_db)) -> list[LeadScoreOut]:
    return await ScoringService(db).get_lead_scores(lead_id)
