from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.database import get_db
from leadflow.services.assignment import AssignmentService
from leadflow.services.events import EventLedger, TrackedEvent

router = APIRouter(tags=["events"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class AssignRequest(BaseModel):
    subject_id: str = Field(min_length=1)


class AssignResponse(BaseModel):
    experiment_id: UUID
    subject_id: str
    variant_id: UUID


class TrackRequest(BaseModel):
    variant_id: UUID
    subject_id: str = Field(min_length=1)
    kind: str
    value: float | None = None


class EventItem(TrackRequest):
    experiment_id: UUID


class BatchEventsRequest(BaseModel):
    events: list[EventItem]


class BatchEventsResponse(BaseModel):
    accepted: int
    rejected: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/experiments/{experiment_id}/assign", response_model=AssignResponse)
async def assign_variant(
    experiment_id: UUID,
    body: AssignRequest,
    db: AsyncSession = Depends(get_db),
) -> AssignResponse:
    """Return the subject's variant, assigning one on first contact."""
    variant_id = await AssignmentService(db).assign(experiment_id, body.subject_id)
    return AssignResponse(experiment_id=experiment_id, subject_id=body.subject_id, variant_id=variant_id)


@router.post("/experiments/{experiment_id}/events", status_code=status.HTTP_204_NO_CONTENT)
async def track_event(
    experiment_id: UUID,
    body: TrackRequest,
    db: AsyncSession = Depends(get_db),
) -> None:
    await EventLedger(db).record(experiment_id, body.variant_id, body.subject_id, body.kind, body.value)


@router.post("/events", response_model=BatchEventsResponse)
async def ingest_events(
    body: BatchEventsRequest,
    db: AsyncSession = Depends(get_db),
) -> BatchEventsResponse:
    """Batch event ingestion.

    Each event is applied on its own; rejected events are logged and counted
    but never fail the rest of the batch.
    """
    events = [
        TrackedEvent(
            experiment_id=item.experiment_id,
            variant_id=item.variant_id,
            subject_id=item.subject_id,
            kind=item.kind,
            value=item.value,
        )
        for item in body.events
    ]
    accepted, rejected = await EventLedger(db).record_many(events)
    return BatchEventsResponse(accepted=accepted, rejected=rejected)
