from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class VariantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    content: dict[str, Any] | None = None
    traffic_percent: float = Field(ge=0, le=100)


class ExperimentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    campaign_id: UUID | None = None
    test_type: str = "email_subject"
    variants: list[VariantCreate]
    confidence_level: float = 95.0
    min_sample_size: int = 100
