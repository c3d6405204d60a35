"""Typed scoring-algorithm configuration, validated once at creation."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from leadflow.core.errors import ValidationError
from leadflow.scoring.features import FEATURE_NAMES


class Thresholds(BaseModel):
    """Score lower bounds per category."""

    hot: float = 80.0
    warm: float = 60.0
    cold: float = 0.0


class ScoringAlgorithmConfig(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    version: str = "1.0"
    algorithm_type: Literal["weighted_sum"] = "weighted_sum"
    weights: dict[str, float]
    thresholds: Thresholds = Thresholds()
    confidence_multiplier: float = 1.2


def validate_algorithm_config(config: ScoringAlgorithmConfig) -> None:
    """Reject configurations the scorer would otherwise silently misread.

    Raises ValidationError for unknown feature names, negative weights, an
    empty weight map, thresholds out of order, or a non-positive confidence
    multiplier.
    """
    if not config.weights:
        raise ValidationError("At least one feature weight is required")

    unknown = sorted(set(config.weights) - FEATURE_NAMES)
    if unknown:
        raise ValidationError(f"Unknown feature names: {', '.join(unknown)}")

    negative = sorted(name for name, weight in config.weights.items() if weight < 0)
    if negative:
        raise ValidationError(f"Weights must be non-negative: {', '.join(negative)}")

    t = config.thresholds
    if not (t.hot >= t.warm >= t.cold >= 0):
        raise ValidationError("Thresholds must satisfy hot >= warm >= cold >= 0")

    if config.confidence_multiplier <= 0:
        raise ValidationError("confidence_multiplier must be positive")
