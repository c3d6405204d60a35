"""Custom lead scoring with configurable weighted algorithms.

The service gathers a lead's attributes into a ``LeadProfile``, runs the
pure extractor and scorer, and upserts one ``ScoringResult`` per
(lead, algorithm).
"""

from __future__ import annotations

import logging
import math
import uuid
from typing import Any

from sqlalchemy import and_, case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.errors import NotFoundError, StateError, ValidationError
from leadflow.models.campaign import CampaignExecution
from leadflow.models.lead import Lead, LeadActivity
from leadflow.models.scoring import ScoringAlgorithm, ScoringResult
from leadflow.scoring.config import ScoringAlgorithmConfig, validate_algorithm_config
from leadflow.scoring.features import ActivityRecord, LeadProfile, extract_features
from leadflow.scoring.model import apply_algorithm, categorize

logger = logging.getLogger(__name__)

PERFORMANCE_FIELDS = ("accuracy", "precision", "recall", "f1_score")


class ScoringService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Algorithms
    # ------------------------------------------------------------------

    async def create_algorithm(self, config: ScoringAlgorithmConfig) -> ScoringAlgorithm:
        validate_algorithm_config(config)

        existing = await self.db.execute(
            select(ScoringAlgorithm.id).where(ScoringAlgorithm.name == config.name)
        )
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(f"A scoring algorithm named {config.name!r} already exists")

        algorithm = ScoringAlgorithm(
            name=config.name,
            description=config.description,
            version=config.version,
            algorithm_type=config.algorithm_type,
            weights=dict(config.weights),
            thresholds=config.thresholds.model_dump(),
            confidence_multiplier=config.confidence_multiplier,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(algorithm)
        except IntegrityError:
            raise ValidationError(f"A scoring algorithm named {config.name!r} already exists") from None
        await self.db.refresh(algorithm)

        logger.info("Scoring algorithm created: %s (%s)", algorithm.name, algorithm.id)
        return algorithm

    async def list_algorithms(self) -> list[dict[str, Any]]:
        """Active algorithms, newest first, with the number of leads scored."""
        result = await self.db.execute(
            select(ScoringAlgorithm, func.count(ScoringResult.id))
            .outerjoin(ScoringResult, ScoringResult.algorithm_id == ScoringAlgorithm.id)
            .where(ScoringAlgorithm.is_active.is_(True))
            .group_by(ScoringAlgorithm.id)
            .order_by(ScoringAlgorithm.created_at.desc())
        )
        return [
            {
                "id": algorithm.id,
                "name": algorithm.name,
                "description": algorithm.description,
                "version": algorithm.version,
                "algorithm_type": algorithm.algorithm_type,
                "leads_scored": leads_scored,
                "accuracy": algorithm.accuracy,
                "created_at": algorithm.created_at,
            }
            for algorithm, leads_scored in result.all()
        ]

    async def get_algorithm(self, algorithm_id: uuid.UUID) -> ScoringAlgorithm:
        algorithm = await self.db.get(ScoringAlgorithm, algorithm_id)
        if algorithm is None:
            raise NotFoundError("Scoring algorithm", algorithm_id)
        return algorithm

    async def update_performance(self, algorithm_id: uuid.UUID, **metrics: float | None) -> ScoringAlgorithm:
        """Store externally measured accuracy/precision/recall/F1 (each in [0, 1])."""
        algorithm = await self.get_algorithm(algorithm_id)
        for name, value in metrics.items():
            if name not in PERFORMANCE_FIELDS:
                raise ValidationError(f"Unknown performance metric: {name}")
            if value is None:
                continue
            if not (0.0 <= value <= 1.0):
                raise ValidationError(f"{name} must be between 0 and 1")
            setattr(algorithm, name, value)
        await self.db.flush()
        logger.info("Algorithm performance updated: %s", algorithm_id)
        return algorithm

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def score_lead(
        self,
        lead_id: uuid.UUID,
        algorithm_id: uuid.UUID,
        update_lead: bool = False,
    ) -> dict[str, Any]:
        """Score one lead.

        With ``update_lead`` the result also becomes the lead's headline
        ``score`` and a ``new`` lead moves to ``scored``.
        """
        algorithm = await self.get_algorithm(algorithm_id)
        return await self._score(lead_id, algorithm, update_lead=update_lead)

    async def batch_score(self, lead_ids: list[uuid.UUID], algorithm_id: uuid.UUID) -> dict[uuid.UUID, dict[str, Any]]:
        """Score many leads; one lead's failure never aborts the rest.

        Only a missing algorithm fails the whole call.
        """
        algorithm = await self.get_algorithm(algorithm_id)

        results: dict[uuid.UUID, dict[str, Any]] = {}
        for lead_id in lead_ids:
            try:
                async with self.db.begin_nested():
                    results[lead_id] = await self._score(lead_id, algorithm)
            except Exception:
                logger.exception("Failed to score lead %s", lead_id)

        logger.info("Batch scored %d/%d leads with %s", len(results), len(lead_ids), algorithm.name)
        return results

    async def get_lead_scores(self, lead_id: uuid.UUID) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(ScoringResult, ScoringAlgorithm)
            .join(ScoringAlgorithm, ScoringAlgorithm.id == ScoringResult.algorithm_id)
            .where(ScoringResult.lead_id == lead_id)
            .order_by(ScoringResult.created_at.desc())
        )
        return [
            {
                "algorithm_id": algorithm.id,
                "algorithm_name": algorithm.name,
                "algorithm_version": algorithm.version,
                "score": score.score,
                "confidence": score.confidence,
                # Thresholds may have been retuned since the score was stored.
                "category": categorize(score.score, algorithm.thresholds),
                "created_at": score.created_at,
                "explanation": score.explanation,
            }
            for score, algorithm in result.all()
        ]

    async def build_profile(self, lead: Lead) -> LeadProfile:
        """Collect the attributes feature extraction reads."""
        company = (lead.enriched_data or {}).get("company_info") or {}
        if not isinstance(company, dict):
            company = {}
        technologies = company.get("technologies")

        result = await self.db.execute(
            select(
                func.count(func.distinct(CampaignExecution.campaign_id)),
                func.count(
                    case((and_(CampaignExecution.converted_at.isnot(None), CampaignExecution.revenue > 0), 1))
                ),
            ).where(CampaignExecution.lead_id == lead.id)
        )
        campaign_count, converted_count = result.one()

        return LeadProfile(
            email=lead.email,
            job_title=lead.job_title,
            industry=lead.industry,
            phone=lead.phone,
            linkedin_url=lead.linkedin_url,
            website=lead.website,
            employee_count=_as_number(company.get("employee_count")),
            annual_revenue=_as_number(company.get("revenue")),
            technologies=technologies if isinstance(technologies, list) else None,
            campaign_count=campaign_count or 0,
            converted_count=converted_count or 0,
            has_form_submission=lead.form_submission is not None,
            activities=[ActivityRecord(type=a.type, created_at=a.created_at) for a in lead.activities],
        )

    async def _score(
        self,
        lead_id: uuid.UUID,
        algorithm: ScoringAlgorithm,
        update_lead: bool = False,
    ) -> dict[str, Any]:
        if not algorithm.is_active:
            raise StateError(f"Scoring algorithm {algorithm.name} is inactive")

        result = await self.db.execute(
            select(Lead).where(Lead.id == lead_id).execution_options(populate_existing=True)
        )
        lead = result.scalar_one_or_none()
        if lead is None:
            raise NotFoundError("Lead", lead_id)

        features = extract_features(await self.build_profile(lead))
        result = apply_algorithm(
            features,
            algorithm.weights,
            algorithm.thresholds,
            algorithm.confidence_multiplier,
        )
        await self._upsert_result(lead.id, algorithm.id, result)

        if update_lead:
            lead.score = result["score"]
            if lead.status == "new":
                lead.status = "scored"

        self.db.add(
            LeadActivity(
                lead_id=lead.id,
                type="custom_score_calculated",
                description=f"Custom score calculated: {result['score']}/100 ({algorithm.name})",
                details={
                    "algorithm_id": str(algorithm.id),
                    "algorithm_name": algorithm.name,
                    "score": result["score"],
                    "category": result["category"],
                },
            )
        )
        await self.db.flush()

        logger.info("Lead %s scored with %s: %s/100", lead_id, algorithm.name, result["score"])
        return result

    async def _upsert_result(self, lead_id: uuid.UUID, algorithm_id: uuid.UUID, result: dict[str, Any]) -> None:
        values = {
            "score": result["score"],
            "confidence": result["confidence"],
            "category": result["category"],
            "features": result["features"],
            "explanation": result["explanation"],
        }
        row = await self._find_result(lead_id, algorithm_id)
        if row is None:
            try:
                async with self.db.begin_nested():
                    self.db.add(ScoringResult(lead_id=lead_id, algorithm_id=algorithm_id, **values))
                return
            except IntegrityError:
                # A concurrent scorer inserted first; overwrite theirs.
                row = await self._find_result(lead_id, algorithm_id)
                if row is None:
                    raise

        for field, value in values.items():
            setattr(row, field, value)
        await self.db.flush()

    async def _find_result(self, lead_id: uuid.UUID, algorithm_id: uuid.UUID) -> ScoringResult | None:
        result = await self.db.execute(
            select(ScoringResult).where(
                ScoringResult.lead_id == lead_id,
                ScoringResult.algorithm_id == algorithm_id,
            )
        )
        return result.scalar_one_or_none()


def _as_number(value: Any) -> float | None:
    """Provider numbers sometimes arrive as strings; anything unparsable or non-finite is absent."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.replace(",", "").strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None
