"""Experiment lifecycle and significance reporting.

Status moves draft -> running <-> paused -> completed, with cancelled
reachable from any open state.  Every transition is a conditional UPDATE on
the current status, so two concurrent callers can never both succeed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.errors import AlreadyConcludedError, NotFoundError, StateError, ValidationError
from leadflow.models.event import ExperimentEvent
from leadflow.models.experiment import Experiment, ExperimentStatus, Variant
from leadflow.schemas.experiments import ExperimentCreate
from leadflow.services.results_store import load_experiment_result, save_experiment_result
from leadflow.stats.significance import evaluate_variants

logger = logging.getLogger(__name__)

TRAFFIC_TOLERANCE = 0.01

OPEN_STATUSES = (ExperimentStatus.draft, ExperimentStatus.running, ExperimentStatus.paused)


def validate_traffic_split(split: list[tuple[str, float]]) -> None:
    """Reject (name, percent) pairs that cannot form a valid traffic split."""
    if len(split) < 2:
        raise ValidationError("An experiment needs at least two variants")

    names = [name for name, _ in split]
    if len(set(names)) != len(names):
        raise ValidationError("Variant names must be unique within an experiment")

    if any(pct < 0 for _, pct in split):
        raise ValidationError("Traffic percentages must be non-negative")

    total = sum(pct for _, pct in split)
    if abs(total - 100) > TRAFFIC_TOLERANCE:
        raise ValidationError(f"Variant traffic percentages must add up to 100%, got {total}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExperimentService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Creation and configuration
    # ------------------------------------------------------------------

    async def create(self, config: ExperimentCreate) -> Experiment:
        validate_traffic_split([(v.name, v.traffic_percent) for v in config.variants])
        if not (0 < config.confidence_level < 100):
            raise ValidationError("confidence_level must be between 0 and 100 exclusive")
        if config.min_sample_size < 0:
            raise ValidationError("min_sample_size must be non-negative")

        experiment = Experiment(
            name=config.name,
            description=config.description,
            campaign_id=config.campaign_id,
            test_type=config.test_type,
            status=ExperimentStatus.draft,
            confidence_level=config.confidence_level,
            min_sample_size=config.min_sample_size,
            variants=[
                Variant(
                    name=v.name,
                    content=v.content,
                    traffic_percent=v.traffic_percent,
                    position=i,
                )
                for i, v in enumerate(config.variants)
            ],
        )
        self.db.add(experiment)
        await self.db.flush()
        await self.db.refresh(experiment)

        logger.info("A/B test created: %s (%s)", experiment.name, experiment.id)
        return experiment

    async def update_traffic_split(self, experiment_id: uuid.UUID, split: dict[str, float]) -> Experiment:
        """Replace the traffic split of a draft experiment.

        ``split`` maps every existing variant name to its new percentage.
        """
        result = await self.db.execute(
            select(Experiment)
            .where(Experiment.id == experiment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        experiment = result.scalar_one_or_none()
        if experiment is None:
            raise NotFoundError("Experiment", experiment_id)
        if experiment.status != ExperimentStatus.draft:
            raise StateError("Traffic split can only change while the experiment is a draft")

        current = {v.name for v in experiment.variants}
        if set(split) != current:
            raise ValidationError(f"Split must cover exactly the variants: {', '.join(sorted(current))}")
        validate_traffic_split(list(split.items()))

        for variant in experiment.variants:
            variant.traffic_percent = split[variant.name]
        await self.db.flush()
        logger.info("Traffic split updated for %s: %s", experiment_id, split)
        return experiment

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, experiment_id: uuid.UUID) -> Experiment:
        experiment = await self._transition(
            experiment_id,
            (ExperimentStatus.draft, ExperimentStatus.paused),
            ExperimentStatus.running,
            start_date=func.coalesce(Experiment.start_date, _now()),
        )
        logger.info("A/B test started: %s", experiment_id)
        return experiment

    async def pause(self, experiment_id: uuid.UUID) -> Experiment:
        experiment = await self._transition(
            experiment_id, (ExperimentStatus.running,), ExperimentStatus.paused
        )
        logger.info("A/B test paused: %s", experiment_id)
        return experiment

    async def cancel(self, experiment_id: uuid.UUID) -> Experiment:
        experiment = await self._transition(
            experiment_id, OPEN_STATUSES, ExperimentStatus.cancelled, end_date=_now()
        )
        logger.info("A/B test cancelled: %s", experiment_id)
        return experiment

    async def conclude(self, experiment_id: uuid.UUID) -> dict[str, Any]:
        """Freeze the current evaluation and complete the experiment.

        Raises AlreadyConcludedError when called on a completed experiment,
        StateError from draft or cancelled.
        """
        experiment = await self.get(experiment_id)
        self._check_concludable(experiment)

        analysis = await self._evaluate_live(experiment)
        winner = analysis["winner"]

        result = await self.db.execute(
            update(Experiment)
            .where(
                Experiment.id == experiment_id,
                Experiment.status.in_((ExperimentStatus.running, ExperimentStatus.paused)),
            )
            .values(
                status=ExperimentStatus.completed,
                end_date=_now(),
                winning_variant_id=uuid.UUID(winner["variant_id"]) if winner else None,
                significance=analysis["statistical_significance"],
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Lost a race with another transition.
            self._check_concludable(await self.get(experiment_id))
            raise StateError(f"Experiment {experiment_id} could not be concluded")

        await save_experiment_result(self.db, experiment_id, analysis)
        experiment = await self.get(experiment_id)

        logger.info(
            "A/B test concluded: %s, winner: %s",
            experiment_id,
            winner["variant_name"] if winner else "No clear winner",
        )
        return self._with_metadata(experiment, analysis)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, experiment_id: uuid.UUID) -> Experiment:
        result = await self.db.execute(
            select(Experiment)
            .where(Experiment.id == experiment_id)
            .execution_options(populate_existing=True)
        )
        experiment = result.scalar_one_or_none()
        if experiment is None:
            raise NotFoundError("Experiment", experiment_id)
        return experiment

    async def list_experiments(self, status: ExperimentStatus | None = None) -> list[Experiment]:
        query = select(Experiment).order_by(Experiment.created_at.desc())
        if status is not None:
            query = query.where(Experiment.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_active(self) -> list[dict[str, Any]]:
        """Running experiments with their variant and event counts."""
        event_counts = (
            select(ExperimentEvent.experiment_id, func.count(ExperimentEvent.id).label("total_events"))
            .group_by(ExperimentEvent.experiment_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Experiment, func.coalesce(event_counts.c.total_events, 0))
            .outerjoin(event_counts, event_counts.c.experiment_id == Experiment.id)
            .where(Experiment.status == ExperimentStatus.running)
            .order_by(Experiment.start_date.desc())
        )
        return [
            {
                "id": experiment.id,
                "name": experiment.name,
                "test_type": experiment.test_type,
                "campaign_id": experiment.campaign_id,
                "variant_count": len(experiment.variants),
                "total_events": total_events,
                "start_date": experiment.start_date,
                "status": experiment.status,
            }
            for experiment, total_events in result.all()
        ]

    async def evaluate(self, experiment_id: uuid.UUID) -> dict[str, Any]:
        """Current test result; the frozen snapshot once completed."""
        experiment = await self.get(experiment_id)
        if experiment.status == ExperimentStatus.completed:
            snapshot = await load_experiment_result(self.db, experiment_id)
            if snapshot is not None:
                return self._with_metadata(experiment, snapshot)
        return self._with_metadata(experiment, await self._evaluate_live(experiment))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _evaluate_live(self, experiment: Experiment) -> dict[str, Any]:
        result = await self.db.execute(
            select(Variant)
            .where(Variant.experiment_id == experiment.id)
            .order_by(Variant.position, Variant.id)
            .execution_options(populate_existing=True)
        )
        counters = [
            {
                "id": str(v.id),
                "name": v.name,
                "impressions": v.impressions,
                "clicks": v.clicks,
                "conversions": v.conversions,
                "revenue": v.revenue,
            }
            for v in result.scalars().all()
        ]
        return evaluate_variants(counters, experiment.confidence_level, experiment.min_sample_size)

    async def _transition(
        self,
        experiment_id: uuid.UUID,
        allowed: tuple[ExperimentStatus, ...],
        target: ExperimentStatus,
        **values: Any,
    ) -> Experiment:
        result = await self.db.execute(
            update(Experiment)
            .where(Experiment.id == experiment_id, Experiment.status.in_(allowed))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            experiment = await self.get(experiment_id)
            raise StateError(
                f"Cannot move experiment {experiment_id} from {experiment.status.value} to {target.value}"
            )
        return await self.get(experiment_id)

    @staticmethod
    def _check_concludable(experiment: Experiment) -> None:
        if experiment.status == ExperimentStatus.completed:
            raise AlreadyConcludedError(f"Experiment {experiment.id} is already concluded")
        if experiment.status not in (ExperimentStatus.running, ExperimentStatus.paused):
            raise StateError(f"Cannot conclude a {experiment.status.value} experiment")

    @staticmethod
    def _with_metadata(experiment: Experiment, analysis: dict[str, Any]) -> dict[str, Any]:
        return {
            "experiment_id": experiment.id,
            "status": experiment.status,
            "start_date": experiment.start_date,
            "end_date": experiment.end_date,
            **analysis,
        }
