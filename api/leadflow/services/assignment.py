"""Idempotent, traffic-weighted variant assignment.

The first assignment of a subject to a running experiment is recorded as an
``assigned`` event; a partial unique index on (experiment_id, subject_id)
for that kind makes the insert atomic, so concurrent callers agree on one
variant and every later call returns it unchanged.
"""

from __future__ import annotations

import logging
import uuid

import numpy as np
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.errors import ExperimentNotRunning, NotFoundError
from leadflow.models.event import EventKind, ExperimentEvent
from leadflow.models.experiment import Experiment, ExperimentStatus, Variant
from leadflow.models.lead import Lead, LeadActivity
from leadflow.stats.allocation import draw_percentage, select_variant

logger = logging.getLogger(__name__)


class AssignmentService:
    """Assign subjects to experiment variants.

    Parameters
    ----------
    db : AsyncSession
        Session used for reads and the insert-if-absent write.
    rng : numpy.random.Generator, optional
        Source of the uniform draw; injectable for tests.
    """

    def __init__(self, db: AsyncSession, rng: np.random.Generator | None = None) -> None:
        self.db = db
        self.rng = rng if rng is not None else np.random.default_rng()

    async def assign(self, experiment_id: uuid.UUID, subject_id: str) -> uuid.UUID:
        """Return the subject's variant id, assigning one on first contact."""
        result = await self.db.execute(
            select(Experiment)
            .where(Experiment.id == experiment_id)
            .execution_options(populate_existing=True)
        )
        experiment = result.scalar_one_or_none()
        if experiment is None:
            raise NotFoundError("Experiment", experiment_id)
        if experiment.status != ExperimentStatus.running:
            raise ExperimentNotRunning(
                f"Experiment {experiment_id} is {experiment.status.value}, not running"
            )

        existing = await self.get_assignment(experiment_id, subject_id)
        if existing is not None:
            return existing

        variants = sorted(experiment.variants, key=lambda v: (v.position, str(v.id)))
        variant = select_variant(variants, draw_percentage(self.rng))

        try:
            async with self.db.begin_nested():
                self.db.add(
                    ExperimentEvent(
                        experiment_id=experiment_id,
                        variant_id=variant.id,
                        subject_id=subject_id,
                        kind=EventKind.assigned,
                    )
                )
        except IntegrityError:
            # Another request assigned this subject first; theirs stands.
            winner = await self.get_assignment(experiment_id, subject_id)
            if winner is None:
                raise
            logger.info("Concurrent assignment for %s in %s resolved to %s", subject_id, experiment_id, winner)
            return winner

        await self._log_activity(subject_id, experiment, variant)
        logger.debug("Assigned %s to variant %s of experiment %s", subject_id, variant.name, experiment_id)
        return variant.id

    async def get_assignment(self, experiment_id: uuid.UUID, subject_id: str) -> uuid.UUID | None:
        result = await self.db.execute(
            select(ExperimentEvent.variant_id).where(
                ExperimentEvent.experiment_id == experiment_id,
                ExperimentEvent.subject_id == subject_id,
                ExperimentEvent.kind == EventKind.assigned,
            )
        )
        return result.scalar_one_or_none()

    async def _log_activity(self, subject_id: str, experiment: Experiment, variant: Variant) -> None:
        """Record the assignment on the lead's timeline when the subject is a lead."""
        try:
            lead_id = uuid.UUID(subject_id)
        except ValueError:
            return
        if await self.db.get(Lead, lead_id) is None:
            return

        self.db.add(
            LeadActivity(
                lead_id=lead_id,
                type="ab_test_assigned",
                description=f"Assigned to A/B test variant: {variant.name}",
                details={
                    "experiment_id": str(experiment.id),
                    "variant_id": str(variant.id),
                    "variant_name": variant.name,
                },
            )
        )
        await self.db.flush()
