"""Persist the frozen evaluation snapshot of a concluded experiment."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.models.experiment_result import ExperimentResult


async def save_experiment_result(
    db: AsyncSession,
    experiment_id: uuid.UUID,
    analysis: dict[str, Any],
) -> ExperimentResult:
    """Upsert the snapshot row for ``experiment_id``.

    Parameters
    ----------
    db : AsyncSession
        Database session.
    experiment_id : UUID
        The concluded experiment.
    analysis : dict
        JSON-serializable output of ``evaluate_variants``.
    """
    winner = analysis.get("winner")
    winning_variant_id = uuid.UUID(winner["variant_id"]) if winner else None
    significance = analysis.get("statistical_significance")

    existing = await db.execute(
        select(ExperimentResult).where(ExperimentResult.experiment_id == experiment_id)
    )
    row = existing.scalar_one_or_none()

    if row:
        row.snapshot = analysis
        row.winning_variant_id = winning_variant_id
        row.significance = significance
    else:
        row = ExperimentResult(
            experiment_id=experiment_id,
            snapshot=analysis,
            winning_variant_id=winning_variant_id,
            significance=significance,
        )
        db.add(row)

    await db.flush()
    return row


async def load_experiment_result(db: AsyncSession, experiment_id: uuid.UUID) -> dict[str, Any] | None:
    result = await db.execute(
        select(ExperimentResult.snapshot).where(ExperimentResult.experiment_id == experiment_id)
    )
    return result.scalar_one_or_none()
