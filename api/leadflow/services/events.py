"""Append-only event ledger with atomic variant counters."""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.errors import MissingValueError, NotFoundError, ValidationError
from leadflow.models.event import EventKind, ExperimentEvent
from leadflow.models.experiment import Variant

logger = logging.getLogger(__name__)

COUNTER_COLUMNS = {
    EventKind.impression: Variant.impressions,
    EventKind.click: Variant.clicks,
    EventKind.conversion: Variant.conversions,
    EventKind.revenue: Variant.revenue,
}


@dataclass
class TrackedEvent:
    experiment_id: uuid.UUID
    variant_id: uuid.UUID
    subject_id: str
    kind: str
    value: float | None = None


class EventLedger:
    """Records experiment events and keeps the variant counters in step."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record(
        self,
        experiment_id: uuid.UUID,
        variant_id: uuid.UUID,
        subject_id: str,
        kind: EventKind | str,
        value: float | None = None,
    ) -> None:
        """Append one event and bump the matching counter.

        The counter moves with ``SET col = col + n`` in a single statement so
        concurrent writers never lose increments.  Revenue events require a
        non-negative ``value``.
        """
        try:
            kind = EventKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown event kind: {kind!r}") from None
        if kind == EventKind.assigned:
            raise ValidationError("Assignments are created through variant assignment, not tracked")

        if kind == EventKind.revenue:
            if value is None or not math.isfinite(value) or value < 0:
                raise MissingValueError("Revenue events need a non-negative value")
            amount: float = value
        else:
            amount = 1

        column = COUNTER_COLUMNS[kind]
        result = await self.db.execute(
            update(Variant)
            .where(Variant.id == variant_id, Variant.experiment_id == experiment_id)
            .values({column: column + amount})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("Variant", variant_id)

        self.db.add(
            ExperimentEvent(
                experiment_id=experiment_id,
                variant_id=variant_id,
                subject_id=subject_id,
                kind=kind,
                value=value if kind == EventKind.revenue else None,
            )
        )
        await self.db.flush()
        logger.debug("Tracked %s for variant %s (subject %s)", kind.value, variant_id, subject_id)

    async def record_many(self, events: list[TrackedEvent]) -> tuple[int, int]:
        """Record a batch; each event commits or fails on its own.

        Returns
        -------
        tuple[int, int]
            (accepted, rejected)
        """
        accepted = 0
        for event in events:
            try:
                async with self.db.begin_nested():
                    await self.record(
                        event.experiment_id, event.variant_id, event.subject_id, event.kind, event.value
                    )
                accepted += 1
            except Exception:
                logger.exception(
                    "Rejected %s event for variant %s (subject %s)",
                    event.kind,
                    event.variant_id,
                    event.subject_id,
                )
        return accepted, len(events) - accepted
