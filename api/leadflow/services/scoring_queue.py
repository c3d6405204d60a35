"""Background lead scoring.

A single asyncio worker drains a queue of (lead, algorithm) jobs, each in its
own session.  Domain errors (missing lead, inactive algorithm) are final;
anything else is retried with exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.errors import LeadFlowError
from leadflow.services.scoring import ScoringService

logger = logging.getLogger(__name__)


@dataclass
class ScoringJob:
    lead_id: uuid.UUID
    algorithm_id: uuid.UUID
    attempt: int = 0


class ScoringQueue:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self.session_factory = session_factory
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._queue: asyncio.Queue[ScoringJob] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self.completed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, lead_id: uuid.UUID, algorithm_id: uuid.UUID) -> None:
        self._queue.put_nowait(ScoringJob(lead_id=lead_id, algorithm_id=algorithm_id))
        logger.debug("Scoring job queued for lead %s", lead_id)

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="scoring-queue")
        logger.info("Scoring queue started")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Scoring queue stopped (%d completed, %d failed)", self.completed, self.failed)

    async def join(self) -> None:
        """Wait until every queued job, retries included, has finished."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
            finally:
                self._queue.task_done()

    async def _process(self, job: ScoringJob) -> None:
        while True:
            try:
                await self._score(job)
                self.completed += 1
                return
            except LeadFlowError as exc:
                self.failed += 1
                logger.warning("Scoring lead %s failed permanently: %s", job.lead_id, exc)
                return
            except Exception:
                if job.attempt >= self.max_retries:
                    self.failed += 1
                    logger.exception(
                        "Scoring lead %s failed after %d attempts", job.lead_id, job.attempt + 1
                    )
                    return
                delay = self.base_delay * (2 ** job.attempt)
                job.attempt += 1
                logger.warning(
                    "Scoring lead %s failed, retry %d/%d in %.1fs",
                    job.lead_id,
                    job.attempt,
                    self.max_retries,
                    delay,
                )
                await asyncio.sleep(delay)

    async def _score(self, job: ScoringJob) -> None:
        async with self.session_factory() as db:
            try:
                await ScoringService(db).score_lead(job.lead_id, job.algorithm_id, update_lead=True)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
