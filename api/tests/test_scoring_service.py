"""Service-level tests for scoring algorithms, lead scoring and the background queue."""

import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from leadflow.core.errors import NotFoundError, StateError, ValidationError
from leadflow.models import (
    Campaign,
    CampaignExecution,
    FormSubmission,
    Lead,
    LeadActivity,
    ScoringResult,
)
from leadflow.scoring.config import ScoringAlgorithmConfig, Thresholds
from leadflow.services import scoring_queue
from leadflow.services.scoring import ScoringService
from leadflow.services.scoring_queue import ScoringQueue

WEIGHTS = {
    "company_size": 0.2,
    "industry_score": 0.15,
    "seniority_level": 0.2,
    "contact_quality": 0.1,
    "buying_intent": 0.2,
    "form_submissions": 0.15,
}


def _config(name="default", **kwargs):
    return ScoringAlgorithmConfig(name=name, weights=kwargs.pop("weights", WEIGHTS), **kwargs)


async def _lead(db, email="grace@acme.io", **kwargs):
    defaults = {
        "job_title": "VP Marketing",
        "industry": "Software",
        "enriched_data": {"company_info": {"employee_count": 1200, "revenue": 60_000_000}},
    }
    lead = Lead(email=email, **{**defaults, **kwargs})
    db.add(lead)
    await db.flush()
    return lead


# ======================================================================
# Algorithms
# ======================================================================


class TestAlgorithms:

    async def test_create(self, db):
        algorithm = await ScoringService(db).create_algorithm(_config())
        assert algorithm.is_active
        assert algorithm.thresholds == {"hot": 80.0, "warm": 60.0, "cold": 0.0}
        assert algorithm.confidence_multiplier == 1.2
        assert algorithm.created_at is not None

    async def test_duplicate_name(self, db):
        service = ScoringService(db)
        await service.create_algorithm(_config())
        with pytest.raises(ValidationError):
            await service.create_algorithm(_config())

    async def test_invalid_config_is_not_stored(self, db):
        service = ScoringService(db)
        with pytest.raises(ValidationError):
            await service.create_algorithm(_config(thresholds=Thresholds(hot=10, warm=20, cold=0)))
        assert await service.list_algorithms() == []

    async def test_list_counts_scored_leads(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config())
        await service.create_algorithm(_config(name="other"))
        lead = await _lead(db)
        await service.score_lead(lead.id, algorithm.id)

        listing = {a["name"]: a["leads_scored"] for a in await service.list_algorithms()}
        assert listing == {"default": 1, "other": 0}

    async def test_update_performance(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config())
        updated = await service.update_performance(algorithm.id, accuracy=0.91, f1_score=0.88)
        assert updated.accuracy == pytest.approx(0.91)
        assert updated.f1_score == pytest.approx(0.88)
        assert updated.precision is None

    async def test_performance_bounds(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config())
        with pytest.raises(ValidationError):
            await service.update_performance(algorithm.id, recall=1.5)
        with pytest.raises(ValidationError):
            await service.update_performance(algorithm.id, auc=0.5)

    async def test_unknown_algorithm(self, db):
        with pytest.raises(NotFoundError):
            await ScoringService(db).get_algorithm(uuid.uuid4())


# ======================================================================
# Lead scoring
# ======================================================================


class TestScoreLead:

    async def test_score_lead(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config())
        lead = await _lead(db)

        result = await service.score_lead(lead.id, algorithm.id)

        assert 0 <= result["score"] <= 100
        assert result["features"]["company_size"] == 100
        assert result["features"]["seniority_level"] == 90
        assert result["category"] in {"hot", "warm", "cold"}
        assert result["confidence"] == 1.0
        assert result["explanation"]["reasoning"].startswith(f"Lead scored {result['score']}/100")

        activity = await db.execute(
            select(LeadActivity).where(
                LeadActivity.lead_id == lead.id, LeadActivity.type == "custom_score_calculated"
            )
        )
        assert activity.scalar_one().details["algorithm_name"] == "default"

    async def test_profile_reads_history(self, db):
        service = ScoringService(db)
        lead = await _lead(db)
        db.add(FormSubmission(lead_id=lead.id, form_name="demo-request"))
        campaigns = [Campaign(name=f"c{i}") for i in range(3)]
        db.add_all(campaigns)
        await db.flush()
        for campaign in campaigns:
            db.add(CampaignExecution(campaign_id=campaign.id, lead_id=lead.id))
        await db.flush()
        converted = CampaignExecution(campaign_id=campaigns[0].id, lead_id=lead.id, revenue=500.0)
        converted.converted_at = func.now()
        db.add(converted)
        await db.flush()

        result = await db.execute(select(Lead).where(Lead.id == lead.id).execution_options(populate_existing=True))
        profile = await service.build_profile(result.scalar_one())
        assert profile.campaign_count == 3
        assert profile.converted_count == 1
        assert profile.has_form_submission
        assert profile.employee_count == 1200

    async def test_rescoring_overwrites(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config())
        lead = await _lead(db)

        await service.score_lead(lead.id, algorithm.id)
        await service.score_lead(lead.id, algorithm.id)

        count = await db.execute(select(func.count(ScoringResult.id)).where(ScoringResult.lead_id == lead.id))
        assert count.scalar() == 1

    async def test_rescoring_is_stable(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config(name="intent", weights={"buying_intent": 1.0}))
        lead = await _lead(db, enriched_data=None)

        scores = [(await service.score_lead(lead.id, algorithm.id))["score"] for _ in range(4)]
        assert scores == [30.0] * 4

    async def test_string_enrichment_values(self, db):
        service = ScoringService(db)
        lead = await _lead(
            db,
            enriched_data={
                "company_info": {"employee_count": "250", "revenue": "n/a", "technologies": "python,react"}
            },
        )
        result = await db.execute(select(Lead).where(Lead.id == lead.id))
        profile = await service.build_profile(result.scalar_one())
        assert profile.employee_count == 250
        assert profile.annual_revenue is None
        assert profile.technologies is None

        algorithm = await service.create_algorithm(_config())
        scored = await service.score_lead(lead.id, algorithm.id)
        assert scored["features"]["company_size"] == 70
        assert "tech_stack" not in scored["features"]
        assert "revenue_estimate" not in scored["features"]

    async def test_non_finite_enrichment_values_are_absent(self, db):
        service = ScoringService(db)
        lead = await _lead(
            db,
            enriched_data={"company_info": {"employee_count": "nan", "revenue": "inf"}},
        )
        result = await db.execute(select(Lead).where(Lead.id == lead.id))
        profile = await service.build_profile(result.scalar_one())
        assert profile.employee_count is None
        assert profile.annual_revenue is None

        algorithm = await service.create_algorithm(_config())
        scored = await service.score_lead(lead.id, algorithm.id)
        assert "company_size" not in scored["features"]
        assert "revenue_estimate" not in scored["features"]

    async def test_update_lead_sets_headline_score(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config())
        lead = await _lead(db)

        await service.score_lead(lead.id, algorithm.id)
        assert lead.score is None
        assert lead.status == "new"

        result = await service.score_lead(lead.id, algorithm.id, update_lead=True)
        assert lead.score == result["score"]
        assert lead.status == "scored"

    async def test_missing_lead(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config())
        with pytest.raises(NotFoundError):
            await service.score_lead(uuid.uuid4(), algorithm.id)

    async def test_inactive_algorithm(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config())
        algorithm.is_active = False
        await db.flush()
        lead = await _lead(db)
        with pytest.raises(StateError):
            await service.score_lead(lead.id, algorithm.id)

    async def test_batch_skips_failures(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config())
        good = [await _lead(db, email=f"lead{i}@acme.io") for i in range(2)]
        missing = uuid.uuid4()

        results = await service.batch_score([good[0].id, missing, good[1].id], algorithm.id)

        assert set(results) == {good[0].id, good[1].id}
        count = await db.execute(select(func.count(ScoringResult.id)))
        assert count.scalar() == 2

    async def test_batch_unknown_algorithm_fails_whole_call(self, db):
        lead = await _lead(db)
        with pytest.raises(NotFoundError):
            await ScoringService(db).batch_score([lead.id], uuid.uuid4())

    async def test_lead_scores_recategorized(self, db):
        service = ScoringService(db)
        algorithm = await service.create_algorithm(_config())
        lead = await _lead(db)
        result = await service.score_lead(lead.id, algorithm.id)

        algorithm.thresholds = {"hot": 101.0, "warm": 100.5, "cold": 0.0}
        await db.flush()

        scores = await service.get_lead_scores(lead.id)
        assert len(scores) == 1
        assert scores[0]["score"] == result["score"]
        assert scores[0]["category"] == "cold"


# ======================================================================
# Background queue
# ======================================================================


class TestScoringQueue:

    async def _seed(self, session_factory):
        async with session_factory() as db:
            algorithm = await ScoringService(db).create_algorithm(_config())
            lead = await _lead(db)
            await db.commit()
            return lead.id, algorithm.id

    async def test_scores_queued_lead(self, session_factory):
        lead_id, algorithm_id = await self._seed(session_factory)
        queue = ScoringQueue(session_factory, max_retries=2, base_delay=0)
        queue.start()
        queue.enqueue(lead_id, algorithm_id)
        await asyncio.wait_for(queue.join(), timeout=5)
        await queue.stop()

        assert queue.completed == 1
        async with session_factory() as db:
            count = await db.execute(select(func.count(ScoringResult.id)).where(ScoringResult.lead_id == lead_id))
            assert count.scalar() == 1
            lead = await db.get(Lead, lead_id)
            assert lead.score is not None
            assert lead.status == "scored"

    async def test_domain_errors_are_not_retried(self, session_factory):
        _, algorithm_id = await self._seed(session_factory)
        queue = ScoringQueue(session_factory, max_retries=3, base_delay=0)
        queue.start()
        queue.enqueue(uuid.uuid4(), algorithm_id)
        await asyncio.wait_for(queue.join(), timeout=5)
        await queue.stop()

        assert queue.failed == 1
        assert queue.completed == 0

    async def test_transient_errors_are_retried(self, session_factory, monkeypatch):
        calls = []

        class FlakyService:
            def __init__(self, db):
                pass

            async def score_lead(self, lead_id, algorithm_id, update_lead=False):
                calls.append(lead_id)
                if len(calls) < 3:
                    raise ConnectionError("database went away")
                return {}

        monkeypatch.setattr(scoring_queue, "ScoringService", FlakyService)
        queue = ScoringQueue(session_factory, max_retries=3, base_delay=0)
        queue.start()
        queue.enqueue(uuid.uuid4(), uuid.uuid4())
        await asyncio.wait_for(queue.join(), timeout=5)
        await queue.stop()

        assert len(calls) == 3
        assert queue.completed == 1

    async def test_retries_are_bounded(self, session_factory, monkeypatch):
        calls = []

        class BrokenService:
            def __init__(self, db):
                pass

            async def score_lead(self, lead_id, algorithm_id, update_lead=False):
                calls.append(lead_id)
                raise ConnectionError("database went away")

        monkeypatch.setattr(scoring_queue, "ScoringService", BrokenService)
        queue = ScoringQueue(session_factory, max_retries=2, base_delay=0)
        queue.start()
        queue.enqueue(uuid.uuid4(), uuid.uuid4())
        await asyncio.wait_for(queue.join(), timeout=5)
        await queue.stop()

        assert len(calls) == 3
        assert queue.failed == 1
