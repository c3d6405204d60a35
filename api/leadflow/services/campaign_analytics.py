"""Campaign performance metrics, email-event tracking, and the dashboard."""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.errors import NotFoundError, ValidationError
from leadflow.models.campaign import (
    Campaign,
    CampaignAnalytics,
    CampaignExecution,
    EmailEvent,
    EmailEventKind,
    ExecutionStatus,
)
from leadflow.models.lead import Lead
from leadflow.stats.rates import compute_rates, safe_rate

logger = logging.getLogger(__name__)

ACTIVE_LEAD_STATUSES = ("campaign_active", "qualified", "scored")
DASHBOARD_CAMPAIGNS = 10

_converted = and_(CampaignExecution.converted_at.isnot(None), CampaignExecution.revenue > 0)


class CampaignAnalyticsService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def compute_metrics(self, campaign_id: uuid.UUID) -> dict[str, Any]:
        """Aggregate a campaign's executions and refresh its cached snapshot."""
        result = await self.db.execute(
            select(Campaign).where(Campaign.id == campaign_id).execution_options(populate_existing=True)
        )
        campaign = result.scalar_one_or_none()
        if campaign is None:
            raise NotFoundError("Campaign", campaign_id)

        counts = await self._execution_counts(campaign_id)
        metrics = compute_rates(counts)
        last_calculated = datetime.now(timezone.utc)

        await self._store(campaign_id, metrics, last_calculated)

        logger.info(
            "Campaign metrics calculated for %s: %d sent, %s%% open rate",
            campaign_id,
            metrics["total_sent"],
            metrics["open_rate"],
        )
        return {
            "campaign_id": campaign.id,
            "campaign_name": campaign.name,
            "type": campaign.type,
            **metrics,
            "created_at": campaign.created_at,
            "last_calculated": last_calculated,
        }

    async def compare(self, campaign_ids: list[uuid.UUID]) -> list[dict[str, Any]]:
        """Metrics for several campaigns, best conversion rate first."""
        if len(campaign_ids) < 2:
            raise ValidationError("Provide at least 2 campaign IDs for comparison")
        metrics = [await self.compute_metrics(cid) for cid in campaign_ids]
        return sorted(metrics, key=lambda m: m["conversion_rate"], reverse=True)

    async def track_email_event(
        self,
        execution_id: uuid.UUID,
        kind: EmailEventKind | str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append an email event and advance the execution it belongs to."""
        try:
            kind = EmailEventKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown email event kind: {kind!r}") from None

        execution = await self.db.get(CampaignExecution, execution_id)
        if execution is None:
            raise NotFoundError("Campaign execution", execution_id)

        revenue = 0.0
        if kind == EmailEventKind.converted:
            revenue = _conversion_revenue(metadata)

        self.db.add(EmailEvent(execution_id=execution_id, kind=kind, details=metadata))

        now = datetime.now(timezone.utc)
        if kind == EmailEventKind.delivered:
            if execution.status in (ExecutionStatus.pending, ExecutionStatus.sent):
                execution.status = ExecutionStatus.delivered
        elif kind == EmailEventKind.opened:
            execution.opened_at = execution.opened_at or now
            execution.status = ExecutionStatus.opened
        elif kind == EmailEventKind.clicked:
            execution.clicked_at = execution.clicked_at or now
            execution.status = ExecutionStatus.clicked
        elif kind == EmailEventKind.replied:
            execution.replied_at = execution.replied_at or now
            execution.status = ExecutionStatus.replied
        elif kind == EmailEventKind.bounced:
            execution.status = ExecutionStatus.bounced
        elif kind == EmailEventKind.converted:
            execution.converted_at = now
            execution.status = ExecutionStatus.converted
            execution.revenue = revenue

        await self.db.flush()
        logger.info("Email event tracked: %s for execution %s", kind.value, execution_id)

    async def dashboard(self) -> dict[str, Any]:
        total_leads = await self._scalar(select(func.count(Lead.id)))
        total_campaigns = await self._scalar(select(func.count(Campaign.id)))
        total_revenue = await self._scalar(select(func.coalesce(func.sum(CampaignExecution.revenue), 0.0)))
        average_score = await self._scalar(select(func.avg(Lead.score)))
        active_leads = await self._scalar(
            select(func.count(Lead.id)).where(Lead.status.in_(ACTIVE_LEAD_STATUSES))
        )
        total_conversions = await self._scalar(
            select(func.count(CampaignExecution.id)).where(_converted)
        )

        recent = await self.db.execute(
            select(Campaign.id).order_by(Campaign.created_at.desc()).limit(DASHBOARD_CAMPAIGNS)
        )
        campaign_performance = [await self.compute_metrics(cid) for cid in recent.scalars().all()]

        return {
            "overview": {
                "total_leads": total_leads,
                "total_campaigns": total_campaigns,
                "total_revenue": round(float(total_revenue), 2),
                "average_score": round(float(average_score or 0.0), 2),
                "conversion_rate": safe_rate(total_conversions, total_leads),
                "active_leads": active_leads,
            },
            "campaign_performance": campaign_performance,
            "lead_sources": await self._lead_sources(total_leads),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _execution_counts(self, campaign_id: uuid.UUID) -> dict[str, Any]:
        result = await self.db.execute(
            select(
                func.count(CampaignExecution.id),
                func.count(
                    case(
                        (
                            CampaignExecution.status.notin_((ExecutionStatus.failed, ExecutionStatus.bounced)),
                            1,
                        )
                    )
                ),
                func.count(CampaignExecution.opened_at),
                func.count(CampaignExecution.clicked_at),
                func.count(CampaignExecution.replied_at),
                func.count(case((CampaignExecution.status == ExecutionStatus.bounced, 1))),
                func.count(case((_converted, 1))),
                func.coalesce(func.sum(CampaignExecution.revenue), 0.0),
            ).where(CampaignExecution.campaign_id == campaign_id)
        )
        sent, delivered, opened, clicked, replied, bounced, converted, revenue = result.one()

        unsubscribed = await self._scalar(
            select(func.count(EmailEvent.id))
            .join(CampaignExecution, CampaignExecution.id == EmailEvent.execution_id)
            .where(
                CampaignExecution.campaign_id == campaign_id,
                EmailEvent.kind == EmailEventKind.unsubscribed,
            )
        )

        return {
            "total_sent": sent,
            "total_delivered": delivered,
            "total_opened": opened,
            "total_clicked": clicked,
            "total_replied": replied,
            "total_bounced": bounced,
            "total_unsubscribed": unsubscribed,
            "total_converted": converted,
            "total_revenue": revenue,
        }

    async def _store(self, campaign_id: uuid.UUID, metrics: dict[str, Any], last_calculated: datetime) -> None:
        """Upsert the cached snapshot keyed by campaign."""
        values = {**metrics, "last_calculated": last_calculated}
        row = await self._find_snapshot(campaign_id)
        if row is None:
            try:
                async with self.db.begin_nested():
                    self.db.add(CampaignAnalytics(campaign_id=campaign_id, **values))
                return
            except IntegrityError:
                row = await self._find_snapshot(campaign_id)
                if row is None:
                    raise

        for field, value in values.items():
            setattr(row, field, value)
        await self.db.flush()

    async def _find_snapshot(self, campaign_id: uuid.UUID) -> CampaignAnalytics | None:
        result = await self.db.execute(
            select(CampaignAnalytics).where(CampaignAnalytics.campaign_id == campaign_id)
        )
        return result.scalar_one_or_none()

    async def _lead_sources(self, total_leads: int) -> list[dict[str, Any]]:
        converted_leads = (
            select(CampaignExecution.lead_id.label("lead_id"), func.count(CampaignExecution.id).label("conversions"))
            .where(_converted)
            .group_by(CampaignExecution.lead_id)
            .subquery()
        )
        result = await self.db.execute(
            select(
                Lead.source,
                func.count(Lead.id),
                func.coalesce(func.sum(converted_leads.c.conversions), 0),
            )
            .outerjoin(converted_leads, converted_leads.c.lead_id == Lead.id)
            .group_by(Lead.source)
            .order_by(func.count(Lead.id).desc())
        )
        return [
            {
                "source": source,
                "count": count,
                "percentage": safe_rate(count, total_leads),
                "conversion_rate": safe_rate(conversions, count),
            }
            for source, count, conversions in result.all()
        ]

    async def _scalar(self, query) -> Any:
        result = await self.db.execute(query)
        return result.scalar() or 0


def _conversion_revenue(metadata: dict[str, Any] | None) -> float:
    raw = (metadata or {}).get("revenue") or 0
    try:
        revenue = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Conversion revenue must be a number, got {raw!r}") from None
    if not math.isfinite(revenue) or revenue < 0:
        raise ValidationError("Conversion revenue must be a finite, non-negative number")
    return revenue
