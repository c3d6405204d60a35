import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leadflow.models.base import Base, JSONType, TimestampMixin


class ExecutionStatus(str, enum.Enum):
    pending = "pending"
    sent = "sent"
    delivered = "delivered"
    opened = "opened"
    clicked = "clicked"
    replied = "replied"
    bounced = "bounced"
    failed = "failed"
    converted = "converted"


class EmailEventKind(str, enum.Enum):
    delivered = "delivered"
    opened = "opened"
    clicked = "clicked"
    replied = "replied"
    bounced = "bounced"
    unsubscribed = "unsubscribed"
    converted = "converted"


class Campaign(TimestampMixin, Base):
    __tablename__ = "campaigns"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="email")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")


class CampaignExecution(TimestampMixin, Base):
    """One campaign touch sent to one lead."""

    __tablename__ = "campaign_executions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lead_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[ExecutionStatus] = mapped_column(
        Enum(ExecutionStatus), nullable=False, default=ExecutionStatus.sent
    )
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    clicked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    replied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    revenue: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class EmailEvent(Base):
    __tablename__ = "email_events"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    execution_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("campaign_executions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[EmailEventKind] = mapped_column(Enum(EmailEventKind), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class CampaignAnalytics(Base):
    """Cached metrics snapshot, overwritten on every recomputation."""

    __tablename__ = "campaign_analytics"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    total_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_delivered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_opened: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_clicked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_replied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_bounced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_unsubscribed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_converted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    delivery_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    open_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    click_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    reply_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    bounce_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    unsubscribe_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    conversion_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_revenue_per_conversion: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_calculated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
