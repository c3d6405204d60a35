import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Index, String, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leadflow.models.base import Base


class EventKind(str, enum.Enum):
    assigned = "assigned"
    impression = "impression"
    click = "click"
    conversion = "conversion"
    revenue = "revenue"


class ExperimentEvent(Base):
    """Append-only ledger of assignments and tracked events."""

    __tablename__ = "experiment_events"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    experiment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("experiments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    variant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("experiment_variants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subject_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    kind: Mapped[EventKind] = mapped_column(Enum(EventKind), nullable=False)
    value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        # At most one assignment per (experiment, subject): the insert-if-absent guard.
        Index(
            "uq_experiment_events_assignment",
            "experiment_id",
            "subject_id",
            unique=True,
            postgresql_where=text("kind = 'assigned'"),
            sqlite_where=text("kind = 'assigned'"),
        ),
    )
