from leadflow.models.base import Base, JSONType, TimestampMixin
from leadflow.models.campaign import (
    Campaign,
    CampaignAnalytics,
    CampaignExecution,
    EmailEvent,
    EmailEventKind,
    ExecutionStatus,
)
from leadflow.models.event import EventKind, ExperimentEvent
from leadflow.models.experiment import Experiment, ExperimentStatus, Variant
from leadflow.models.experiment_result import ExperimentResult
from leadflow.models.lead import FormSubmission, Lead, LeadActivity
from leadflow.models.scoring import ScoringAlgorithm, ScoringResult

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "Campaign",
    "CampaignAnalytics",
    "CampaignExecution",
    "EmailEvent",
    "EmailEventKind",
    "ExecutionStatus",
    "EventKind",
    "ExperimentEvent",
    "Experiment",
    "ExperimentStatus",
    "Variant",
    "ExperimentResult",
    "FormSubmission",
    "Lead",
    "LeadActivity",
    "ScoringAlgorithm",
    "ScoringResult",
]
