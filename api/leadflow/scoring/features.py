"""Feature extraction for lead scoring.

Each producer maps raw lead attributes to a 0-100 signal (or a count, flag
or list).  A producer whose source data is missing leaves its feature out
of the vector entirely; absence lowers confidence, never the score.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

FEATURE_NAMES = frozenset(
    {
        # Company
        "company_size",
        "industry_score",
        "revenue_estimate",
        "tech_stack",
        # Contact
        "seniority_level",
        "department_relevance",
        "contact_quality",
        # Engagement
        "email_engagement",
        "website_visits",
        "content_downloads",
        # Behavioral
        "response_time",
        "buying_intent",
        # Historical
        "past_conversions",
        "campaign_interactions",
        "form_submissions",
    }
)

HIGH_VALUE_INDUSTRIES = ("software", "saas", "technology", "fintech", "healthcare", "finance")
MEDIUM_VALUE_INDUSTRIES = ("retail", "manufacturing", "consulting", "marketing", "education")

FREE_EMAIL_PROVIDERS = frozenset({"gmail", "yahoo", "hotmail", "outlook", "aol", "icloud"})

# Engagement tracking is not wired to a provider yet; neutral constants.
EMAIL_ENGAGEMENT_PLACEHOLDER = 50
RESPONSE_TIME_PLACEHOLDER = 50

RECENT_ACTIVITY_WINDOW = timedelta(days=7)

# Written by the platform itself; never counted as lead engagement.
SYSTEM_ACTIVITY_TYPES = frozenset({"custom_score_calculated", "ab_test_assigned"})


@dataclass
class ActivityRecord:
    type: str
    created_at: datetime


@dataclass
class LeadProfile:
    """Read-only view of the lead attributes the extractors consume."""

    email: str | None = None
    job_title: str | None = None
    industry: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    website: str | None = None
    employee_count: float | None = None
    annual_revenue: float | None = None
    technologies: list[str] | None = None
    campaign_count: int = 0
    converted_count: int = 0
    has_form_submission: bool = False
    activities: list[ActivityRecord] = field(default_factory=list)


# ----------------------------------------------------------------------
# Company
# ----------------------------------------------------------------------

def company_size_score(employee_count: float) -> int:
    if employee_count >= 1000:
        return 100
    if employee_count >= 500:
        return 85
    if employee_count >= 200:
        return 70
    if employee_count >= 50:
        return 55
    if employee_count >= 10:
        return 40
    return 25


def revenue_score(annual_revenue: float) -> int:
    if annual_revenue >= 100_000_000:
        return 100
    if annual_revenue >= 50_000_000:
        return 85
    if annual_revenue >= 10_000_000:
        return 70
    if annual_revenue >= 1_000_000:
        return 55
    if annual_revenue >= 100_000:
        return 40
    return 25


def industry_score(industry: str) -> int:
    industry_lower = industry.lower()
    if any(name in industry_lower for name in HIGH_VALUE_INDUSTRIES):
        return 90
    if any(name in industry_lower for name in MEDIUM_VALUE_INDUSTRIES):
        return 70
    return 50


# ----------------------------------------------------------------------
# Contact
# ----------------------------------------------------------------------

def seniority_score(job_title: str) -> int:
    title = job_title.lower()
    if "ceo" in title or "founder" in title or ("president" in title and "vice" not in title):
        return 100
    if "vp" in title or "vice president" in title:
        return 90
    if "director" in title:
        return 80
    if "manager" in title or "head" in title:
        return 70
    if "lead" in title or "senior" in title:
        return 60
    return 40


def department_relevance_score(job_title: str) -> int:
    title = job_title.lower()
    if "marketing" in title or "sales" in title or "business" in title:
        return 90
    if "operations" in title or "strategy" in title:
        return 80
    if "product" in title or "technology" in title:
        return 70
    return 50


def contact_quality_score(profile: LeadProfile) -> int:
    quality = 50
    domain = profile.email.rsplit("@", 1)[-1].lower() if profile.email else ""
    if domain and domain.split(".", 1)[0] not in FREE_EMAIL_PROVIDERS:
        quality += 20
    if profile.linkedin_url:
        quality += 15
    if profile.website:
        quality += 10
    if profile.phone:
        quality += 5
    return min(100, quality)


# ----------------------------------------------------------------------
# Behavioral
# ----------------------------------------------------------------------

def buying_intent_score(profile: LeadProfile, now: datetime) -> int:
    intent = 30
    if profile.has_form_submission:
        intent += 40
    if profile.campaign_count > 2:
        intent += 20

    cutoff = now - RECENT_ACTIVITY_WINDOW
    recent = sum(
        1
        for a in profile.activities
        if a.type not in SYSTEM_ACTIVITY_TYPES and _as_utc(a.created_at) > cutoff
    )
    intent += min(30, recent * 5)
    return min(100, intent)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _count_activities(profile: LeadProfile, activity_type: str) -> int:
    return sum(1 for a in profile.activities if a.type == activity_type)


def extract_features(profile: LeadProfile, now: datetime | None = None) -> dict[str, Any]:
    """Build the feature vector for one lead.

    Keys are a subset of ``FEATURE_NAMES``.
    """
    now = now or datetime.now(timezone.utc)
    features: dict[str, Any] = {}

    if profile.employee_count:
        features["company_size"] = company_size_score(profile.employee_count)
    if profile.annual_revenue:
        features["revenue_estimate"] = revenue_score(profile.annual_revenue)
    if isinstance(profile.technologies, (list, tuple)):
        features["tech_stack"] = [str(t) for t in profile.technologies]
    if profile.industry:
        features["industry_score"] = industry_score(profile.industry)

    if profile.job_title:
        features["seniority_level"] = seniority_score(profile.job_title)
        features["department_relevance"] = department_relevance_score(profile.job_title)
    if profile.email:
        features["contact_quality"] = contact_quality_score(profile)

    features["email_engagement"] = EMAIL_ENGAGEMENT_PLACEHOLDER
    features["website_visits"] = _count_activities(profile, "website_visit")
    features["content_downloads"] = _count_activities(profile, "content_download")

    features["response_time"] = RESPONSE_TIME_PLACEHOLDER
    features["buying_intent"] = buying_intent_score(profile, now)

    features["past_conversions"] = profile.converted_count
    features["campaign_interactions"] = profile.campaign_count
    features["form_submissions"] = profile.has_form_submission

    return features
