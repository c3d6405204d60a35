"""Campaign rate metrics derived from raw execution counts."""

from __future__ import annotations

from typing import Any

COUNT_FIELDS = (
    "total_sent",
    "total_delivered",
    "total_opened",
    "total_clicked",
    "total_replied",
    "total_bounced",
    "total_unsubscribed",
    "total_converted",
)


def safe_rate(numerator: float, denominator: float) -> float:
    """numerator / denominator as a percentage; 0 when the denominator is 0."""
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 2)


def compute_rates(counts: dict[str, Any]) -> dict[str, Any]:
    """Derive the campaign rate fields from execution totals.

    ``counts`` carries the ``COUNT_FIELDS`` totals and ``total_revenue``.
    The returned dict has the totals followed by the eight percentage rates
    and the average revenue per conversion (currency, not a percentage).
    """
    sent = counts.get("total_sent", 0)
    delivered = counts.get("total_delivered", 0)
    opened = counts.get("total_opened", 0)
    converted = counts.get("total_converted", 0)
    revenue = float(counts.get("total_revenue") or 0.0)

    metrics = {field: int(counts.get(field, 0) or 0) for field in COUNT_FIELDS}
    metrics["total_revenue"] = round(revenue, 2)
    metrics.update(
        {
            "delivery_rate": safe_rate(delivered, sent),
            "open_rate": safe_rate(opened, delivered),
            "click_rate": safe_rate(counts.get("total_clicked", 0), opened),
            "reply_rate": safe_rate(counts.get("total_replied", 0), delivered),
            "bounce_rate": safe_rate(counts.get("total_bounced", 0), sent),
            "unsubscribe_rate": safe_rate(counts.get("total_unsubscribed", 0), delivered),
            "conversion_rate": safe_rate(converted, delivered),
            "avg_revenue_per_conversion": round(revenue / converted, 2) if converted > 0 else 0.0,
        }
    )
    return metrics
