"""Significance evaluation and recommendation for two-variant tests.

Takes the denormalized variant counters, runs the pooled z-test once the
sample-size gate is passed, and turns the result into a winner (if any) and
a plain-English recommended action.  "Not enough data yet" is a normal
result here, not an exception.
"""

from __future__ import annotations

from typing import Any

from leadflow.core.errors import InsufficientDataError, UnsupportedVariantCount
from leadflow.stats.frequentist import confidence_interval, pooled_z_test

PROMISING_SIGNIFICANCE = 80.0

INSUFFICIENT_DATA = "Continue test - insufficient data"
NOT_CONCLUSIVE = "Continue test - not enough data for conclusive results"
PROMISING = "Test showing promising results but needs more data"
INCONSISTENT_COUNTERS = "Continue test - inconsistent counters"


def summarize_variant(variant: dict[str, Any]) -> dict[str, Any]:
    """Per-variant counters plus derived rates (percent, 2 dp)."""
    impressions = variant.get("impressions", 0)
    conversions = variant.get("conversions", 0)
    revenue = variant.get("revenue", 0.0)

    conversion_rate = conversions / impressions * 100 if impressions > 0 else 0.0
    revenue_per_conversion = revenue / conversions if conversions > 0 else 0.0

    return {
        "id": variant["id"],
        "name": variant["name"],
        "impressions": impressions,
        "clicks": variant.get("clicks", 0),
        "conversions": conversions,
        "revenue": revenue,
        "conversion_rate": round(conversion_rate, 2),
        "revenue_per_conversion": round(revenue_per_conversion, 2),
        "confidence": None,
    }


def evaluate_variants(
    variants: list[dict[str, Any]],
    confidence_level: float,
    min_sample_size: int,
) -> dict[str, Any]:
    """Evaluate a two-variant test from its counters.

    Parameters
    ----------
    variants : list[dict]
        Exactly two dicts with ``id``, ``name``, ``impressions``,
        ``clicks``, ``conversions`` and ``revenue``, in display order.
    confidence_level : float
        Required significance in percent before a winner is declared.
    min_sample_size : int
        Impressions each variant needs before any test is run.

    Returns
    -------
    dict
        variants, winner, statistical_significance, z_score, p_value,
        recommended_action
    """
    if len(variants) != 2:
        raise UnsupportedVariantCount(
            f"Significance testing supports exactly 2 variants, got {len(variants)}"
        )

    summaries = [summarize_variant(v) for v in variants]
    result: dict[str, Any] = {
        "variants": summaries,
        "winner": None,
        "statistical_significance": 0.0,
        "z_score": None,
        "p_value": None,
        "recommended_action": INSUFFICIENT_DATA,
    }

    if any(v["impressions"] < min_sample_size for v in summaries):
        return result

    inconsistent = [v["name"] for v in summaries if v["conversions"] > v["impressions"]]
    if inconsistent:
        result["recommended_action"] = (
            f"{INCONSISTENT_COUNTERS}: {', '.join(inconsistent)} "
            "recorded more conversions than impressions"
        )
        return result

    control, treatment = summaries
    try:
        test = pooled_z_test(
            control["conversions"],
            control["impressions"],
            treatment["conversions"],
            treatment["impressions"],
        )
    except InsufficientDataError:
        # Only reachable with min_sample_size == 0 and an empty arm.
        return result

    significance = (1 - test["p_value"]) * 100
    result["z_score"] = round(test["z_score"], 4)
    result["p_value"] = round(test["p_value"], 6)
    result["statistical_significance"] = round(significance, 2)

    rate_a = control["conversions"] / control["impressions"]
    rate_b = treatment["conversions"] / treatment["impressions"]

    if significance >= confidence_level:
        better = treatment if rate_b > rate_a else control
        baseline = min(rate_a, rate_b)
        improvement = abs(rate_b - rate_a) / baseline * 100 if baseline > 0 else None
        result["winner"] = {
            "variant_id": better["id"],
            "variant_name": better["name"],
            "significance": result["statistical_significance"],
            "improvement": round(improvement, 2) if improvement is not None else None,
        }
        result["recommended_action"] = (
            f"{better['name']} is significantly better. Implement this variant."
        )
    elif significance >= PROMISING_SIGNIFICANCE:
        result["recommended_action"] = PROMISING
    else:
        result["recommended_action"] = NOT_CONCLUSIVE

    for summary in summaries:
        summary["confidence"] = confidence_interval(
            summary["conversions"], summary["impressions"], confidence_level
        )

    return result
