"""Weighted-sum scoring over an extracted feature vector.

Only weighted features that are present contribute, to both the numerator
and the denominator, so a missing signal does not drag the score down.
Completeness is reported separately as ``confidence``.
"""

from __future__ import annotations

from typing import Any

TOP_FACTORS = 5
REASONING_FACTORS = 3

CATEGORY_ACTIONS = {
    "hot": "High-priority lead - immediate outreach recommended.",
    "warm": "Moderate-priority lead - targeted nurturing recommended.",
    "cold": "Low-priority lead - automated nurturing or disqualification.",
}


def normalize_feature_value(value: Any) -> float:
    """Map a feature value onto [0, 1].

    bool -> 0/1, number -> value / 100 clamped, list -> min(1, len / 10).
    """
    # bool first: it is also an int.
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return min(1.0, max(0.0, value / 100))
    if isinstance(value, (list, tuple)):
        return min(1.0, len(value) / 10)
    return 0.0


def categorize(score: float, thresholds: dict[str, float]) -> str:
    if score >= thresholds["hot"]:
        return "hot"
    if score >= thresholds["warm"]:
        return "warm"
    return "cold"


def generate_reasoning(score: float, category: str, top_factors: list[dict[str, Any]]) -> str:
    reasoning = f"Lead scored {score}/100, categorized as {category}. "
    if top_factors:
        factors = ", ".join(
            f"{f['feature']} ({'+' if f['impact'] > 0 else ''}{f['impact']})" for f in top_factors
        )
        reasoning += f"Key factors: {factors}. "
    return reasoning + CATEGORY_ACTIONS[category]


def apply_algorithm(
    features: dict[str, Any],
    weights: dict[str, float],
    thresholds: dict[str, float],
    confidence_multiplier: float = 1.2,
) -> dict[str, Any]:
    """Score a feature vector with a weight map.

    Returns
    -------
    dict
        score (0-100, 2 dp), confidence (0-1, 2 dp), category, features,
        explanation {top_factors, reasoning}
    """
    weighted_sum = 0.0
    present_weight = 0.0
    present = 0
    impacts: list[tuple[float, dict[str, Any]]] = []

    for feature, weight in weights.items():
        value = features.get(feature)
        if value is None:
            continue
        present += 1
        impact = normalize_feature_value(value) * weight
        weighted_sum += impact
        present_weight += weight
        impacts.append((impact, {"feature": feature, "impact": round(impact, 2), "value": value}))

    score = round(weighted_sum / present_weight * 100, 2) if present_weight > 0 else 0.0
    category = categorize(score, thresholds)

    confidence = min(1.0, present / len(weights) * confidence_multiplier) if weights else 0.0

    impacts.sort(key=lambda item: abs(item[0]), reverse=True)
    ranked = [factor for _, factor in impacts]

    return {
        "score": score,
        "confidence": round(confidence, 2),
        "category": category,
        "features": features,
        "explanation": {
            "top_factors": ranked[:TOP_FACTORS],
            "reasoning": generate_reasoning(score, category, ranked[:REASONING_FACTORS]),
        },
    }
