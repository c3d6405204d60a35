"""Frequentist primitives for two-proportion A/B tests.

Standard normal CDF and its inverse, the pooled two-proportion z-test, and
the Wald confidence interval for a single conversion rate.  All functions
are pure and raise instead of returning NaN or infinity for degenerate
input.
"""

from __future__ import annotations

import math

from scipy import special

from leadflow.core.errors import DomainError, InsufficientDataError


def standard_normal_cdf(z: float) -> float:
    """Phi(z), the cumulative distribution of N(0, 1).

    ``scipy.special.ndtr`` stays accurate deep into both tails, so values
    such as z = -8 return a tiny positive probability rather than 0 through
    cancellation.
    """
    if not math.isfinite(z):
        raise DomainError(f"z must be finite, got {z!r}")
    return float(special.ndtr(z))


def probit(p: float) -> float:
    """Inverse of the standard normal CDF.

    Raises
    ------
    DomainError
        If ``p`` is not strictly between 0 and 1.
    """
    if not (0.0 < p < 1.0):
        raise DomainError(f"probit is defined on (0, 1), got {p!r}")
    return float(special.ndtri(p))


def _check_counts(conversions: int, impressions: int) -> None:
    if conversions < 0 or impressions < 0:
        raise DomainError("Counts must be non-negative")
    if conversions > impressions:
        raise DomainError("Conversions cannot exceed impressions")


def pooled_z_test(
    conversions_a: int,
    impressions_a: int,
    conversions_b: int,
    impressions_b: int,
) -> dict[str, float]:
    """Two-proportion z-test using the pooled conversion rate.

    ``p = (conv_a + conv_b) / (imp_a + imp_b)``,
    ``se = sqrt(p * (1 - p) * (1/imp_a + 1/imp_b))``,
    ``z = (rate_a - rate_b) / se`` and the two-tailed
    ``p_value = 2 * (1 - Phi(|z|))``.

    A positive z-score means group A converts better.

    Returns
    -------
    dict
        z_score, p_value
    """
    if impressions_a == 0 or impressions_b == 0:
        raise InsufficientDataError("Both groups need at least one impression")
    _check_counts(conversions_a, impressions_a)
    _check_counts(conversions_b, impressions_b)

    rate_a = conversions_a / impressions_a
    rate_b = conversions_b / impressions_b
    pooled = (conversions_a + conversions_b) / (impressions_a + impressions_b)
    se = math.sqrt(pooled * (1 - pooled) * (1 / impressions_a + 1 / impressions_b))

    # Pooled rate of 0 or 1: both groups are identical, nothing to test.
    if se == 0:
        return {"z_score": 0.0, "p_value": 1.0}

    z = (rate_a - rate_b) / se
    # sf(|z|) == 1 - Phi(|z|) without the cancellation.
    p_value = 2 * float(special.ndtr(-abs(z)))
    return {"z_score": z, "p_value": min(1.0, p_value)}


def confidence_interval(
    conversions: int,
    impressions: int,
    confidence_level: float,
) -> dict[str, float]:
    """Wald interval for a conversion rate, in percent.

    Bounds are rounded to two decimals and clamped to [0, 100].

    Parameters
    ----------
    conversions, impressions : int
        Observed counts.
    confidence_level : float
        Interval coverage in percent, e.g. 95.0.
    """
    if impressions == 0:
        raise InsufficientDataError("Confidence interval needs at least one impression")
    _check_counts(conversions, impressions)
    if not (0.0 < confidence_level < 100.0):
        raise DomainError(f"confidence_level must be in (0, 100), got {confidence_level!r}")

    p = conversions / impressions
    z = probit((1 + confidence_level / 100) / 2)
    margin = z * math.sqrt(p * (1 - p) / impressions)

    return {
        "lower": max(0.0, round((p - margin) * 100, 2)),
        "upper": min(100.0, round((p + margin) * 100, 2)),
    }
