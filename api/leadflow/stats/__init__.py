"""LeadFlow statistics core.

Public API:
- standard_normal_cdf / probit: normal distribution primitives
- pooled_z_test: two-proportion z-test with pooled variance
- confidence_interval: Wald interval for a conversion rate
- select_variant: traffic-weighted variant selection
- evaluate_variants: significance, winner and recommended action
- compute_rates: campaign rate metrics with guarded division
"""

from leadflow.stats.allocation import draw_percentage, select_variant
from leadflow.stats.frequentist import (
    confidence_interval,
    pooled_z_test,
    probit,
    standard_normal_cdf,
)
from leadflow.stats.rates import compute_rates, safe_rate
from leadflow.stats.significance import evaluate_variants

__all__ = [
    "draw_percentage",
    "select_variant",
    "confidence_interval",
    "pooled_z_test",
    "probit",
    "standard_normal_cdf",
    "compute_rates",
    "safe_rate",
    "evaluate_variants",
]
