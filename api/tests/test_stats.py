"""Tests for the statistical core.

Tests cover:
- Normal CDF / probit primitives and their domains
- Pooled two-proportion z-test properties
- Wald confidence intervals
- Traffic-weighted variant selection
- Two-variant significance evaluation and recommendations
- Campaign rate derivation
"""

import math
from dataclasses import dataclass

import numpy as np
import pytest

from leadflow.core.errors import DomainError, InsufficientDataError, UnsupportedVariantCount
from leadflow.stats.allocation import draw_percentage, select_variant
from leadflow.stats.frequentist import (
    confidence_interval,
    pooled_z_test,
    probit,
    standard_normal_cdf,
)
from leadflow.stats.rates import compute_rates, safe_rate
from leadflow.stats.significance import (
    INCONSISTENT_COUNTERS,
    INSUFFICIENT_DATA,
    NOT_CONCLUSIVE,
    PROMISING,
    evaluate_variants,
)


@dataclass
class Arm:
    name: str
    traffic_percent: float


def _variant(vid, name, impressions, conversions, clicks=0, revenue=0.0):
    return {
        "id": vid,
        "name": name,
        "impressions": impressions,
        "clicks": clicks,
        "conversions": conversions,
        "revenue": revenue,
    }


# ======================================================================
# Normal distribution primitives
# ======================================================================


class TestNormalPrimitives:

    def test_cdf_at_zero(self):
        assert standard_normal_cdf(0.0) == pytest.approx(0.5, abs=1e-12)

    def test_cdf_known_values(self):
        assert standard_normal_cdf(1.96) == pytest.approx(0.9750021, abs=1e-6)
        assert standard_normal_cdf(-1.0) == pytest.approx(0.1586553, abs=1e-6)

    def test_cdf_extreme_tail_is_positive(self):
        """Deep tails keep precision instead of collapsing to 0."""
        value = standard_normal_cdf(-8.0)
        assert 0.0 < value < 1e-14

    def test_cdf_symmetry(self):
        for z in (0.3, 1.0, 2.5):
            assert standard_normal_cdf(z) + standard_normal_cdf(-z) == pytest.approx(1.0, abs=1e-12)

    def test_cdf_rejects_non_finite(self):
        with pytest.raises(DomainError):
            standard_normal_cdf(math.nan)
        with pytest.raises(DomainError):
            standard_normal_cdf(math.inf)

    def test_probit_inverts_cdf(self):
        for p in (0.025, 0.5, 0.8, 0.975):
            assert standard_normal_cdf(probit(p)) == pytest.approx(p, abs=1e-9)

    def test_probit_known_value(self):
        assert probit(0.975) == pytest.approx(1.959964, abs=1e-6)

    @pytest.mark.parametrize("p", [0.0, 1.0, -0.1, 1.5])
    def test_probit_domain(self, p):
        with pytest.raises(DomainError):
            probit(p)

    def test_domain_error_is_value_error(self):
        with pytest.raises(ValueError):
            probit(2.0)


# ======================================================================
# Pooled z-test
# ======================================================================


class TestPooledZTest:

    def test_known_scenario(self):
        result = pooled_z_test(150, 1000, 200, 1000)
        assert abs(result["z_score"]) == pytest.approx(2.9424, abs=1e-3)
        assert result["p_value"] == pytest.approx(0.00326, abs=5e-5)

    def test_identical_rates_give_zero_z(self):
        result = pooled_z_test(50, 1000, 50, 1000)
        assert result["z_score"] == pytest.approx(0.0)
        assert result["p_value"] == pytest.approx(1.0)

    def test_zero_variance_is_not_an_error(self):
        """All-zero or all-converted pools have no variance: z = 0, p = 1."""
        assert pooled_z_test(0, 100, 0, 100) == {"z_score": 0.0, "p_value": 1.0}
        assert pooled_z_test(100, 100, 100, 100) == {"z_score": 0.0, "p_value": 1.0}

    def test_swapping_arms_flips_sign_only(self):
        ab = pooled_z_test(30, 400, 45, 420)
        ba = pooled_z_test(45, 420, 30, 400)
        assert ab["z_score"] == pytest.approx(-ba["z_score"])
        assert ab["p_value"] == pytest.approx(ba["p_value"])

    def test_p_value_in_unit_interval(self):
        for counts in [(1, 10, 9, 10), (5, 500, 6, 500), (0, 10, 10, 10)]:
            p = pooled_z_test(*counts)["p_value"]
            assert 0.0 <= p <= 1.0

    def test_zero_impressions_raises(self):
        with pytest.raises(InsufficientDataError):
            pooled_z_test(0, 0, 5, 100)

    def test_conversions_above_impressions_rejected(self):
        with pytest.raises(DomainError):
            pooled_z_test(11, 10, 1, 10)


# ======================================================================
# Confidence intervals
# ======================================================================


class TestConfidenceInterval:

    def test_no_conversions_collapses_to_zero(self):
        assert confidence_interval(0, 100, 95) == {"lower": 0.0, "upper": 0.0}

    def test_interval_contains_rate(self):
        ci = confidence_interval(150, 1000, 95)
        assert ci["lower"] < 15.0 < ci["upper"]
        assert ci["lower"] == pytest.approx(12.79, abs=0.01)
        assert ci["upper"] == pytest.approx(17.21, abs=0.01)

    def test_higher_confidence_is_wider(self):
        narrow = confidence_interval(40, 400, 90)
        wide = confidence_interval(40, 400, 99)
        assert wide["upper"] - wide["lower"] > narrow["upper"] - narrow["lower"]

    def test_bounds_are_clamped(self):
        ci = confidence_interval(1, 3, 99)
        assert ci["lower"] >= 0.0
        assert ci["upper"] <= 100.0

    def test_zero_impressions_raises(self):
        with pytest.raises(InsufficientDataError):
            confidence_interval(0, 0, 95)

    @pytest.mark.parametrize("level", [0, 100, -5, 150])
    def test_level_domain(self, level):
        with pytest.raises(DomainError):
            confidence_interval(10, 100, level)


# ======================================================================
# Traffic allocation
# ======================================================================


class TestSelectVariant:

    def test_cumulative_walk(self):
        arms = [Arm("a", 50), Arm("b", 30), Arm("c", 20)]
        assert select_variant(arms, 0.0).name == "a"
        assert select_variant(arms, 50.0).name == "a"
        assert select_variant(arms, 50.01).name == "b"
        assert select_variant(arms, 80.0).name == "b"
        assert select_variant(arms, 99.99).name == "c"

    def test_draw_beyond_total_falls_to_last_open_variant(self):
        arms = [Arm("a", 33.33), Arm("b", 33.33), Arm("c", 33.33)]
        assert select_variant(arms, 99.995).name == "c"

    def test_zero_traffic_never_selected(self):
        arms = [Arm("a", 0), Arm("b", 100), Arm("c", 0)]
        for draw in (0.0, 0.5, 50.0, 99.999, 100.0):
            assert select_variant(arms, draw).name == "b"

    def test_empty_list_raises(self):
        with pytest.raises(ValueError):
            select_variant([], 10.0)

    def test_draw_range(self):
        rng = np.random.default_rng(7)
        draws = [draw_percentage(rng) for _ in range(1000)]
        assert all(0.0 <= d < 100.0 for d in draws)

    def test_frequencies_converge_to_split(self):
        rng = np.random.default_rng(42)
        arms = [Arm("a", 50), Arm("b", 30), Arm("c", 20)]
        n = 20_000
        counts = {"a": 0, "b": 0, "c": 0}
        for _ in range(n):
            counts[select_variant(arms, draw_percentage(rng)).name] += 1

        expected = {"a": 0.5, "b": 0.3, "c": 0.2}
        chi_square = sum((counts[k] - n * p) ** 2 / (n * p) for k, p in expected.items())
        # 2 degrees of freedom; 13.8 is the 0.1% critical value.
        assert chi_square < 13.8


# ======================================================================
# Significance evaluation
# ======================================================================


class TestEvaluateVariants:

    def test_clear_winner(self):
        result = evaluate_variants(
            [_variant("a", "A", 1000, 150), _variant("b", "B", 1000, 200)],
            confidence_level=95.0,
            min_sample_size=100,
        )
        assert result["statistical_significance"] == pytest.approx(99.67, abs=0.01)
        assert result["winner"]["variant_id"] == "b"
        assert result["winner"]["variant_name"] == "B"
        assert result["winner"]["improvement"] == pytest.approx(33.33, abs=0.01)
        assert result["recommended_action"] == "B is significantly better. Implement this variant."

    def test_winner_can_be_control(self):
        result = evaluate_variants(
            [_variant("a", "A", 1000, 200), _variant("b", "B", 1000, 150)],
            confidence_level=95.0,
            min_sample_size=100,
        )
        assert result["winner"]["variant_id"] == "a"

    def test_below_min_sample_size(self):
        result = evaluate_variants(
            [_variant("a", "A", 99, 10), _variant("b", "B", 5000, 900)],
            confidence_level=95.0,
            min_sample_size=100,
        )
        assert result["winner"] is None
        assert result["statistical_significance"] == 0.0
        assert result["z_score"] is None
        assert result["recommended_action"] == INSUFFICIENT_DATA
        assert all(v["confidence"] is None for v in result["variants"])

    def test_not_conclusive(self):
        result = evaluate_variants(
            [_variant("a", "A", 1000, 100), _variant("b", "B", 1000, 102)],
            confidence_level=95.0,
            min_sample_size=100,
        )
        assert result["winner"] is None
        assert result["statistical_significance"] < 80
        assert result["recommended_action"] == NOT_CONCLUSIVE

    def test_promising(self):
        # z ~ 1.5 -> significance ~ 86.6
        result = evaluate_variants(
            [_variant("a", "A", 1000, 100), _variant("b", "B", 1000, 122)],
            confidence_level=95.0,
            min_sample_size=100,
        )
        assert 80 <= result["statistical_significance"] < 95
        assert result["winner"] is None
        assert result["recommended_action"] == PROMISING

    def test_zero_baseline_has_no_improvement(self):
        result = evaluate_variants(
            [_variant("a", "A", 500, 0), _variant("b", "B", 500, 40)],
            confidence_level=95.0,
            min_sample_size=100,
        )
        assert result["winner"]["variant_id"] == "b"
        assert result["winner"]["improvement"] is None

    def test_variant_summaries(self):
        result = evaluate_variants(
            [
                _variant("a", "A", 1000, 150, clicks=300, revenue=1500.0),
                _variant("b", "B", 1000, 200, clicks=320, revenue=1000.0),
            ],
            confidence_level=95.0,
            min_sample_size=100,
        )
        a, b = result["variants"]
        assert a["conversion_rate"] == 15.0
        assert a["revenue_per_conversion"] == 10.0
        assert b["revenue_per_conversion"] == 5.0
        assert a["confidence"]["lower"] < 15.0 < a["confidence"]["upper"]

    @pytest.mark.parametrize("count", [1, 3])
    def test_requires_exactly_two_variants(self, count):
        variants = [_variant(str(i), str(i), 1000, 100) for i in range(count)]
        with pytest.raises(UnsupportedVariantCount):
            evaluate_variants(variants, 95.0, 100)

    def test_empty_arm_with_no_minimum(self):
        result = evaluate_variants(
            [_variant("a", "A", 0, 0), _variant("b", "B", 10, 1)],
            confidence_level=95.0,
            min_sample_size=0,
        )
        assert result["winner"] is None
        assert result["recommended_action"] == INSUFFICIENT_DATA

    def test_more_conversions_than_impressions(self):
        result = evaluate_variants(
            [_variant("a", "A", 100, 120), _variant("b", "B", 100, 10)],
            confidence_level=95.0,
            min_sample_size=100,
        )
        assert result["winner"] is None
        assert result["z_score"] is None
        assert result["recommended_action"].startswith(INCONSISTENT_COUNTERS)
        assert "A recorded more conversions" in result["recommended_action"]


# ======================================================================
# Campaign rates
# ======================================================================


class TestCampaignRates:

    def test_nothing_sent(self):
        metrics = compute_rates({})
        for key, value in metrics.items():
            assert value == 0, key

    def test_rate_formulas(self):
        metrics = compute_rates(
            {
                "total_sent": 200,
                "total_delivered": 180,
                "total_opened": 90,
                "total_clicked": 30,
                "total_replied": 9,
                "total_bounced": 20,
                "total_unsubscribed": 3,
                "total_converted": 6,
                "total_revenue": 1200.0,
            }
        )
        assert metrics["delivery_rate"] == 90.0
        assert metrics["open_rate"] == 50.0
        assert metrics["click_rate"] == pytest.approx(33.33)
        assert metrics["reply_rate"] == 5.0
        assert metrics["bounce_rate"] == 10.0
        assert metrics["unsubscribe_rate"] == pytest.approx(1.67)
        assert metrics["conversion_rate"] == pytest.approx(3.33)
        assert metrics["avg_revenue_per_conversion"] == 200.0

    def test_opened_but_nothing_delivered(self):
        metrics = compute_rates({"total_sent": 10, "total_opened": 4})
        assert metrics["open_rate"] == 0.0
        assert metrics["click_rate"] == 0.0

    def test_safe_rate(self):
        assert safe_rate(1, 3) == 33.33
        assert safe_rate(5, 0) == 0.0
