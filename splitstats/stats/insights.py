"""Plain-English insights, recommendations and planning helpers.

Turns a frequentist ``Comparison`` into guidance a non-statistician can act
on: what the data says, what to do next and how confident that advice is.
"""

from __future__ import annotations

import math

from splitstats.models import (
    Comparison,
    Insight,
    InsightsReport,
    Recommendation,
    SampleSizeRecommendation,
    TestSettings,
    VariantRecord,
)
from splitstats.stats.normal import critical_z, inverse_normal_cdf

SMALL_SAMPLE = 100
SMALL_DIFFERENCE_PP = 0.5
TARGET_POWER = 80.0
TRENDING_P_VALUE = 0.2
IMBALANCE_RATIO = 1.1


# ======================================================================
# Insights
# ======================================================================


def generate_insights(
    control: VariantRecord,
    test: VariantRecord,
    comparison: Comparison,
    settings: TestSettings,
) -> InsightsReport:
    """Generate insights, recommendations and a one-line summary.

    Parameters
    ----------
    control, test : VariantRecord
        The two arms behind ``comparison``.
    comparison : Comparison
        Output of ``compare_variants(control, test, settings)``.
    settings : TestSettings
        Confidence level and hypothesis type used for the comparison.

    Returns
    -------
    InsightsReport
    """
    confidence_level = settings.confidence_level
    c_name, t_name = control.label.value, test.label.value
    uplift = abs(comparison.relative_uplift)
    power = comparison.power
    p = comparison.p_value

    insights: list[Insight] = []
    recommendations: list[Recommendation] = []

    # ---- Sample size ----
    if control.visitors < SMALL_SAMPLE or test.visitors < SMALL_SAMPLE:
        insights.append(
            Insight(
                type="warning",
                title="Small Sample Size",
                description=(
                    "Your sample size is quite small, which may lead to unreliable results. "
                    "Consider running the test longer to gather more data."
                ),
            )
        )

    # ---- Practical difference ----
    rate_diff = abs(control.conversion_rate - test.conversion_rate)
    if rate_diff < SMALL_DIFFERENCE_PP:
        insights.append(
            Insight(
                type="info",
                title="Small Conversion Difference",
                description=(
                    f"The difference between conversion rates is only {rate_diff:.2f}%, "
                    "which might be too small to have a meaningful business impact "
                    "even if statistically significant."
                ),
            )
        )

    # ---- Power ----
    if power < TARGET_POWER:
        insights.append(
            Insight(
                type="warning",
                title="Low Statistical Power",
                description=(
                    f"Your test has {power:.0f}% power, which means it may not be able to "
                    "reliably detect small but real differences. A target power of at least "
                    f"{TARGET_POWER:.0f}% is recommended."
                ),
            )
        )

    # ---- Significance ----
    confidence = "high" if power >= TARGET_POWER else "medium"
    if comparison.is_significant:
        insights.append(
            Insight(
                type="success",
                title="Statistically Significant Result",
                description=(
                    "Your test shows a statistically significant difference at the "
                    f"{confidence_level}% confidence level."
                ),
            )
        )
        if test.conversion_rate > control.conversion_rate:
            recommendations.append(
                Recommendation(
                    action=f"Implement variant {t_name}",
                    reasoning=(
                        f"Variant {t_name} shows a {uplift:.1f}% higher conversion rate than "
                        f"variant {c_name} with statistical significance."
                    ),
                    confidence=confidence,
                )
            )
        else:
            recommendations.append(
                Recommendation(
                    action=f"Keep variant {c_name}",
                    reasoning=f"Variant {t_name} performs worse than the control (variant {c_name}).",
                    confidence=confidence,
                )
            )
    else:
        insights.append(
            Insight(
                type="info",
                title="No Significant Difference",
                description=(
                    "Your test does not show a statistically significant difference at the "
                    f"{confidence_level}% confidence level."
                ),
            )
        )
        if p < TRENDING_P_VALUE:
            insights.append(
                Insight(
                    type="info",
                    title="Trending Toward Significance",
                    description=(
                        f"With a p-value of {p:.3f}, your test is trending toward significance. "
                        "Consider running the test longer."
                    ),
                )
            )
            recommendations.append(
                Recommendation(
                    action="Continue the test",
                    reasoning=(
                        "The results are trending toward significance but need more data "
                        "to be conclusive."
                    ),
                    confidence="medium",
                )
            )
        else:
            recommendations.append(
                Recommendation(
                    action="Consider ending the test",
                    reasoning=(
                        "There appears to be little difference between variants, or the "
                        "difference is too small to detect with your current traffic levels."
                    ),
                    confidence="medium",
                )
            )

    # ---- Traffic balance ----
    smaller = min(control.visitors, test.visitors)
    if smaller > 0:
        ratio = max(control.visitors, test.visitors) / smaller
        if ratio > IMBALANCE_RATIO:
            insights.append(
                Insight(
                    type="warning",
                    title="Visitor Imbalance",
                    description=(
                        f"Your variants have uneven visitor counts (ratio of {ratio:.2f}:1). "
                        "This may introduce bias and affect the reliability of results."
                    ),
                )
            )

    # ---- Summary ----
    if comparison.is_significant:
        if test.conversion_rate > control.conversion_rate:
            summary = (
                f"Variant {t_name} outperforms variant {c_name} by {uplift:.1f}% "
                f"(statistically significant at {confidence_level}% confidence)."
            )
        else:
            summary = (
                f"Variant {c_name} outperforms variant {t_name} by {uplift:.1f}% "
                f"(statistically significant at {confidence_level}% confidence)."
            )
    else:
        summary = (
            f"No statistically significant difference found between variants {c_name} and "
            f"{t_name} at {confidence_level}% confidence (p-value: {p:.4f})."
        )

    return InsightsReport(insights=insights, recommendations=recommendations, summary=summary)


# ======================================================================
# Test strength
# ======================================================================


def calculate_test_strength(p_value: float, alpha: float) -> float:
    """How close a test is to significance, 1-100 (100 once significant)."""
    safe_p = min(p_value, 0.9999)
    if safe_p <= alpha:
        return 100.0
    ratio = (1 - safe_p) / (1 - alpha)
    return max(1.0, min(100.0, 100.0 * ratio))


# ======================================================================
# Planning
# ======================================================================


def _duration_estimate(total: int) -> str:
    if total < 1_000:
        return "A few days to a week"
    if total < 5_000:
        return "1-2 weeks"
    if total < 20_000:
        return "2-4 weeks"
    if total < 100_000:
        return "1-2 months"
    return "Over 2 months"


def sample_size_recommendation(
    baseline_conversion: float,
    minimum_detectable_effect: float,
    confidence_level: float = 95,
    power: float = 80,
) -> SampleSizeRecommendation:
    """Per-variant and total sample size with a rough duration band.

    ``baseline_conversion`` is a rate in percent and
    ``minimum_detectable_effect`` a relative lift in percent.
    """
    p1 = baseline_conversion / 100
    p2 = p1 * (1 + minimum_detectable_effect / 100)
    if not 0 < p1 < 1 or not 0 < p2 < 1 or p1 == p2:
        return SampleSizeRecommendation(
            sample_size_per_variant=0, total_sample_size=0, test_duration_estimate=_duration_estimate(0)
        )

    z_alpha = critical_z(confidence_level, two_sided=True)
    z_beta = inverse_normal_cdf(power / 100)
    sd1 = math.sqrt(p1 * (1 - p1))
    sd2 = math.sqrt(p2 * (1 - p2))
    per_variant = math.ceil((z_alpha * sd1 + z_beta * sd2) ** 2 / (p1 - p2) ** 2)
    total = per_variant * 2
    return SampleSizeRecommendation(
        sample_size_per_variant=per_variant,
        total_sample_size=total,
        test_duration_estimate=_duration_estimate(total),
    )
