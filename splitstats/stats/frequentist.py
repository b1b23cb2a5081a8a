"""Frequentist comparison of two conversion rates.

Pooled two-proportion Z-test, p-values, power, relative uplift and Wilson
score intervals.  Rates on the public surface are percentages (0-100); the
internal arithmetic uses proportions.

Degenerate inputs never raise and never produce NaN/Infinity: an arm with no
visitors, or a zero standard error, yields a z-score of 0, and a zero
baseline rate yields the documented uplift sentinel.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from splitstats.models import BetterVariant, Comparison, ConfidenceInterval, TestSettings, VariantRecord
from splitstats.stats.normal import critical_z as default_critical_z
from splitstats.stats.normal import inverse_normal_cdf
from splitstats.stats.normal import normal_cdf as default_normal_cdf

# Relative uplift reported when the control rate is 0 but the test rate is not.
# A finite stand-in for "infinitely better" so that callers never see inf.
UPLIFT_SENTINEL = 999_999.0


# ======================================================================
# Rates and uplift
# ======================================================================


def conversion_rate(visitors: int, conversions: int) -> float:
    """Conversion rate in percent; 0 when there are no visitors."""
    if visitors <= 0:
        return 0.0
    return conversions / visitors * 100.0


def relative_uplift(control_rate: float, test_rate: float) -> float:
    """Relative change of the test rate over the control rate, in percent.

    A zero control rate gives 0 when both rates are 0, otherwise
    ``+/-UPLIFT_SENTINEL`` in the direction of the change.
    """
    if control_rate == 0:
        if test_rate == 0:
            return 0.0
        return math.copysign(UPLIFT_SENTINEL, test_rate - control_rate)
    return (test_rate - control_rate) / control_rate * 100.0


# ======================================================================
# Z-test
# ======================================================================


def pooled_standard_error(
    visitors_control: int,
    conversions_control: int,
    visitors_test: int,
    conversions_test: int,
) -> float:
    """Standard error of the rate difference under the pooled null."""
    if visitors_control <= 0 or visitors_test <= 0:
        return 0.0
    pooled = (conversions_control + conversions_test) / (visitors_control + visitors_test)
    variance = pooled * (1 - pooled) * (1 / visitors_control + 1 / visitors_test)
    return math.sqrt(max(variance, 0.0))


def unpooled_standard_error(
    visitors_control: int,
    rate_control: float,
    visitors_test: int,
    rate_test: float,
) -> float:
    """Standard error of the difference of two proportions (rates as proportions)."""
    if visitors_control <= 0 or visitors_test <= 0:
        return 0.0
    variance = (
        rate_control * (1 - rate_control) / visitors_control
        + rate_test * (1 - rate_test) / visitors_test
    )
    return math.sqrt(max(variance, 0.0))


def z_score(
    visitors_control: int,
    conversions_control: int,
    visitors_test: int,
    conversions_test: int,
) -> float:
    """Pooled two-proportion z-score of test over control; 0 when undefined."""
    se = pooled_standard_error(
        visitors_control, conversions_control, visitors_test, conversions_test
    )
    if se == 0 or not math.isfinite(se):
        return 0.0
    p_control = conversions_control / visitors_control
    p_test = conversions_test / visitors_test
    z = (p_test - p_control) / se
    return z if math.isfinite(z) else 0.0


def p_value(z: float, two_sided: bool, normal_cdf=default_normal_cdf) -> float:
    """p-value for a z-score.

    A one-sided test only looks for improvement, so a negative z-score gives
    a p-value of exactly 1.
    """
    if two_sided:
        return min(1.0, 2.0 * (1.0 - normal_cdf(abs(z))))
    if z < 0:
        return 1.0
    return 1.0 - normal_cdf(z)


def is_significant(p: float, confidence_level: float) -> bool:
    alpha = (100 - confidence_level) / 100
    return p < alpha


# ======================================================================
# Power
# ======================================================================


def statistical_power(
    visitors_control: int,
    rate_control: float,
    visitors_test: int,
    rate_test: float,
    confidence_level: float = 95,
    two_sided: bool = False,
    critical_z=default_critical_z,
    normal_cdf=default_normal_cdf,
) -> float:
    """Power (percent, 0-100) to detect the observed difference.

    Rates are percentages.  Uses the unpooled standard error and
    ``1 - Phi(z_crit - effect / SE)``.
    """
    if visitors_control <= 0 or visitors_test <= 0:
        return 0.0

    p1 = rate_control / 100
    p2 = rate_test / 100
    effect = abs(p2 - p1)
    se = unpooled_standard_error(visitors_control, p1, visitors_test, p2)
    if se == 0:
        return 0.0 if effect == 0 else 100.0

    z_crit = critical_z(confidence_level, two_sided)
    power = (1.0 - normal_cdf(z_crit - effect / se)) * 100.0
    return min(max(power, 0.0), 100.0)


# ======================================================================
# Intervals
# ======================================================================


def wilson_interval(
    visitors: int, conversions: int, confidence_level: float = 95, critical_z=default_critical_z
) -> ConfidenceInterval:
    """Wilson score interval for a single conversion rate, in percent."""
    if visitors <= 0:
        return ConfidenceInterval(lower=0.0, upper=0.0)

    n = visitors
    p = conversions / n
    z = critical_z(confidence_level, two_sided=True)
    z2 = z * z
    denominator = 1 + z2 / n
    center = (p + z2 / (2 * n)) / denominator
    radius = z * math.sqrt(p * (1 - p) / n + z2 / (4 * n * n)) / denominator
    return ConfidenceInterval(
        lower=max(0.0, center - radius) * 100.0,
        upper=min(1.0, center + radius) * 100.0,
    )


def difference_interval(
    visitors_control: int,
    conversions_control: int,
    visitors_test: int,
    conversions_test: int,
    confidence_level: float = 95,
    critical_z=default_critical_z,
) -> ConfidenceInterval:
    """Normal-approximation interval for ``test - control``, in percentage points.

    Uses the unpooled standard error; unlike a single-rate interval the
    bounds may be negative.  An arm without visitors gives ``(0, 0)``.
    """
    if visitors_control <= 0 or visitors_test <= 0:
        return ConfidenceInterval(lower=0.0, upper=0.0)

    p1 = conversions_control / visitors_control
    p2 = conversions_test / visitors_test
    se = unpooled_standard_error(visitors_control, p1, visitors_test, p2)
    z = critical_z(confidence_level, two_sided=True)
    diff = p2 - p1
    return ConfidenceInterval(lower=(diff - z * se) * 100.0, upper=(diff + z * se) * 100.0)


# ======================================================================
# Comparisons
# ======================================================================


def compare_variants(
    control: VariantRecord,
    test: VariantRecord,
    settings: TestSettings,
    p_value_fn=p_value,
    critical_z=default_critical_z,
    normal_cdf=default_normal_cdf,
) -> Comparison:
    """Full frequentist comparison of ``test`` against ``control``.

    The normal primitives can be swapped for memoized versions; results do
    not change.
    """
    control_rate = control.conversion_rate
    test_rate = test.conversion_rate

    se = pooled_standard_error(
        control.visitors, control.conversions, test.visitors, test.conversions
    )
    z = z_score(control.visitors, control.conversions, test.visitors, test.conversions)
    p = p_value_fn(z, settings.is_two_sided)
    power = statistical_power(
        control.visitors,
        control_rate,
        test.visitors,
        test_rate,
        settings.confidence_level,
        critical_z=critical_z,
        normal_cdf=normal_cdf,
    )

    if test_rate > control_rate:
        better = BetterVariant.TEST
    elif control_rate > test_rate:
        better = BetterVariant.CONTROL
    else:
        better = BetterVariant.NONE

    return Comparison(
        control_key=control.label,
        test_key=test.label,
        control_rate=control_rate,
        test_rate=test_rate,
        relative_uplift=relative_uplift(control_rate, test_rate),
        z_score=z,
        p_value=p,
        power=power,
        is_significant=p < settings.alpha,
        better_variant=better,
        standard_error=se,
    )


def generate_comparisons(
    records: Sequence[VariantRecord], settings: TestSettings
) -> list[Comparison]:
    """Compare the first active arm (the control) with every other active arm."""
    active = [r for r in records if r.is_active]
    if len(active) < 2:
        return []
    control = active[0]
    return [compare_variants(control, test, settings) for test in active[1:]]


# ======================================================================
# Sample size
# ======================================================================


def required_sample_size(
    baseline_rate: float,
    mde: float,
    confidence_level: float = 95,
    power: float = 80,
) -> int:
    """Visitors needed per variant for a fixed-horizon two-sided test.

    Parameters
    ----------
    baseline_rate : float
        Expected control conversion rate in percent.
    mde : float
        Minimum detectable effect as a relative lift in percent (10 = +10%).
    confidence_level : float
        Confidence level in percent.
    power : float
        Desired power in percent.

    Returns
    -------
    int
        Per-variant sample size, or 0 when the inputs describe no effect.
    """
    p1 = baseline_rate / 100
    p2 = p1 * (1 + mde / 100)
    if not 0 < p1 < 1 or not 0 < p2 < 1 or p1 == p2:
        return 0

    z_alpha = default_critical_z(confidence_level, two_sided=True)
    z_beta = inverse_normal_cdf(power / 100)
    n = (z_alpha + z_beta) ** 2 * (p1 * (1 - p1) + p2 * (1 - p2)) / (p1 - p2) ** 2
    return math.ceil(n)
