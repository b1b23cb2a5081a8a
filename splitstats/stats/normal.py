"""Standard normal primitives shared by every engine.

``normal_cdf`` is evaluated on the non-negative half-line only and mirrored,
so ``normal_cdf(-z) == 1 - normal_cdf(z)`` holds exactly in floating point
rather than approximately.  The inverse uses the Abramowitz & Stegun 26.2.23
rational approximation (absolute error below 4.5e-4), which is enough to
reproduce the textbook critical values 1.645 / 1.96 / 2.576.
"""

from __future__ import annotations

import math

from scipy import special as sp_special

# Beyond this |z| the CDF is clamped to exactly 0 or 1.
CDF_CLAMP = 6.0

# Abramowitz & Stegun 26.2.23 coefficients
_C0, _C1, _C2 = 2.515517, 0.802853, 0.010328
_D1, _D2, _D3 = 1.432788, 0.189269, 0.001308

_SQRT_2PI = math.sqrt(2.0 * math.pi)


def normal_cdf(z: float) -> float:
    """Standard normal CDF, clamped to 0/1 for |z| > 6."""
    if z < 0:
        return 1.0 - normal_cdf(-z)
    if z > CDF_CLAMP:
        return 1.0
    upper_tail = float(sp_special.ndtr(-z))
    return 1.0 - upper_tail


def normal_pdf(x: float, mean: float = 0.0, std_dev: float = 1.0) -> float:
    """Density of N(mean, std_dev^2) at ``x``; 0 for a non-positive std_dev."""
    if std_dev <= 0:
        return 0.0
    u = (x - mean) / std_dev
    return math.exp(-0.5 * u * u) / (std_dev * _SQRT_2PI)


def _upper_tail_quantile(q: float) -> float:
    """Return z such that P(Z > z) = q, for 0 < q <= 0.5."""
    t = math.sqrt(-2.0 * math.log(q))
    return t - (_C0 + _C1 * t + _C2 * t * t) / (
        1.0 + _D1 * t + _D2 * t * t + _D3 * t * t * t
    )


def inverse_normal_cdf(p: float) -> float:
    """Approximate quantile function of the standard normal.

    Returns 0 for p outside the open interval (0, 1).
    """
    if not 0.0 < p < 1.0:
        return 0.0
    if p > 0.5:
        return _upper_tail_quantile(1.0 - p)
    return -_upper_tail_quantile(p)


def inverse_erf(x: float) -> float:
    """Inverse error function via erf^-1(x) = Phi^-1((x + 1) / 2) / sqrt(2)."""
    return inverse_normal_cdf((x + 1.0) / 2.0) / math.sqrt(2.0)


def critical_z(confidence_level: float, two_sided: bool) -> float:
    """Critical Z value for a confidence level given in percent.

    The tail probability is alpha for a one-sided test and alpha / 2 for a
    two-sided one.
    """
    alpha = 1.0 - confidence_level / 100.0
    tail = alpha / 2.0 if two_sided else alpha
    return inverse_normal_cdf(1.0 - tail)
