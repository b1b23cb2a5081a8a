"""Group-sequential monitoring with alpha/beta spending boundaries.

At each planned look the caller supplies *cumulative* counts; nothing is
remembered between looks.  The information fraction ``t = look / total_looks``
drives two spending families:

- Pocock: ``ln(1 + (e - 1) t)``, spends evenly across looks
- O'Brien-Fleming (cosine form): ``1 - cos(pi t / 2)``, spends very little early

Both rise from 0 at ``t = 0`` to 1 at ``t = 1``, so the efficacy boundary
goes from 0 to the full alpha and the futility boundary from 1 to ``1 - beta``.
"""

from __future__ import annotations

import logging
import math

from splitstats.models import BoundaryFamily, SequentialDesign, SequentialStatus, VariantRecord
from splitstats.stats.frequentist import p_value, statistical_power, z_score
from splitstats.stats.normal import critical_z, inverse_normal_cdf

logger = logging.getLogger(__name__)


# ======================================================================
# Spending functions
# ======================================================================


def pocock_spending(t: float) -> float:
    return math.log(1 + (math.e - 1) * t)


def obrien_fleming_spending(t: float) -> float:
    return 1 - math.cos(math.pi * t / 2)


def spent_fraction(family: BoundaryFamily, t: float) -> float:
    """Share of the error budget spent by information fraction ``t``."""
    if not 0 <= t <= 1:
        raise ValueError("Information fraction t must be between 0 and 1")
    match family:
        case BoundaryFamily.POCOCK:
            return pocock_spending(t)
        case BoundaryFamily.OBRIEN_FLEMING:
            return obrien_fleming_spending(t)
    raise ValueError(f"Unsupported boundary family: {family!r}")


def alpha_boundary(family: BoundaryFamily, t: float, alpha: float = 0.05) -> float:
    """Efficacy threshold on the p-value at information fraction ``t``."""
    return alpha * spent_fraction(family, t)


def beta_boundary(family: BoundaryFamily, t: float, beta: float = 0.2) -> float:
    """Futility threshold on the p-value at information fraction ``t``."""
    return 1 - beta * spent_fraction(family, t)


# ======================================================================
# Interim analysis
# ======================================================================


def analyze_sequential_test(
    control: VariantRecord,
    test: VariantRecord,
    current_look: int,
    design: SequentialDesign,
) -> SequentialStatus:
    """Evaluate one interim look.

    Parameters
    ----------
    control, test : VariantRecord
        Cumulative counts up to this look.
    current_look : int
        Look number, 0..total_looks (0 means no data has been reviewed yet).
    design : SequentialDesign
        Boundary families, number of looks and error budgets.

    Returns
    -------
    SequentialStatus
        Two-sided p-value, power, both boundaries and the stop decision.
    """
    if not 0 <= current_look <= design.total_looks:
        raise ValueError(
            f"current_look must be between 0 and {design.total_looks}, got {current_look}"
        )

    t = current_look / design.total_looks
    z = z_score(control.visitors, control.conversions, test.visitors, test.conversions)
    p = p_value(z, two_sided=True)
    power = statistical_power(
        control.visitors,
        control.conversion_rate,
        test.visitors,
        test.conversion_rate,
        confidence_level=(1 - design.alpha) * 100,
    )

    efficacy = alpha_boundary(design.alpha_family, t, design.alpha)
    futility = beta_boundary(design.beta_family, t, design.beta)
    can_stop_efficacy = p <= efficacy
    can_stop_futility = p > futility

    logger.debug(
        "Look %d/%d: p=%.4f efficacy<=%.4f futility>%.4f",
        current_look,
        design.total_looks,
        p,
        efficacy,
        futility,
    )

    return SequentialStatus(
        current_look=current_look,
        information_fraction=t,
        p_value=p,
        power=power,
        alpha_boundary=efficacy,
        beta_boundary=futility,
        can_stop_for_efficacy=can_stop_efficacy,
        can_stop_for_futility=can_stop_futility,
        is_conclusive=can_stop_efficacy or can_stop_futility,
    )


# ======================================================================
# Planning
# ======================================================================


def inflation_factor(family: BoundaryFamily, total_looks: int) -> float:
    """Sample-size inflation over a fixed design for ``total_looks`` analyses."""
    match family:
        case BoundaryFamily.POCOCK:
            return 1 + total_looks * 0.15
        case BoundaryFamily.OBRIEN_FLEMING:
            return 1 + math.sqrt(total_looks) * 0.05
    raise ValueError(f"Unsupported boundary family: {family!r}")


def sequential_sample_size(
    baseline_rate: float,
    mde: float,
    total_looks: int,
    alpha: float = 0.05,
    power: float = 0.8,
    family: BoundaryFamily = BoundaryFamily.OBRIEN_FLEMING,
) -> int:
    """Visitors per variant to collect between consecutive looks.

    Parameters
    ----------
    baseline_rate : float
        Expected control conversion rate in percent.
    mde : float
        Minimum detectable relative lift in percent.
    total_looks : int
        Planned analyses including the final one.
    alpha, power : float
        Error budgets as proportions.
    family : BoundaryFamily
        Alpha-spending family; Pocock inflates more than O'Brien-Fleming.
    """
    if total_looks < 1:
        raise ValueError("total_looks must be at least 1")
    p1 = baseline_rate / 100
    p2 = p1 * (1 + mde / 100)
    if not 0 < p1 < 1 or not 0 < p2 < 1 or p1 == p2:
        return 0

    z_alpha = critical_z((1 - alpha) * 100, two_sided=True)
    z_beta = inverse_normal_cdf(power)
    fixed = (z_alpha + z_beta) ** 2 * (p1 * (1 - p1) + p2 * (1 - p2)) / (p1 - p2) ** 2
    return math.ceil(fixed * inflation_factor(family, total_looks) / total_looks)
