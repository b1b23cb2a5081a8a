"""Sampling distribution curves for the confidence visualization.

Produces the (x, density) points of the control and test sampling
distributions plus the critical X beyond which a test result is significant.
"""

from __future__ import annotations

import numpy as np

from splitstats.models import CurvePoints
from splitstats.stats.normal import critical_z as default_critical_z

_SQRT_2PI = np.sqrt(2.0 * np.pi)


def generate_normal_curve_points(
    mean: float,
    std_dev: float,
    min_x: float,
    max_x: float,
    steps: int = 100,
) -> list[tuple[float, float]]:
    """``steps + 1`` evenly spaced points of the N(mean, std_dev^2) density."""
    if steps < 1:
        raise ValueError("steps must be at least 1")
    xs = np.linspace(min_x, max_x, steps + 1)
    if std_dev <= 0:
        ys = np.zeros_like(xs)
    else:
        ys = np.exp(-0.5 * ((xs - mean) / std_dev) ** 2) / (std_dev * _SQRT_2PI)
    return [(float(x), float(y)) for x, y in zip(xs, ys)]


def generate_paired_curves(
    control_mean: float,
    control_std_dev: float,
    test_mean: float,
    test_std_dev: float,
    min_x: float,
    max_x: float,
    steps: int = 100,
    confidence_level: float = 95,
    two_sided: bool = True,
    checkpoint=None,
    critical_z=default_critical_z,
) -> CurvePoints:
    """Control and test curves on a shared x-range.

    ``checkpoint`` is called between the two curves so a background caller
    can abandon the work; ``critical_z`` may be swapped for a memoized
    version.
    """
    control_points = generate_normal_curve_points(
        control_mean, control_std_dev, min_x, max_x, steps
    )
    if checkpoint is not None:
        checkpoint()
    test_points = generate_normal_curve_points(test_mean, test_std_dev, min_x, max_x, steps)

    max_y = max(y for _, y in control_points + test_points)
    z = critical_z(confidence_level, two_sided)
    return CurvePoints(
        control_points=control_points,
        test_points=test_points,
        max_y=max_y,
        critical_x=control_mean + z * control_std_dev,
        critical_z=z,
        min_x=min_x,
        max_x=max_x,
    )
