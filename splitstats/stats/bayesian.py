"""Conjugate Beta-Binomial model and Monte Carlo comparison of two arms.

Each arm's conversion rate gets a flat ``Beta(1, 1)`` prior, so the posterior
after ``c`` conversions in ``n`` visitors is ``Beta(c + 1, n - c + 1)``.  The
model is immutable: ``observe()`` returns a *new* ``BetaBinomial``.

Results are stochastic.  ``n_samples`` is the accuracy/performance knob
(100,000 draws by default, 10,000 for expected loss); pass ``seed`` when a
reproducible result is required.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from scipy import stats as sp_stats

from splitstats.core.config import settings
from splitstats.models import BayesianResult, VariantRecord

logger = logging.getLogger(__name__)

# Minimum relative improvements (percent) reported in probability_beating_threshold.
LIFT_THRESHOLDS = (0, 1, 2, 5, 10)


class BetaBinomial:
    """Posterior over one arm's true conversion rate.

    ``alpha`` counts conversions plus prior pseudo-conversions and ``beta``
    counts non-converting visitors plus prior pseudo-failures.  Instances are
    never mutated; ``observe()`` hands back a new model.
    """

    __slots__ = ("alpha", "beta")

    def __init__(self, alpha: float = 1.0, beta: float = 1.0) -> None:
        if alpha <= 0 or beta <= 0:
            raise ValueError(f"Beta parameters must be positive, got ({alpha}, {beta})")
        self.alpha = alpha
        self.beta = beta

    @classmethod
    def from_record(cls, record: VariantRecord) -> BetaBinomial:
        """Flat-prior posterior for one variant's counts."""
        return cls().observe(record.conversions, record.visitors)

    def observe(self, conversions: int, visitors: int) -> BetaBinomial:
        if visitors < 0 or conversions < 0:
            raise ValueError("visitor and conversion counts cannot be negative")
        if conversions > visitors:
            raise ValueError("conversions cannot exceed visitors")
        return BetaBinomial(self.alpha + conversions, self.beta + visitors - conversions)

    @property
    def mean(self) -> float:
        return self.alpha / (self.alpha + self.beta)

    @property
    def variance(self) -> float:
        total = self.alpha + self.beta
        return self.alpha * self.beta / (total**2 * (total + 1))

    def rate_interval(self, level: float = 0.95) -> tuple[float, float]:
        """Equal-tailed interval for the rate (as a proportion) at ``level``."""
        if not 0 < level < 1:
            raise ValueError(f"level must lie strictly between 0 and 1, got {level}")
        tail = (1 - level) / 2
        lower, upper = sp_stats.beta.ppf([tail, 1 - tail], self.alpha, self.beta)
        return float(lower), float(upper)

    def sample(self, n: int, rng: np.random.Generator | None = None, seed: int | None = None) -> np.ndarray:
        generator = rng if rng is not None else np.random.default_rng(seed)
        return generator.beta(self.alpha, self.beta, size=n)

    def probability_beats(self, other: BetaBinomial, n_samples: int = 50_000, seed: int | None = None) -> float:
        """Monte Carlo estimate of P(this arm's rate > ``other``'s rate)."""
        rng = np.random.default_rng(seed)
        mine = self.sample(n_samples, rng=rng)
        theirs = other.sample(n_samples, rng=rng)
        return float(np.mean(mine > theirs))

    def __repr__(self) -> str:
        return f"BetaBinomial(alpha={self.alpha:g}, beta={self.beta:g})"


def probability_each_best(
    models: list[BetaBinomial], n_samples: int = 50_000, seed: int | None = None
) -> list[float]:
    """Share of joint posterior draws in which each model has the highest rate."""
    rng = np.random.default_rng(seed)
    draws = np.column_stack([m.sample(n_samples, rng=rng) for m in models])
    wins = np.bincount(draws.argmax(axis=1), minlength=len(models))
    return (wins / n_samples).tolist()


# ======================================================================
# Two-arm Bayesian test
# ======================================================================


def _empty_result(n_samples: int) -> BayesianResult:
    return BayesianResult(
        probability_of_improvement=0.0,
        expected_lift_percent=0.0,
        credible_interval_95=(0.0, 0.0),
        probability_beating_threshold={t: 0.0 for t in LIFT_THRESHOLDS},
        expected_loss=0.0,
        simulations=n_samples,
    )


def run_bayesian_test(
    control: VariantRecord,
    test: VariantRecord,
    n_samples: int | None = None,
    seed: int | None = None,
    loss_samples: int | None = None,
    checkpoint=None,
) -> BayesianResult:
    """Monte Carlo comparison of the test arm against the control arm.

    Steps:
    1. Build ``Beta(c + 1, n - c + 1)`` posteriors for both arms
    2. Draw ``n_samples`` paired samples
    3. P(improvement) = share of draws where test > control
    4. Expected lift = mean per-draw relative lift (percent)
    5. 95% credible interval = 2.5th / 97.5th percentile of the lifts
    6. Share of draws where test >= control * (1 + threshold)
    7. Expected loss of shipping the test arm (see ``expected_loss``)

    An arm without visitors yields an all-zero result.  ``checkpoint`` is
    called after the posterior draws and again before the expected-loss
    simulation so a background caller can abandon the work.
    """
    n_samples = n_samples or settings.BAYESIAN_SIMULATIONS
    if control.visitors <= 0 or test.visitors <= 0:
        return _empty_result(n_samples)

    rng = np.random.default_rng(seed)
    control_samples = BetaBinomial.from_record(control).sample(n_samples, rng=rng)
    test_samples = BetaBinomial.from_record(test).sample(n_samples, rng=rng)
    if checkpoint is not None:
        checkpoint()

    prob_improvement = float(np.mean(test_samples > control_samples))

    positive = control_samples > 0
    lifts = (test_samples[positive] - control_samples[positive]) / control_samples[positive] * 100.0
    lifts = lifts[np.isfinite(lifts)]
    if lifts.size:
        expected_lift = float(np.mean(lifts))
        low, high = np.percentile(lifts, [2.5, 97.5])
        interval = (float(low), float(high))
    else:
        expected_lift = 0.0
        interval = (0.0, 0.0)

    beating = {
        t: float(np.mean(test_samples >= control_samples * (1 + t / 100)))
        for t in LIFT_THRESHOLDS
    }

    if checkpoint is not None:
        checkpoint()
    loss = expected_loss(
        control,
        test,
        n_samples=loss_samples or settings.EXPECTED_LOSS_SIMULATIONS,
        seed=None if seed is None else seed + 1,
    )

    logger.debug(
        "Bayesian %s vs %s: P(improve)=%.4f lift=%.2f%% (%d draws)",
        control.label.value,
        test.label.value,
        prob_improvement,
        expected_lift,
        n_samples,
    )

    return BayesianResult(
        probability_of_improvement=prob_improvement,
        expected_lift_percent=expected_lift,
        credible_interval_95=interval,
        probability_beating_threshold=beating,
        expected_loss=loss,
        simulations=n_samples,
    )


def expected_loss(
    control: VariantRecord,
    test: VariantRecord,
    n_samples: int = 10_000,
    seed: int | None = None,
) -> float:
    """Expected loss of shipping the test arm, ``E[max(0, control - test)]`` in percent.

    Short-circuits to 0 when the observed test rate already exceeds the
    control rate.
    """
    if control.visitors <= 0 or test.visitors <= 0:
        return 0.0
    if test.conversion_rate > control.conversion_rate:
        return 0.0

    rng = np.random.default_rng(seed)
    control_samples = BetaBinomial.from_record(control).sample(n_samples, rng=rng)
    test_samples = BetaBinomial.from_record(test).sample(n_samples, rng=rng)
    loss = float(np.mean(np.maximum(0.0, control_samples - test_samples))) * 100.0
    return loss if math.isfinite(loss) else 0.0


def probability_best(
    records: list[VariantRecord],
    n_samples: int = 50_000,
    seed: int | None = None,
) -> list[float]:
    """P(each record's arm has the highest true rate)."""
    models = [BetaBinomial.from_record(r) for r in records]
    return probability_each_best(models, n_samples=n_samples, seed=seed)


# ======================================================================
# Sample size
# ======================================================================


def bayesian_sample_size(
    baseline_rate: float,
    expected_effect: float,
    desired_probability: float = 0.95,
    n_samples: int = 10_000,
    seed: int | None = 42,
    max_sample_size: int = 1_000_000,
) -> int:
    """Per-variant sample size at which P(improvement) reaches the target.

    Parameters
    ----------
    baseline_rate : float
        Control conversion rate in percent.
    expected_effect : float
        Expected relative lift in percent.
    desired_probability : float
        Target probability of improvement.

    Returns
    -------
    int
        Starting from 100, the size grows by 1.5x until simulated data at the
        expected rates reaches ``desired_probability`` or the cap is hit.
    """
    base = baseline_rate / 100
    target = base * (1 + expected_effect / 100)
    if not 0 < base < 1 or not 0 < target < 1:
        return 0

    sample_size = 100
    while sample_size < max_sample_size:
        control = VariantRecord(
            label="A", visitors=sample_size, conversions=round(base * sample_size)
        )
        test = VariantRecord(
            label="B", visitors=sample_size, conversions=round(target * sample_size)
        )
        result = run_bayesian_test(control, test, n_samples=n_samples, seed=seed, loss_samples=1)
        if result.probability_of_improvement >= desired_probability:
            break
        sample_size = math.ceil(sample_size * 1.5)
    return min(sample_size, max_sample_size)
