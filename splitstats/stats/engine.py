"""Analysis orchestrator.

``StatsEngine.analyze`` runs validation, the frequentist comparisons, the
Bayesian simulation, the winner roll-up and the insights in one call.

The engine owns its memo caches (``StatsCache``); two engines never share
cached values and ``clear_cache()`` empties everything.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from splitstats.core.config import Settings, settings as default_settings
from splitstats.models import (
    AnalysisReport,
    Comparison,
    CurvePoints,
    SegmentAnalysis,
    SequentialDesign,
    SequentialStatus,
    TestSettings,
    VariantRecord,
)
from splitstats.stats import bayesian, curves, frequentist, normal, segments, sequential
from splitstats.stats.cache import StatsCache, memoize
from splitstats.stats.insights import generate_insights
from splitstats.stats.validation import validate_test_data
from splitstats.stats.winner import determine_winning_variant

logger = logging.getLogger(__name__)


class StatsEngine:
    """Runs the full analysis over user-supplied counts.

    Parameters
    ----------
    config : Settings | None
        Simulation counts and cache capacities.  Defaults to the
        environment-driven ``settings``.
    cache : StatsCache | None
        Memo caches to use; a fresh set is created when omitted.
    """

    def __init__(self, config: Settings | None = None, cache: StatsCache | None = None) -> None:
        self.config = config or default_settings
        self.cache = cache or StatsCache(self.config)

        # Memoized primitives bound to this engine's caches; the composite
        # computations below are routed through them.
        self.normal_cdf = memoize(normal.normal_cdf, cache=self.cache.normal_cdf)
        self.critical_z = memoize(normal.critical_z, cache=self.cache.critical_z)
        self.p_value = memoize(self._p_value, cache=self.cache.p_value)
        self.compare = memoize(self._compare, cache=self.cache.comparisons)
        self._paired_curves = memoize(self._curves, cache=self.cache.curve_points)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def analyze(
        self,
        variants: Mapping[str, Mapping[str, Any]] | Sequence[VariantRecord],
        test_settings: TestSettings,
        include_bayesian: bool = True,
        seed: int | None = None,
    ) -> AnalysisReport:
        """Run the full analysis on a set of variants.

        Steps:
        1. Hard validation (raises ``InvalidTestDataError`` on blocking errors)
        2. Wilson interval for every active arm
        3. Frequentist comparison of the control against each other arm
        4. Bayesian simulation per comparison (optional)
        5. Probability of being best when three or more arms are active
        6. Winning-variant roll-up
        7. Insights for the first comparison
        """
        # ----------------------------------------------------------
        # 1. Validate
        # ----------------------------------------------------------
        validation = validate_test_data(variants)
        validation.raise_for_errors()
        records = validation.records
        active = [r for r in records if r.is_active]

        # ----------------------------------------------------------
        # 2. Per-arm intervals
        # ----------------------------------------------------------
        intervals = {
            r.label: frequentist.wilson_interval(
                r.visitors,
                r.conversions,
                test_settings.confidence_level,
                critical_z=self.critical_z,
            )
            for r in active
        }

        # ----------------------------------------------------------
        # 3. Comparisons (memoized)
        # ----------------------------------------------------------
        control = active[0]
        comparisons: list[Comparison] = [
            self.compare(control, test, test_settings) for test in active[1:]
        ]

        # ----------------------------------------------------------
        # 4 & 5. Bayesian
        # ----------------------------------------------------------
        bayes = {}
        prob_best = None
        if include_bayesian:
            for i, test in enumerate(active[1:]):
                bayes[test.label] = bayesian.run_bayesian_test(
                    control,
                    test,
                    n_samples=self.config.BAYESIAN_SIMULATIONS,
                    seed=None if seed is None else seed + i,
                    loss_samples=self.config.EXPECTED_LOSS_SIMULATIONS,
                )
            if len(active) > 2:
                probs = bayesian.probability_best(
                    active, n_samples=self.config.EXPECTED_LOSS_SIMULATIONS, seed=seed
                )
                prob_best = {r.label: round(p, 4) for r, p in zip(active, probs)}

        # ----------------------------------------------------------
        # 6. Winner
        # ----------------------------------------------------------
        winner = determine_winning_variant(active, test_settings.confidence_level)

        # ----------------------------------------------------------
        # 7. Insights
        # ----------------------------------------------------------
        insights = generate_insights(control, active[1], comparisons[0], test_settings)

        logger.info(
            "Analyzed %d arms: winner=%s confidence=%d",
            len(active),
            winner.winning_label.value if winner.winning_label else None,
            winner.confidence_level,
        )

        return AnalysisReport(
            settings=test_settings,
            variants=records,
            warnings=validation.warnings,
            confidence_intervals=intervals,
            comparisons=comparisons,
            bayesian=bayes,
            probability_best=prob_best,
            winner=winner,
            insights=insights,
        )

    def analyze_sequential(
        self,
        control: VariantRecord,
        test: VariantRecord,
        current_look: int,
        design: SequentialDesign,
    ) -> SequentialStatus:
        """Evaluate one interim look with cumulative counts."""
        return sequential.analyze_sequential_test(control, test, current_look, design)

    def analyze_segments(
        self,
        segment_counts: Mapping[str, Mapping[Any, Mapping[str, Any]]],
        control_key: str,
        test_key: str,
        test_settings: TestSettings,
        overall: Mapping[Any, Mapping[str, Any]] | None = None,
    ) -> SegmentAnalysis:
        """Per-segment control-vs-test comparison with a Bonferroni correction."""
        return segments.analyze_segments(
            segment_counts, control_key, test_key, test_settings, overall=overall
        )

    def curve_points(
        self,
        control_mean: float,
        control_std_dev: float,
        test_mean: float,
        test_std_dev: float,
        min_x: float,
        max_x: float,
        steps: int = 100,
        confidence_level: float = 95,
        two_sided: bool = True,
    ) -> CurvePoints:
        """Memoized paired sampling-distribution curves."""
        return self._paired_curves(
            control_mean,
            control_std_dev,
            test_mean,
            test_std_dev,
            min_x,
            max_x,
            steps,
            confidence_level,
            two_sided,
        )

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.debug("Cleared engine caches")

    # ------------------------------------------------------------------
    # Memoized building blocks
    # ------------------------------------------------------------------

    def _p_value(self, z: float, two_sided: bool) -> float:
        return frequentist.p_value(z, two_sided, normal_cdf=self.normal_cdf)

    def _compare(
        self, control: VariantRecord, test: VariantRecord, test_settings: TestSettings
    ) -> Comparison:
        return frequentist.compare_variants(
            control,
            test,
            test_settings,
            p_value_fn=self.p_value,
            critical_z=self.critical_z,
            normal_cdf=self.normal_cdf,
        )

    def _curves(self, *args: Any) -> CurvePoints:
        return curves.generate_paired_curves(*args, critical_z=self.critical_z)
