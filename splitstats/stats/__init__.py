"""SplitStats statistics engine.

Public API:
- normal_cdf / critical_z: standard normal primitives
- LRUCache / memoize / StatsCache: bounded memoization
- compare_variants: pooled two-proportion Z-test with power and uplift
- difference_interval: interval for the difference of two rates
- analyze_segments: per-segment comparison with a Bonferroni correction
- validate_test_data: blocking field errors and advisory warnings
- BetaBinomial / run_bayesian_test: Monte Carlo Bayesian comparison
- analyze_sequential_test: group-sequential stop/continue decision
- determine_winning_variant: multi-arm winner with blended confidence
- generate_insights: plain-English recommendations
- StatsEngine: orchestrator that ties everything together
"""

from splitstats.stats.bayesian import BetaBinomial, expected_loss, run_bayesian_test
from splitstats.stats.cache import LRUCache, StatsCache, memoize
from splitstats.stats.engine import StatsEngine
from splitstats.stats.frequentist import (
    compare_variants,
    difference_interval,
    generate_comparisons,
    wilson_interval,
)
from splitstats.stats.insights import generate_insights
from splitstats.stats.normal import critical_z, normal_cdf
from splitstats.stats.segments import analyze_segments
from splitstats.stats.sequential import alpha_boundary, analyze_sequential_test, beta_boundary
from splitstats.stats.validation import validate_test_data
from splitstats.stats.winner import determine_winning_variant

__all__ = [
    "normal_cdf",
    "critical_z",
    "LRUCache",
    "StatsCache",
    "memoize",
    "compare_variants",
    "generate_comparisons",
    "wilson_interval",
    "difference_interval",
    "analyze_segments",
    "validate_test_data",
    "BetaBinomial",
    "run_bayesian_test",
    "expected_loss",
    "alpha_boundary",
    "beta_boundary",
    "analyze_sequential_test",
    "determine_winning_variant",
    "generate_insights",
    "StatsEngine",
]
