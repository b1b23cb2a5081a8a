"""Tests for insights, test strength and sample-size recommendations."""

import pytest

from splitstats.models import HypothesisType, TestSettings, VariantRecord
from splitstats.stats.frequentist import compare_variants
from splitstats.stats.insights import (
    calculate_test_strength,
    generate_insights,
    sample_size_recommendation,
)


def record(label, visitors, conversions):
    return VariantRecord(label=label, visitors=visitors, conversions=conversions)


def insights_for(control, test, settings=None):
    settings = settings or TestSettings()
    comparison = compare_variants(control, test, settings)
    return generate_insights(control, test, comparison, settings)


def titles(report):
    return [i.title for i in report.insights]


class TestGenerateInsights:
    def test_significant_winner(self):
        report = insights_for(record("A", 10_000, 500), record("B", 10_000, 600))
        assert "Statistically Significant Result" in titles(report)
        assert report.recommendations[0].action == "Implement variant B"
        assert report.recommendations[0].confidence == "high"
        assert report.summary.startswith("Variant B outperforms variant A by 20.0%")

    def test_significant_loser(self):
        report = insights_for(record("A", 10_000, 600), record("B", 10_000, 500))
        assert report.recommendations[0].action == "Keep variant A"
        assert report.summary.startswith("Variant A outperforms variant B")

    def test_trending(self):
        # p is roughly 0.1: not significant but below the trending threshold
        report = insights_for(record("A", 2_000, 100), record("B", 2_000, 122))
        assert "Trending Toward Significance" in titles(report)
        assert report.recommendations[0].action == "Continue the test"

    def test_no_difference(self):
        report = insights_for(record("A", 1_000, 50), record("B", 1_000, 50))
        assert "No Significant Difference" in titles(report)
        assert "Small Conversion Difference" in titles(report)
        assert "Low Statistical Power" in titles(report)
        assert report.recommendations[0].action == "Consider ending the test"
        assert "p-value: 1.0000" in report.summary

    def test_small_sample_and_imbalance(self):
        report = insights_for(record("A", 50, 5), record("B", 80, 9))
        assert "Small Sample Size" in titles(report)
        assert "Visitor Imbalance" in titles(report)

    def test_one_sided_confidence_in_text(self):
        settings = TestSettings(confidence_level=90, hypothesis_type=HypothesisType.ONE_SIDED)
        report = insights_for(record("A", 10_000, 500), record("B", 10_000, 600), settings)
        assert "90% confidence" in report.summary


class TestCalculateTestStrength:
    def test_significant_is_full_strength(self):
        assert calculate_test_strength(0.01, 0.05) == 100.0
        assert calculate_test_strength(0.05, 0.05) == 100.0

    def test_scaled_between(self):
        assert calculate_test_strength(0.5, 0.05) == pytest.approx(100 * 0.5 / 0.95)

    def test_floor_of_one(self):
        assert calculate_test_strength(1.0, 0.05) == 1.0

    def test_monotone_in_p(self):
        values = [calculate_test_strength(p, 0.05) for p in (0.1, 0.3, 0.6, 0.9)]
        assert all(b < a for a, b in zip(values, values[1:]))


class TestSampleSizeRecommendation:
    def test_typical(self):
        rec = sample_size_recommendation(5.0, 20.0)
        assert 3_800 < rec.sample_size_per_variant < 4_100
        assert rec.total_sample_size == rec.sample_size_per_variant * 2
        assert rec.test_duration_estimate == "2-4 weeks"

    def test_tiny_effect_takes_longer(self):
        rec = sample_size_recommendation(5.0, 2.0)
        assert rec.test_duration_estimate == "Over 2 months"

    def test_large_effect_is_quick(self):
        rec = sample_size_recommendation(30.0, 50.0)
        assert rec.test_duration_estimate == "A few days to a week"

    def test_degenerate(self):
        rec = sample_size_recommendation(0.0, 10.0)
        assert rec.sample_size_per_variant == 0
        assert rec.total_sample_size == 0
