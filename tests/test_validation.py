"""Tests for input validation (blocking errors and advisory warnings)."""

import math

import pytest

from splitstats.core.exceptions import InvalidTestDataError
from splitstats.models import (
    Severity,
    ValidationErrorCode,
    ValidationWarningCode,
    VariantLabel,
    VariantRecord,
)
from splitstats.stats.validation import (
    FORM_SCOPE,
    collect_warnings,
    has_balanced_traffic,
    has_extreme_baseline,
    validate_test_data,
)


def healthy(**overrides):
    data = {
        "A": {"visitors": 1000, "conversions": 50},
        "B": {"visitors": 1000, "conversions": 60},
    }
    data.update(overrides)
    return data


def warning_codes(result):
    return [w.code for w in result.warnings]


class TestBlockingErrors:
    """Errors that must stop any further computation."""

    def test_valid_input(self):
        result = validate_test_data(healthy())
        assert result.is_valid
        assert [r.label for r in result.records] == [VariantLabel.A, VariantLabel.B]
        assert result.records[1].conversion_rate == pytest.approx(6.0)
        result.raise_for_errors()

    def test_negative_visitors(self):
        result = validate_test_data(healthy(B={"visitors": -5, "conversions": 0}))
        assert result.errors["B"]["visitors"].code is ValidationErrorCode.NEGATIVE
        assert result.records == []

    def test_fractional_conversions(self):
        result = validate_test_data(healthy(B={"visitors": 100, "conversions": 2.5}))
        assert result.errors["B"]["conversions"].code is ValidationErrorCode.FRACTIONAL

    def test_whole_float_is_accepted(self):
        result = validate_test_data(healthy(B={"visitors": 1000.0, "conversions": 60.0}))
        assert result.is_valid
        assert result.records[1].visitors == 1000
        assert isinstance(result.records[1].visitors, int)

    def test_conversions_exceed_visitors(self):
        result = validate_test_data(healthy(A={"visitors": 10, "conversions": 11}))
        assert result.errors["A"]["conversions"].code is ValidationErrorCode.CONVERSIONS_EXCEED_VISITORS

    @pytest.mark.parametrize("bad", ["12", True, math.nan, math.inf, [1]])
    def test_invalid_format(self, bad):
        result = validate_test_data(healthy(B={"visitors": bad, "conversions": 0}))
        assert result.errors["B"]["visitors"].code is ValidationErrorCode.INVALID_FORMAT

    def test_missing_visitors(self):
        result = validate_test_data(healthy(B={"conversions": 3}))
        assert result.errors["B"]["visitors"].code is ValidationErrorCode.REQUIRED

    def test_unknown_label(self):
        result = validate_test_data(healthy(E={"visitors": 100, "conversions": 1}))
        assert result.errors["E"]["label"].code is ValidationErrorCode.INVALID_FORMAT

    def test_minimum_two_active_variants(self):
        result = validate_test_data({"A": {"visitors": 1000, "conversions": 50}})
        assert result.errors[FORM_SCOPE]["general"].code is ValidationErrorCode.MINIMUM_VARIANTS

    def test_zero_visitor_arm_is_inactive_not_an_error(self):
        result = validate_test_data(healthy(C={"visitors": 0, "conversions": 0}))
        assert result.is_valid
        inactive = [r for r in result.records if not r.is_active]
        assert [r.label for r in inactive] == [VariantLabel.C]

    def test_zero_visitor_arms_do_not_count_as_active(self):
        result = validate_test_data(
            {"A": {"visitors": 100, "conversions": 5}, "B": {"visitors": 0, "conversions": 0}}
        )
        assert FORM_SCOPE in result.errors

    def test_conversions_on_inactive_arm(self):
        result = validate_test_data(healthy(C={"visitors": 0, "conversions": 4}))
        assert result.errors["C"]["conversions"].code is ValidationErrorCode.CONVERSIONS_EXCEED_VISITORS

    @pytest.mark.parametrize(
        "conversions, code",
        [
            (-5, ValidationErrorCode.NEGATIVE),
            (2.5, ValidationErrorCode.FRACTIONAL),
            ("x", ValidationErrorCode.INVALID_FORMAT),
        ],
    )
    def test_bad_conversions_on_inactive_arm(self, conversions, code):
        result = validate_test_data(healthy(C={"visitors": 0, "conversions": conversions}))
        assert not result.is_valid
        assert result.errors["C"]["conversions"].code is code
        assert result.records == []

    def test_raise_for_errors(self):
        result = validate_test_data(healthy(B={"visitors": -1, "conversions": 0}))
        with pytest.raises(InvalidTestDataError) as info:
            result.raise_for_errors()
        assert "B.visitors" in str(info.value)
        assert info.value.errors is result.errors

    def test_accepts_records(self):
        records = [
            VariantRecord(label="B", visitors=1000, conversions=60),
            VariantRecord(label="A", visitors=1000, conversions=50),
        ]
        result = validate_test_data(records)
        assert result.is_valid
        assert [r.label.value for r in result.records] == ["A", "B"]


class TestWarnings:
    """Advisory warnings are returned with the records and never block."""

    def test_healthy_data_has_no_warnings(self):
        assert validate_test_data(healthy()).warnings == []

    def test_small_sample(self):
        result = validate_test_data(healthy(B={"visitors": 99, "conversions": 30}))
        assert ValidationWarningCode.SAMPLE_SIZE_SMALL in warning_codes(result)

    def test_low_conversions_severity(self):
        result = validate_test_data(healthy(B={"visitors": 1000, "conversions": 9}))
        low = [w for w in result.warnings if w.code is ValidationWarningCode.LOW_CONVERSIONS]
        assert low[0].severity is Severity.HIGH

        result = validate_test_data(healthy(B={"visitors": 1000, "conversions": 20}))
        low = [w for w in result.warnings if w.code is ValidationWarningCode.LOW_CONVERSIONS]
        assert low[0].severity is Severity.MEDIUM

    def test_extreme_baseline(self):
        assert has_extreme_baseline(0.5)
        assert has_extreme_baseline(99.5)
        assert not has_extreme_baseline(1.0)
        assert not has_extreme_baseline(50.0)

    def test_imbalanced_traffic(self):
        result = validate_test_data(
            {"A": {"visitors": 1000, "conversions": 50}, "B": {"visitors": 1600, "conversions": 80}}
        )
        assert ValidationWarningCode.IMBALANCED_TRAFFIC in warning_codes(result)

    def test_balance_ignores_inactive_arms(self):
        records = [
            VariantRecord(label="A", visitors=1000, conversions=50),
            VariantRecord(label="B", visitors=1100, conversions=50),
            VariantRecord(label="C", visitors=0, conversions=0),
        ]
        assert has_balanced_traffic(records)
        assert collect_warnings(records) == []

    def test_warnings_do_not_block(self):
        result = validate_test_data(
            {"A": {"visitors": 10, "conversions": 0}, "B": {"visitors": 10, "conversions": 1}}
        )
        assert result.is_valid
        assert len(result.records) == 2
        assert result.warnings
