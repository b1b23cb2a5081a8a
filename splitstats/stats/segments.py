"""Control-vs-test comparison broken down by audience segment.

Each segment (e.g. "mobile", "returning visitors") carries its own counts for
the control and test arms.  Every segment with data is tested separately, so
significance is reported twice: at the plain alpha and at a Bonferroni-
corrected alpha that divides by the number of comparisons made, the overall
comparison included.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from splitstats.core.exceptions import InvalidTestDataError
from splitstats.models import (
    FieldError,
    SegmentAnalysis,
    SegmentResult,
    TestSettings,
    VariantLabel,
    VariantRecord,
)
from splitstats.stats import frequentist
from splitstats.stats.validation import FORM_SCOPE, collect_warnings, validate_test_data

logger = logging.getLogger(__name__)

OVERALL_SEGMENT = "overall"

_NO_COUNTS = {"visitors": 0, "conversions": 0}


def _parse_pair(
    name: str,
    variants: Mapping[Any, Mapping[str, Any]],
    control_key: VariantLabel,
    test_key: VariantLabel,
    errors: dict[str, dict[str, FieldError]],
) -> tuple[VariantRecord, VariantRecord] | None:
    """Validated control/test records for one segment.

    Returns None when the counts are invalid (errors are recorded under
    ``"<segment>.<label>"``) or when either arm has no visitors.
    """
    raw = {str(getattr(k, "value", k)): v for k, v in variants.items()}
    pair = {key.value: raw.get(key.value, _NO_COUNTS) for key in (control_key, test_key)}
    validation = validate_test_data(pair)

    if validation.errors:
        for scope, fields in validation.errors.items():
            # the form-level error only says an arm had no traffic
            if scope != FORM_SCOPE:
                errors[f"{name}.{scope}"] = fields
        return None

    records = {r.label: r for r in validation.records}
    return records[control_key], records[test_key]


def compare_segment(
    name: str,
    control: VariantRecord,
    test: VariantRecord,
    settings: TestSettings,
    corrected_alpha: float,
) -> SegmentResult:
    """Test ``test`` against ``control`` inside one segment."""
    if not control.is_active or not test.is_active:
        return SegmentResult(segment=name, has_data=False)

    z = frequentist.z_score(control.visitors, control.conversions, test.visitors, test.conversions)
    p = frequentist.p_value(z, settings.is_two_sided)
    return SegmentResult(
        segment=name,
        has_data=True,
        control_rate=control.conversion_rate,
        test_rate=test.conversion_rate,
        relative_uplift=frequentist.relative_uplift(control.conversion_rate, test.conversion_rate),
        p_value=p,
        is_significant=p < settings.alpha,
        is_significant_with_correction=p < corrected_alpha,
        control_interval=frequentist.wilson_interval(
            control.visitors, control.conversions, settings.confidence_level
        ),
        test_interval=frequentist.wilson_interval(
            test.visitors, test.conversions, settings.confidence_level
        ),
        difference_interval=frequentist.difference_interval(
            control.visitors,
            control.conversions,
            test.visitors,
            test.conversions,
            settings.confidence_level,
        ),
        warnings=collect_warnings([control, test]),
    )


def analyze_segments(
    segments: Mapping[str, Mapping[Any, Mapping[str, Any]]],
    control_key: VariantLabel | str,
    test_key: VariantLabel | str,
    settings: TestSettings,
    overall: Mapping[Any, Mapping[str, Any]] | None = None,
) -> SegmentAnalysis:
    """Per-segment comparison of two arms with a Bonferroni correction.

    Parameters
    ----------
    segments : Mapping
        Segment name to a mapping of variant label to
        ``{"visitors", "conversions"}``.  A segment may omit an arm; an
        omitted arm counts as having no visitors.
    control_key, test_key : VariantLabel | str
        The two arms to compare.
    settings : TestSettings
        Confidence level (the plain alpha) and hypothesis type.
    overall : Mapping | None
        Whole-test counts in the same shape as a segment.  When omitted the
        segment counts are summed.

    Returns
    -------
    SegmentAnalysis
        One ``SegmentResult`` per segment in input order, the overall result
        and the corrected alpha.

    Raises
    ------
    InvalidTestDataError
        If any segment (or ``overall``) holds invalid counts; errors are
        keyed ``"<segment>.<label>"``.
    """
    control_key = VariantLabel(control_key)
    test_key = VariantLabel(test_key)
    if control_key is test_key:
        raise ValueError("control and test must be different variants")

    errors: dict[str, dict[str, FieldError]] = {}
    parsed = {
        name: _parse_pair(name, variants, control_key, test_key, errors)
        for name, variants in segments.items()
    }

    if overall is None:
        overall_pair = None
    else:
        overall_pair = _parse_pair(OVERALL_SEGMENT, overall, control_key, test_key, errors)

    if errors:
        raise InvalidTestDataError(errors)
    if overall is None:
        overall_pair = _pooled(segments, control_key, test_key)

    with_data = sum(1 for pair in parsed.values() if pair is not None)
    comparison_count = with_data + 1
    corrected_alpha = settings.alpha / comparison_count

    results = [
        compare_segment(name, *pair, settings, corrected_alpha)
        if pair is not None
        else SegmentResult(segment=name, has_data=False)
        for name, pair in parsed.items()
    ]
    if overall_pair is not None:
        overall_result = compare_segment(OVERALL_SEGMENT, *overall_pair, settings, corrected_alpha)
    else:
        overall_result = SegmentResult(segment=OVERALL_SEGMENT, has_data=False)

    logger.info(
        "Segment analysis %s vs %s: %d of %d segments with data, corrected alpha=%.4f",
        control_key.value,
        test_key.value,
        with_data,
        len(results),
        corrected_alpha,
    )

    return SegmentAnalysis(
        control_key=control_key,
        test_key=test_key,
        comparison_count=comparison_count,
        corrected_alpha=corrected_alpha,
        overall=overall_result,
        segments=results,
    )


def _pooled(
    segments: Mapping[str, Mapping[Any, Mapping[str, Any]]],
    control_key: VariantLabel,
    test_key: VariantLabel,
) -> tuple[VariantRecord, VariantRecord]:
    """Sum each arm's counts across all segments (already validated)."""
    totals = {control_key: [0, 0], test_key: [0, 0]}
    for variants in segments.values():
        raw = {str(getattr(k, "value", k)): v for k, v in variants.items()}
        for key, total in totals.items():
            counts = raw.get(key.value, _NO_COUNTS)
            total[0] += int(counts.get("visitors") or 0)
            total[1] += int(counts.get("conversions") or 0)
    control, test = (
        VariantRecord(label=key, visitors=totals[key][0], conversions=totals[key][1])
        for key in (control_key, test_key)
    )
    return control, test
