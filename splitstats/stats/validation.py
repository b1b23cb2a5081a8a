"""Input validation: blocking field errors and advisory warnings.

Blocking errors (negative or fractional counts, conversions above visitors,
fewer than two active variants) must stop any further computation.  Warnings
describe statistically weak data and are always returned alongside the
results; they never block.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from splitstats.models import (
    FieldError,
    Severity,
    ValidationErrorCode,
    ValidationResult,
    ValidationWarning,
    ValidationWarningCode,
    VariantLabel,
    VariantRecord,
)

logger = logging.getLogger(__name__)

MIN_VISITORS = 100
MIN_CONVERSIONS = 25
VERY_LOW_CONVERSIONS = 10
MAX_TRAFFIC_DEVIATION = 0.20
EXTREME_RATE_LOW = 1.0
EXTREME_RATE_HIGH = 99.0

FORM_SCOPE = "form"


# ======================================================================
# Predicates
# ======================================================================


def has_adequate_sample_size(visitors: int) -> bool:
    return visitors >= MIN_VISITORS


def has_adequate_conversions(conversions: int) -> bool:
    return conversions >= MIN_CONVERSIONS


def has_extreme_baseline(rate: float) -> bool:
    """True when a conversion rate (percent) lies outside [1%, 99%]."""
    return rate < EXTREME_RATE_LOW or rate > EXTREME_RATE_HIGH


def has_balanced_traffic(records: Sequence[VariantRecord]) -> bool:
    """True unless an active arm deviates more than 20% from an equal split."""
    active = [r for r in records if r.is_active]
    if len(active) < 2:
        return True
    expected = sum(r.visitors for r in active) / len(active)
    return all(abs(r.visitors - expected) / expected <= MAX_TRAFFIC_DEVIATION for r in active)


# ======================================================================
# Warnings
# ======================================================================


def _variant_warnings(record: VariantRecord) -> list[ValidationWarning]:
    warnings: list[ValidationWarning] = []
    name = record.label.value

    if not has_adequate_sample_size(record.visitors):
        warnings.append(
            ValidationWarning(
                code=ValidationWarningCode.SAMPLE_SIZE_SMALL,
                message=f"Variant {name} has a small sample size ({record.visitors} visitors)",
                severity=Severity.HIGH,
                recommendation=(
                    f"For reliable results, aim for at least {MIN_VISITORS} visitors per variant"
                ),
            )
        )

    if not has_adequate_conversions(record.conversions):
        warnings.append(
            ValidationWarning(
                code=ValidationWarningCode.LOW_CONVERSIONS,
                message=f"Variant {name} has few conversions ({record.conversions})",
                severity=(
                    Severity.HIGH if record.conversions < VERY_LOW_CONVERSIONS else Severity.MEDIUM
                ),
                recommendation=(
                    f"For reliable results, aim for at least {MIN_CONVERSIONS} conversions per variant"
                ),
            )
        )

    if has_extreme_baseline(record.conversion_rate):
        warnings.append(
            ValidationWarning(
                code=ValidationWarningCode.EXTREME_BASELINE,
                message=(
                    f"Variant {name} has an extreme conversion rate "
                    f"({record.conversion_rate:.2f}%)"
                ),
                severity=Severity.MEDIUM,
                recommendation=(
                    "Extreme conversion rates may require larger sample sizes for reliable results"
                ),
            )
        )

    return warnings


def collect_warnings(records: Sequence[VariantRecord]) -> list[ValidationWarning]:
    """Advisory warnings for already-valid records (inactive arms are skipped)."""
    warnings: list[ValidationWarning] = []
    for record in records:
        if record.is_active:
            warnings.extend(_variant_warnings(record))

    active_count = sum(1 for r in records if r.is_active)
    if active_count >= 2 and not has_balanced_traffic(records):
        warnings.append(
            ValidationWarning(
                code=ValidationWarningCode.IMBALANCED_TRAFFIC,
                message="Traffic is not evenly distributed between variants",
                severity=Severity.MEDIUM,
                recommendation="For optimal results, aim for similar visitor counts across variants",
            )
        )
    return warnings


# ======================================================================
# Hard validation
# ======================================================================


def _check_count(value: Any, field: str, noun: str) -> FieldError | None:
    if value is None:
        return FieldError(
            code=ValidationErrorCode.REQUIRED, message=f"{noun} count is required", field=field
        )
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return FieldError(
            code=ValidationErrorCode.INVALID_FORMAT,
            message=f"{noun} count must be a number",
            field=field,
        )
    if not math.isfinite(value):
        return FieldError(
            code=ValidationErrorCode.INVALID_FORMAT,
            message=f"{noun} count must be a finite number",
            field=field,
        )
    if value < 0:
        return FieldError(
            code=ValidationErrorCode.NEGATIVE, message=f"{noun} count cannot be negative", field=field
        )
    if value != int(value):
        return FieldError(
            code=ValidationErrorCode.FRACTIONAL,
            message=f"{noun} count must be a whole number",
            field=field,
        )
    return None


def _as_raw_mapping(
    variants: Mapping[str, Mapping[str, Any]] | Sequence[VariantRecord],
) -> dict[str, dict[str, Any]]:
    if isinstance(variants, Mapping):
        return {str(getattr(k, "value", k)): dict(v) for k, v in variants.items()}
    return {
        r.label.value: {"visitors": r.visitors, "conversions": r.conversions} for r in variants
    }


def validate_test_data(
    variants: Mapping[str, Mapping[str, Any]] | Sequence[VariantRecord],
) -> ValidationResult:
    """Validate raw variant counts.

    Parameters
    ----------
    variants : Mapping | Sequence[VariantRecord]
        Either a mapping of label ("A".."D") to ``{"visitors", "conversions"}``
        or already-built records.

    Returns
    -------
    ValidationResult
        Field-scoped ``errors`` (blocking), ``warnings`` (advisory) and the
        parsed ``records`` when no error was found.
    """
    raw = _as_raw_mapping(variants)
    errors: dict[str, dict[str, FieldError]] = {}

    def add_error(scope: str, error: FieldError) -> None:
        errors.setdefault(scope, {})[error.field] = error

    labels = {label.value for label in VariantLabel}
    active_keys: list[str] = []

    for key, data in raw.items():
        if key not in labels:
            add_error(
                key,
                FieldError(
                    code=ValidationErrorCode.INVALID_FORMAT,
                    message=f"Unknown variant label {key!r}",
                    field="label",
                ),
            )
            continue

        visitors = data.get("visitors")
        conversions = data.get("conversions", 0)

        # An arm with no traffic is inactive, but its conversions must still be sane.
        if visitors == 0:
            conversions_error = _check_count(conversions, "conversions", "Conversion")
            if conversions_error is not None:
                add_error(key, conversions_error)
            elif conversions > 0:
                add_error(
                    key,
                    FieldError(
                        code=ValidationErrorCode.CONVERSIONS_EXCEED_VISITORS,
                        message="Conversions cannot exceed visitor count",
                        field="conversions",
                    ),
                )
            continue

        visitors_error = _check_count(visitors, "visitors", "Visitor")
        if visitors_error is not None:
            add_error(key, visitors_error)
        else:
            active_keys.append(key)

        conversions_error = _check_count(conversions, "conversions", "Conversion")
        if conversions_error is not None:
            add_error(key, conversions_error)
        elif visitors_error is None and conversions > visitors:
            add_error(
                key,
                FieldError(
                    code=ValidationErrorCode.CONVERSIONS_EXCEED_VISITORS,
                    message="Conversions cannot exceed visitor count",
                    field="conversions",
                ),
            )

    if len(active_keys) < 2:
        add_error(
            FORM_SCOPE,
            FieldError(
                code=ValidationErrorCode.MINIMUM_VARIANTS,
                message="At least 2 variants with visitor data are required",
                field="general",
            ),
        )

    if errors:
        logger.info("Validation blocked analysis: %d error scope(s)", len(errors))
        return ValidationResult(errors=errors)

    records = [
        VariantRecord(
            label=VariantLabel(key),
            visitors=int(data["visitors"]) if key in active_keys else 0,
            conversions=int(data.get("conversions") or 0) if key in active_keys else 0,
        )
        for key, data in sorted(raw.items())
    ]
    return ValidationResult(warnings=collect_warnings(records), records=records)
