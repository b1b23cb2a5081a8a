"""Plain-data schemas consumed and produced by the statistics engine.

Inputs (``VariantRecord``, ``TestSettings``) arrive verbatim from a form or
caller; every result type is a frozen pydantic model so a presentation layer
can serialize it with ``model_dump()``.
"""

from __future__ import annotations

import enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from splitstats.core.exceptions import InvalidTestDataError


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class VariantLabel(str, enum.Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class HypothesisType(str, enum.Enum):
    ONE_SIDED = "one-sided"
    TWO_SIDED = "two-sided"


class BetterVariant(str, enum.Enum):
    CONTROL = "control"
    TEST = "test"
    NONE = "none"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class BoundaryFamily(str, enum.Enum):
    POCOCK = "pocock"
    OBRIEN_FLEMING = "obrien-fleming"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class VariantRecord(BaseModel):
    """One experiment arm.  ``conversion_rate`` is always derived from the counts."""

    model_config = ConfigDict(frozen=True)

    label: VariantLabel
    visitors: int = Field(ge=0)
    conversions: int = Field(ge=0)

    @model_validator(mode="after")
    def _conversions_within_visitors(self) -> VariantRecord:
        if self.conversions > self.visitors:
            raise ValueError("conversions cannot exceed visitors")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def conversion_rate(self) -> float:
        """Conversion rate in percent; 0 when there are no visitors."""
        if self.visitors == 0:
            return 0.0
        return 100.0 * self.conversions / self.visitors

    @property
    def is_active(self) -> bool:
        return self.visitors > 0

    def with_counts(
        self, visitors: int | None = None, conversions: int | None = None
    ) -> VariantRecord:
        """Return a **new** record with updated counts (the rate is re-derived)."""
        return VariantRecord(
            label=self.label,
            visitors=self.visitors if visitors is None else visitors,
            conversions=self.conversions if conversions is None else conversions,
        )


class TestSettings(BaseModel):
    model_config = ConfigDict(frozen=True)
    __test__ = False  # not a pytest class

    confidence_level: Literal[90, 95, 99] = 95
    hypothesis_type: HypothesisType = HypothesisType.TWO_SIDED

    @property
    def alpha(self) -> float:
        return (100 - self.confidence_level) / 100

    @property
    def is_two_sided(self) -> bool:
        return self.hypothesis_type is HypothesisType.TWO_SIDED


class SequentialDesign(BaseModel):
    """Plan for a group-sequential test."""

    model_config = ConfigDict(frozen=True)

    alpha_family: BoundaryFamily = BoundaryFamily.OBRIEN_FLEMING
    beta_family: BoundaryFamily = BoundaryFamily.OBRIEN_FLEMING
    total_looks: int = Field(default=5, ge=1)
    alpha: float = Field(default=0.05, gt=0, lt=1)
    beta: float = Field(default=0.2, gt=0, lt=1)


# ---------------------------------------------------------------------------
# Frequentist outputs
# ---------------------------------------------------------------------------


class Comparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    control_key: VariantLabel
    test_key: VariantLabel
    control_rate: float
    test_rate: float
    relative_uplift: float
    z_score: float
    p_value: float
    power: float
    is_significant: bool
    better_variant: BetterVariant
    standard_error: float


class ConfidenceInterval(BaseModel):
    """Interval bounds in percent."""

    model_config = ConfigDict(frozen=True)

    lower: float
    upper: float


# ---------------------------------------------------------------------------
# Bayesian outputs
# ---------------------------------------------------------------------------


class BayesianResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    probability_of_improvement: float = Field(ge=0.0, le=1.0)
    expected_lift_percent: float
    credible_interval_95: tuple[float, float]
    # threshold in percent -> P(test >= control * (1 + threshold))
    probability_beating_threshold: dict[int, float]
    expected_loss: float
    simulations: int


# ---------------------------------------------------------------------------
# Sequential outputs
# ---------------------------------------------------------------------------


class SequentialStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_look: int
    information_fraction: float
    p_value: float
    power: float
    alpha_boundary: float
    beta_boundary: float
    can_stop_for_efficacy: bool
    can_stop_for_futility: bool
    is_conclusive: bool


# ---------------------------------------------------------------------------
# Validation outputs
# ---------------------------------------------------------------------------


class ValidationErrorCode(str, enum.Enum):
    REQUIRED = "required"
    NEGATIVE = "negative"
    FRACTIONAL = "fractional"
    CONVERSIONS_EXCEED_VISITORS = "conversions_exceed"
    MINIMUM_VARIANTS = "min_variants"
    INVALID_FORMAT = "invalid_format"


class ValidationWarningCode(str, enum.Enum):
    SAMPLE_SIZE_SMALL = "sample_small_warning"
    LOW_CONVERSIONS = "low_conversions_warning"
    IMBALANCED_TRAFFIC = "imbalanced_traffic_warning"
    EXTREME_BASELINE = "extreme_baseline_warning"


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: ValidationErrorCode
    message: str
    field: str


class ValidationWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: ValidationWarningCode
    message: str
    severity: Severity
    recommendation: str


class ValidationResult(BaseModel):
    """Outcome of ``validate_test_data``.

    ``errors`` is keyed by variant label (or ``"form"``) then field name.
    ``records`` holds the parsed variants and is only populated when the
    input is valid.
    """

    errors: dict[str, dict[str, FieldError]] = Field(default_factory=dict)
    warnings: list[ValidationWarning] = Field(default_factory=list)
    records: list[VariantRecord] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise ``InvalidTestDataError`` if any blocking error was found."""
        if self.errors:
            raise InvalidTestDataError(self.errors)


# ---------------------------------------------------------------------------
# Aggregation / insights
# ---------------------------------------------------------------------------


class WinningVariant(BaseModel):
    model_config = ConfigDict(frozen=True)

    winning_label: VariantLabel | None
    confidence_level: int


class Insight(BaseModel):
    type: Literal["success", "warning", "info", "error"]
    title: str
    description: str


class Recommendation(BaseModel):
    action: str
    reasoning: str
    confidence: Literal["high", "medium", "low"]


class InsightsReport(BaseModel):
    insights: list[Insight]
    recommendations: list[Recommendation]
    summary: str


class SampleSizeRecommendation(BaseModel):
    sample_size_per_variant: int
    total_sample_size: int
    test_duration_estimate: str


# ---------------------------------------------------------------------------
# Curves
# ---------------------------------------------------------------------------


class CurvePoints(BaseModel):
    model_config = ConfigDict(frozen=True)

    control_points: list[tuple[float, float]]
    test_points: list[tuple[float, float]]
    max_y: float
    critical_x: float
    critical_z: float
    min_x: float
    max_x: float


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------


class SegmentResult(BaseModel):
    """Control-vs-test comparison inside one audience segment.

    Rates, uplift and intervals are in percent; ``difference_interval`` is
    the test rate minus the control rate in percentage points.  A segment
    where either arm has no visitors reports ``has_data=False``, a p-value
    of 1 and zeros elsewhere.
    """

    model_config = ConfigDict(frozen=True)

    segment: str
    has_data: bool
    control_rate: float = 0.0
    test_rate: float = 0.0
    relative_uplift: float = 0.0
    p_value: float = 1.0
    is_significant: bool = False
    is_significant_with_correction: bool = False
    control_interval: ConfidenceInterval = ConfidenceInterval(lower=0.0, upper=0.0)
    test_interval: ConfidenceInterval = ConfidenceInterval(lower=0.0, upper=0.0)
    difference_interval: ConfidenceInterval = ConfidenceInterval(lower=0.0, upper=0.0)
    warnings: list[ValidationWarning] = Field(default_factory=list)


class SegmentAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    control_key: VariantLabel
    test_key: VariantLabel
    # Bonferroni divisor: segments with data plus the overall comparison
    comparison_count: int
    corrected_alpha: float
    overall: SegmentResult
    segments: list[SegmentResult]


# ---------------------------------------------------------------------------
# Full report
# ---------------------------------------------------------------------------


class AnalysisReport(BaseModel):
    settings: TestSettings
    variants: list[VariantRecord]
    warnings: list[ValidationWarning]
    confidence_intervals: dict[VariantLabel, ConfidenceInterval]
    comparisons: list[Comparison]
    bayesian: dict[VariantLabel, BayesianResult] = Field(default_factory=dict)
    probability_best: dict[VariantLabel, float] | None = None
    winner: WinningVariant
    insights: InsightsReport | None = None
