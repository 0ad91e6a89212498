"""
Pydantic models for the KPI engine.

This module provides type-safe data validation and serialization for every entity
the engine reads or produces:

- Definition-time models: KPIDefinition, ScoringRule
- Per-snapshot inputs: KPIResponse, ClusterKey
- Reference data: BenchmarkDistribution, DistributionSummary, ClusterProfile and its rule models
- Per-snapshot outputs: ScoredKPI, FlaggedKPI, AxisScore, ScoreSummary,
  BenchmarkComparison, ValueComparison, CorrelationInsight, RiskAlert,
  StageTransitionAssessment, Report

Output models are frozen and hold tuples, so a Report cannot be mutated once
assembled. Field names are camelCase because the Report's JSON form is the contract
consumed by rendering layers. All models use Pydantic v2 syntax.
"""

import re
from datetime import date, datetime
from types import MappingProxyType
from typing import Dict, List, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from kpi_engine.models.enums import (
    AlertSeverity,
    Axis,
    AxisStatus,
    BenchmarkDirection,
    ConditionOperator,
    CorrelationFormula,
    FlagReason,
    InputKind,
    InsightPriority,
    PerformanceTier,
    WeightTier,
)


# Raw answer shapes: a number, or the selected choice indices
RawValue = Union[float, Tuple[int, ...]]

_YEAR_MONTH = re.compile(r"^\d{4}-\d{2}$")


# =============================================================================
# KPI Definitions and Responses
# =============================================================================


class ScoringRule(BaseModel):
    """
    Normalization rule turning a raw answer into a score.

    Numeric answers are interpolated linearly between (minValue, minScore) and
    (maxValue, maxScore) and held at the endpoint scores outside that range.
    minValue may exceed maxValue for metrics where smaller is better.
    Choice-based answers look up `choices[index]`.
    """
    model_config = ConfigDict(frozen=True)

    minValue: Optional[float] = Field(default=None, description="Raw value mapped to minScore")
    maxValue: Optional[float] = Field(default=None, description="Raw value mapped to maxScore")
    minScore: float = Field(default=0.0, description="Score at minValue")
    maxScore: float = Field(default=100.0, description="Score at maxValue")
    choices: Tuple[float, ...] = Field(
        default=(),
        description="Score per choice index for rubric/multiselect/checklist answers"
    )

    @model_validator(mode='after')
    def _check_range(self) -> 'ScoringRule':
        if (self.minValue is None) != (self.maxValue is None):
            raise ValueError("minValue and maxValue must be given together")
        if self.minValue is not None and self.minValue == self.maxValue:
            raise ValueError("minValue and maxValue must differ")
        return self


class KPIDefinition(BaseModel):
    """
    Authored description of one diagnostic KPI.

    The weight accepts 1/2/3 and the legacy "x1"/"x2"/"x3" labels; anything else
    fails validation when the catalogue is loaded.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "kpiId": "EC-07",
                "name": "Customer acquisition cost (CAC)",
                "question": "What is your blended CAC?",
                "axis": "EC",
                "weight": "x3",
                "inputKind": "numeric",
                "scoring": {"minValue": 500000, "maxValue": 50000}
            }
        }
    )

    kpiId: str = Field(..., min_length=1, description="Stable KPI identifier")
    name: str = Field(..., min_length=1, description="Human-readable KPI name")
    question: Optional[str] = Field(default=None, description="Question shown to the founder")
    axis: Axis = Field(..., description="Axis the KPI contributes to")
    weight: WeightTier = Field(..., description="Weight tier (1, 2 or 3)")
    category: Optional[str] = Field(
        default=None,
        description="Declared benchmark category; overrides keyword matching"
    )
    inputKind: InputKind = Field(default=InputKind.NUMERIC, description="Answer type")
    scoring: Optional[ScoringRule] = Field(default=None, description="Normalization rule")

    @field_validator('weight', mode='before')
    @classmethod
    def _parse_weight(cls, value):
        return WeightTier.parse(value)

    @property
    def search_text(self) -> str:
        """Text the category matcher runs over."""
        return " ".join(part for part in (self.name, self.question or "", self.kpiId) if part)


class KPIResponse(BaseModel):
    """
    One answer for one KPI in a diagnostic snapshot.

    rawValue holds a number for numeric/calculation KPIs, a selected index for
    rubric KPIs, or a list of selected indices for multiselect/checklist KPIs.
    `score` lets an upstream collaborator pass an already-normalized score; it is
    validated, never clamped.
    """
    model_config = ConfigDict(frozen=True)

    kpiId: str = Field(..., min_length=1)
    rawValue: Optional[RawValue] = Field(default=None)
    score: Optional[float] = Field(default=None, description="Pre-normalized score")
    notApplicable: bool = Field(default=False, description="Answer marked N/A by the founder")


class ScoredKPI(BaseModel):
    """
    A response paired with its normalized score and resolved category.
    """
    model_config = ConfigDict(frozen=True)

    kpiId: str
    name: str
    axis: Axis
    weight: WeightTier
    inputKind: InputKind
    rawValue: Optional[RawValue] = None
    score: float = Field(..., ge=0.0, le=100.0, description="Normalized score in [0, 100]")
    category: str = Field(..., description="Resolved benchmark category")

    @property
    def numeric_value(self) -> Optional[float]:
        """Raw number for numeric/calculation KPIs, otherwise None."""
        if self.inputKind in (InputKind.NUMERIC, InputKind.CALCULATION) and isinstance(
            self.rawValue, (int, float)
        ):
            return float(self.rawValue)
        return None


class FlaggedKPI(BaseModel):
    """
    A response excluded from aggregation, surfaced in the report instead of
    being silently dropped or clamped.
    """
    model_config = ConfigDict(frozen=True)

    kpiId: str
    reason: FlagReason
    value: Optional[float] = None
    detail: str = ""


class ClusterKey(BaseModel):
    """
    (segment, stage) pair selecting benchmark and interpretation context.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    segment: str = Field(..., min_length=1, description="Business segment, e.g. 'B2B SaaS'")
    stage: str = Field(..., min_length=1, description="Growth stage, e.g. 'Product-Market Fit'")


# =============================================================================
# Reference Data (Cluster Knowledge Base)
# =============================================================================


class BenchmarkDistribution(BaseModel):
    """
    Five-anchor summary of a reference population for one KPI category.

    Anchors must be non-negative and non-decreasing (p10 <= p25 <= p50 <= p75 <= p90).
    lastUpdated accepts ISO dates and "YYYY-MM" month stamps.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "category": "mau",
                "p10": 200, "p25": 500, "p50": 1500, "p75": 5000, "p90": 15000,
                "source": "SaaS Capital PMF Survey 2024",
                "lastUpdated": "2024-01",
                "sampleSize": 450
            }
        }
    )

    category: str = Field(..., min_length=1)
    p10: float = Field(..., ge=0.0)
    p25: float = Field(..., ge=0.0)
    p50: float = Field(..., ge=0.0)
    p75: float = Field(..., ge=0.0)
    p90: float = Field(..., ge=0.0)
    source: str = Field(..., min_length=1, description="Where the reference data comes from")
    lastUpdated: date = Field(..., description="When the reference data was last refreshed")
    sampleSize: Optional[int] = Field(default=None, ge=1)
    direction: BenchmarkDirection = Field(default=BenchmarkDirection.HIGHER_IS_BETTER)

    @field_validator('lastUpdated', mode='before')
    @classmethod
    def _parse_month(cls, value):
        if isinstance(value, str) and _YEAR_MONTH.match(value.strip()):
            return f"{value.strip()}-01"
        return value

    @field_validator('source')
    @classmethod
    def _non_blank_source(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("source must not be blank")
        return value

    @model_validator(mode='after')
    def _check_monotonic(self) -> 'BenchmarkDistribution':
        anchors = self.anchors
        for lower, upper in zip(anchors, anchors[1:]):
            if lower > upper:
                raise ValueError(
                    f"anchors for '{self.category}' must be non-decreasing "
                    f"(p10<=p25<=p50<=p75<=p90), got {list(anchors)}"
                )
        return self

    @property
    def anchors(self) -> Tuple[float, float, float, float, float]:
        return (self.p10, self.p25, self.p50, self.p75, self.p90)


class RiskThresholds(BaseModel):
    """
    Thresholds for the built-in risk rules, overridable per cluster profile.
    """
    model_config = ConfigDict(frozen=True)

    lowScore: float = Field(default=40.0, ge=0.0, le=100.0)
    lowScoreCriticalCount: int = Field(default=3, ge=1)
    criticalKpiScore: float = Field(default=50.0, ge=0.0, le=100.0)
    teamHealthScore: float = Field(default=40.0, ge=0.0, le=100.0)
    unitEconomicsRatio: float = Field(default=2.0, gt=0.0)
    unitEconomicsCriticalRatio: float = Field(default=1.0, gt=0.0)


class RiskRuleCondition(BaseModel):
    """One score comparison a declarative risk rule requires."""
    model_config = ConfigDict(frozen=True)

    category: str = Field(..., min_length=1)
    operator: ConditionOperator
    score: float = Field(..., ge=0.0, le=100.0)


class RiskRuleDefinition(BaseModel):
    """
    Cluster-specific risk rule: fires when every condition holds for some KPI of
    the condition's category.
    """
    model_config = ConfigDict(frozen=True)

    ruleId: str = Field(..., min_length=1)
    severity: AlertSeverity
    title: str
    description: str = ""
    conditions: Tuple[RiskRuleCondition, ...] = Field(..., min_length=1)
    suggestedActions: Tuple[str, ...] = ()


class TransitionCondition(BaseModel):
    """Minimum score a category must reach before the next stage."""
    model_config = ConfigDict(frozen=True)

    category: str = Field(..., min_length=1)
    minScore: float = Field(..., ge=0.0, le=100.0)
    description: str = ""


class StageTransition(BaseModel):
    """Conditions and recommended actions for moving to the next stage."""
    model_config = ConfigDict(frozen=True)

    nextStage: str
    requiredConditions: Tuple[TransitionCondition, ...] = ()
    recommendedActions: Tuple[str, ...] = ()


class ClusterProfile(BaseModel):
    """
    Benchmark and interpretation context for one (segment, stage) cluster.

    Loaded once and shared read-only by every report built from the knowledge base
    snapshot that holds it; a reload replaces the whole snapshot. The benchmark and
    template tables are exposed as read-only mappings.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    profileId: str = Field(..., min_length=1)
    segment: str = Field(..., min_length=1)
    stage: str = Field(..., min_length=1)
    displayName: str = ""
    description: str = ""
    criticalSuccessFactors: Tuple[str, ...] = ()
    targetArpu: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Monthly revenue per user this cluster should reach"
    )
    benchmarks: Dict[str, BenchmarkDistribution] = Field(default_factory=dict, validate_default=True)
    interpretationTemplates: Dict[str, Dict[PerformanceTier, str]] = Field(
        default_factory=dict,
        validate_default=True,
        description="category -> tier -> message template"
    )
    riskRules: Tuple[RiskRuleDefinition, ...] = ()
    riskThresholds: RiskThresholds = Field(default_factory=RiskThresholds)
    stageTransition: Optional[StageTransition] = None

    @field_validator('benchmarks', mode='after')
    @classmethod
    def _freeze_benchmarks(cls, value):
        return MappingProxyType(dict(value))

    @field_validator('interpretationTemplates', mode='after')
    @classmethod
    def _freeze_templates(cls, value):
        return MappingProxyType({
            category: MappingProxyType(dict(templates))
            for category, templates in value.items()
        })

    @field_serializer('benchmarks', 'interpretationTemplates')
    def _thaw_mappings(self, value):
        return {
            key: dict(item) if isinstance(item, MappingProxyType) else item
            for key, item in value.items()
        }


# =============================================================================
# Per-Snapshot Outputs
# =============================================================================


class AxisScore(BaseModel):
    """
    Aggregate score for one axis. `score` is None when the axis is incomplete.
    """
    model_config = ConfigDict(frozen=True)

    axis: Axis
    score: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    status: AxisStatus
    totalWeight: int = Field(default=0, ge=0)
    kpiCount: int = Field(default=0, ge=0)


class ScoreSummary(BaseModel):
    """Per-axis scores plus the weight-proportional overall score."""
    model_config = ConfigDict(frozen=True)

    axisScores: Tuple[AxisScore, ...]
    overallScore: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    overallStatus: AxisStatus


class BenchmarkComparison(BaseModel):
    """
    Standing of one KPI value against its cluster distribution.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "kpiId": "GO-01",
                "category": "mau",
                "value": 1500,
                "percentile": 50.0,
                "percentileLabel": "Above Average",
                "performance": "average",
                "message": "1.5K users is in line with the industry median.",
                "confidence": 78.4,
                "benchmarkProfileId": "technology-product_market_fit",
                "source": "SaaS Capital PMF Survey 2024"
            }
        }
    )

    kpiId: str
    category: str
    value: float
    percentile: float = Field(..., ge=0.0, le=100.0)
    percentileLabel: str
    performance: PerformanceTier
    message: str
    confidence: float = Field(..., ge=0.0, le=100.0, description="Advisory only")
    benchmarkProfileId: str
    source: str


class DistributionSummary(BaseModel):
    """Headline figures of a benchmark distribution for display."""
    model_config = ConfigDict(frozen=True)

    category: str
    median: float
    average: float = Field(..., description="Mean of the five anchors; an approximation")
    rangeMin: float
    rangeMax: float
    topQuartile: float
    bottomQuartile: float


class ValueComparison(BaseModel):
    """Difference between a value and a reference value, with a short verdict."""
    model_config = ConfigDict(frozen=True)

    value: float
    reference: float
    difference: float = Field(..., description="value - reference")
    percentageDiff: Optional[float] = Field(
        default=None,
        description="Difference as a percentage of |reference|; None for a zero reference"
    )
    message: str


class CorrelationInsight(BaseModel):
    """
    A derived metric computed from several raw KPI values.
    """
    model_config = ConfigDict(frozen=True)

    formulaId: CorrelationFormula
    title: str
    value: float
    priority: InsightPriority
    interpretation: str
    affectedKPIs: Tuple[str, ...] = ()


class RiskAlert(BaseModel):
    """
    A condition flagged by one independent risk rule.
    """
    model_config = ConfigDict(frozen=True)

    severity: AlertSeverity
    ruleId: str
    title: str
    description: str = ""
    affectedKPIs: Tuple[str, ...] = ()
    suggestedActions: Tuple[str, ...] = ()


class TransitionConditionResult(BaseModel):
    """Outcome of one stage-transition condition."""
    model_config = ConfigDict(frozen=True)

    category: str
    minScore: float
    description: str = ""
    kpiId: Optional[str] = None
    score: Optional[float] = None
    met: bool


class StageTransitionAssessment(BaseModel):
    """Readiness for the next growth stage."""
    model_config = ConfigDict(frozen=True)

    currentStage: str
    nextStage: str
    conditions: Tuple[TransitionConditionResult, ...] = ()
    ready: bool
    recommendedActions: Tuple[str, ...] = ()


class Report(BaseModel):
    """
    Complete, immutable result of one diagnostic snapshot.

    `Report.model_dump(mode="json")` yields only numbers, strings, lists and
    objects, so any rendering layer can consume it.
    """
    model_config = ConfigDict(frozen=True)

    clusterKey: ClusterKey
    profileId: str
    usedFallbackProfile: bool
    knowledgeBaseVersion: str
    asOf: datetime
    overallScore: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    overallStatus: AxisStatus
    axisScores: Tuple[AxisScore, ...] = ()
    scoredKPIs: Tuple[ScoredKPI, ...] = ()
    flaggedKPIs: Tuple[FlaggedKPI, ...] = ()
    benchmarkComparisons: Tuple[BenchmarkComparison, ...] = ()
    correlationInsights: Tuple[CorrelationInsight, ...] = ()
    riskAlerts: Tuple[RiskAlert, ...] = ()
    stageTransition: Optional[StageTransitionAssessment] = None

    @property
    def incomplete_axes(self) -> List[Axis]:
        """Axes the rendering layer must show as 'insufficient data'."""
        return [item.axis for item in self.axisScores if item.status == AxisStatus.INCOMPLETE]
