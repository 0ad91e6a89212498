"""
Enumeration definitions for the KPI engine.

All string enums inherit from both `str` and `Enum` so they serialize as plain
strings inside Pydantic models, keeping the Report JSON-serializable without any
custom encoders. WeightTier is an IntEnum because its members take part in
arithmetic.
"""

from enum import Enum, IntEnum
from typing import Union


class Axis(str, Enum):
    """
    Business dimensions a KPI is scored on.

    - GO: Growth & operations (customers, users, traction)
    - EC: Economics (revenue, margins, burn, unit economics)
    - PT: Product & technology
    - PF: Proof (market validation, satisfaction, retention evidence)
    - TO: Team & organization

    Declaration order is the display order used in reports.
    """
    GO = "GO"
    EC = "EC"
    PT = "PT"
    PF = "PF"
    TO = "TO"


# Display order, fixed independently of dict/set iteration
AXIS_ORDER = tuple(Axis)


class WeightTier(IntEnum):
    """
    Relative importance of a KPI in aggregate scoring.

    Exactly three tiers exist. The legacy labels "x1", "x2" and "x3" are
    accepted when parsing; every other value is rejected.
    """
    STANDARD = 1
    IMPORTANT = 2
    CRITICAL = 3

    @classmethod
    def parse(cls, raw: Union[int, str, "WeightTier"]) -> "WeightTier":
        """
        Parse a weight tier from 1/2/3 or "x1"/"x2"/"x3".

        Raises:
            ValueError: If the value is not one of the three tiers.
        """
        if isinstance(raw, WeightTier):
            return raw
        if isinstance(raw, bool):
            raise ValueError(f"Unknown weight tier: {raw!r}")
        if isinstance(raw, str):
            label = raw.strip().lower()
            if label.startswith("x"):
                label = label[1:]
            if not label.isdigit():
                raise ValueError(f"Unknown weight tier: {raw!r}")
            raw = int(label)
        if isinstance(raw, float) and raw.is_integer():
            raw = int(raw)
        try:
            return cls(raw)
        except ValueError:
            raise ValueError(f"Unknown weight tier: {raw!r}") from None


class InputKind(str, Enum):
    """
    How a KPI answer is collected and therefore normalized.

    - numeric: A number mapped onto [0, 100] by a min/max rule
    - rubric: One selected choice; the choice carries its score
    - multiselect: Several selected choices; scores are summed
    - checklist: Like multiselect, one point block per checked item
    - calculation: A precomputed fraction, scaled by 100
    """
    NUMERIC = "numeric"
    RUBRIC = "rubric"
    MULTISELECT = "multiselect"
    CHECKLIST = "checklist"
    CALCULATION = "calculation"


class PerformanceTier(str, Enum):
    """
    Qualitative standing of a value against a benchmark distribution.

    Thresholds on the (direction-adjusted) percentile, inclusive lower bounds:
    - excellent: >= 90
    - good: >= 75
    - average: >= 40
    - below_average: >= 25
    - poor: otherwise
    """
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    BELOW_AVERAGE = "below_average"
    POOR = "poor"


class BenchmarkDirection(str, Enum):
    """
    Whether a larger raw value is better (revenue) or worse (burn, churn).
    """
    HIGHER_IS_BETTER = "higher_is_better"
    LOWER_IS_BETTER = "lower_is_better"


class InsightPriority(str, Enum):
    """
    Priority of a correlation insight. Declaration order is the sort order.
    """
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertSeverity(str, Enum):
    """
    Severity levels for risk alerts. Declaration order is the sort order.

    - critical: Requires immediate attention
    - warning: Needs attention soon
    - info: Informational notification
    """
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class AxisStatus(str, Enum):
    """
    Whether an axis score could be computed.

    - complete: At least one KPI contributed
    - incomplete: No KPI contributed; the score is undefined, never zero
    """
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


class FlagReason(str, Enum):
    """
    Why a KPI response was excluded from aggregation.
    """
    SCORE_OUT_OF_RANGE = "score_out_of_range"
    UNKNOWN_KPI = "unknown_kpi"
    INVALID_RAW_VALUE = "invalid_raw_value"


class CorrelationFormula(str, Enum):
    """
    The closed set of derived metrics computed by the correlation analyzer.

    - arpu: revenue / active users
    - burn_multiple: net burn / net new recurring revenue
    - cac_payback_months: CAC / (ARPU x gross margin fraction)
    - growth_efficiency: (new recurring revenue / CAC) x 100
    - ltv_to_cac: LTV / CAC
    """
    ARPU = "arpu"
    BURN_MULTIPLE = "burn_multiple"
    CAC_PAYBACK_MONTHS = "cac_payback_months"
    GROWTH_EFFICIENCY = "growth_efficiency"
    LTV_TO_CAC = "ltv_to_cac"


class ConditionOperator(str, Enum):
    """
    Comparison used by declarative risk-rule conditions against a KPI score.
    """
    BELOW = "below"
    ABOVE = "above"


# Rank lookups used as sort keys
PRIORITY_RANK = {priority: rank for rank, priority in enumerate(InsightPriority)}
SEVERITY_RANK = {severity: rank for rank, severity in enumerate(AlertSeverity)}
AXIS_RANK = {axis: rank for rank, axis in enumerate(AXIS_ORDER)}
