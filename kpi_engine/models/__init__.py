"""
Package initialization file for the engine's data models.

This module exports all Pydantic schemas and enumerations from schemas.py and enums.py,
making them importable from kpi_engine.models directly.

Usage:
    from kpi_engine.models import (
        Axis,
        WeightTier,
        KPIDefinition,
        KPIResponse,
        Report,
        # ... etc
    )
"""

# =============================================================================
# Enums - Import and re-export all enumerations from enums.py
# =============================================================================

from kpi_engine.models.enums import (
    # Scoring Enums
    Axis,
    AXIS_ORDER,
    WeightTier,
    InputKind,
    AxisStatus,
    FlagReason,
    # Benchmark Enums
    PerformanceTier,
    BenchmarkDirection,
    # Insight and Alert Enums
    CorrelationFormula,
    InsightPriority,
    AlertSeverity,
    ConditionOperator,
)


# =============================================================================
# Schemas - Import and re-export all Pydantic models from schemas.py
# =============================================================================

from kpi_engine.models.schemas import (
    # -------------------------------------------------------------------------
    # Definitions and Inputs
    # -------------------------------------------------------------------------
    RawValue,
    ScoringRule,
    KPIDefinition,
    KPIResponse,
    ClusterKey,

    # -------------------------------------------------------------------------
    # Reference Data
    # -------------------------------------------------------------------------
    BenchmarkDistribution,
    RiskThresholds,
    RiskRuleCondition,
    RiskRuleDefinition,
    TransitionCondition,
    StageTransition,
    ClusterProfile,

    # -------------------------------------------------------------------------
    # Per-Snapshot Outputs
    # -------------------------------------------------------------------------
    ScoredKPI,
    FlaggedKPI,
    AxisScore,
    ScoreSummary,
    BenchmarkComparison,
    DistributionSummary,
    ValueComparison,
    CorrelationInsight,
    RiskAlert,
    TransitionConditionResult,
    StageTransitionAssessment,
    Report,
)


__all__ = [
    # Enums
    'Axis',
    'AXIS_ORDER',
    'WeightTier',
    'InputKind',
    'AxisStatus',
    'FlagReason',
    'PerformanceTier',
    'BenchmarkDirection',
    'CorrelationFormula',
    'InsightPriority',
    'AlertSeverity',
    'ConditionOperator',
    # Definitions and inputs
    'RawValue',
    'ScoringRule',
    'KPIDefinition',
    'KPIResponse',
    'ClusterKey',
    # Reference data
    'BenchmarkDistribution',
    'RiskThresholds',
    'RiskRuleCondition',
    'RiskRuleDefinition',
    'TransitionCondition',
    'StageTransition',
    'ClusterProfile',
    # Outputs
    'ScoredKPI',
    'FlaggedKPI',
    'AxisScore',
    'ScoreSummary',
    'BenchmarkComparison',
    'DistributionSummary',
    'ValueComparison',
    'CorrelationInsight',
    'RiskAlert',
    'TransitionConditionResult',
    'StageTransitionAssessment',
    'Report',
]
