"""
Risk Detector

Evaluates independent risk rules over a scored snapshot and a cluster profile.

Each rule is a pure function (scored, profile) -> RiskAlert | None. Rules never
see each other's output, so the result is the same for any rule order and any
input order.

Built-in rules (thresholds come from profile.riskThresholds):
1. low_score_kpis: KPIs scoring below lowScore (40). Warning, or critical once
   lowScoreCriticalCount (3) KPIs are affected
2. critical_kpi_underperformance: weight-3 KPIs below criticalKpiScore (50). Critical
3. team_health: TO-axis weighted score below teamHealthScore (40). Warning
4. unit_economics: LTV/CAC below unitEconomicsRatio (2) is a warning, below
   unitEconomicsCriticalRatio (1) critical
5. incomplete_axes: axes without any scored KPI. Info

Profiles may add declarative rules: a rule fires when every one of its conditions
holds for at least one KPI of the condition's category.

Alerts are ordered by severity (critical, warning, info), then by the number of
affected KPIs (descending), then by ruleId.
"""

import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from kpi_engine.models import (
    AXIS_ORDER,
    AlertSeverity,
    Axis,
    ClusterProfile,
    ConditionOperator,
    RiskAlert,
    RiskRuleDefinition,
    ScoredKPI,
    WeightTier,
)
from kpi_engine.models.enums import SEVERITY_RANK
from kpi_engine.services.correlation import collect_inputs, ltv_to_cac_ratio
from kpi_engine.services.scoring import score_axis

logger = logging.getLogger(__name__)


LOW_SCORE_RULE = "low_score_kpis"
CRITICAL_KPI_RULE = "critical_kpi_underperformance"
TEAM_HEALTH_RULE = "team_health"
UNIT_ECONOMICS_RULE = "unit_economics"
INCOMPLETE_AXES_RULE = "incomplete_axes"

BUILTIN_RULE_IDS = frozenset({
    LOW_SCORE_RULE,
    CRITICAL_KPI_RULE,
    TEAM_HEALTH_RULE,
    UNIT_ECONOMICS_RULE,
    INCOMPLETE_AXES_RULE,
})


def _ids(kpis: Iterable[ScoredKPI]) -> Tuple[str, ...]:
    return tuple(sorted({kpi.kpiId for kpi in kpis}))


# =============================================================================
# Built-in Rules
# =============================================================================


def low_score_rule(scored: Sequence[ScoredKPI], profile: ClusterProfile) -> Optional[RiskAlert]:
    thresholds = profile.riskThresholds
    low = [kpi for kpi in scored if kpi.score < thresholds.lowScore]
    if not low:
        return None

    critical = len(low) >= thresholds.lowScoreCriticalCount
    return RiskAlert(
        severity=AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING,
        ruleId=LOW_SCORE_RULE,
        title="Multiple low-scoring KPIs" if critical else "Low-scoring KPIs",
        description=(
            f"{len(low)} KPI(s) score below {thresholds.lowScore:g}. "
            "Weak areas need focused improvement."
        ),
        affectedKPIs=_ids(low),
        suggestedActions=(
            "Pick the two or three weakest KPIs and set a 90-day improvement target for each",
            "Review whether current priorities address these gaps",
        ),
    )


def critical_kpi_rule(scored: Sequence[ScoredKPI], profile: ClusterProfile) -> Optional[RiskAlert]:
    threshold = profile.riskThresholds.criticalKpiScore
    weak = [
        kpi for kpi in scored
        if kpi.weight == WeightTier.CRITICAL and kpi.score < threshold
    ]
    if not weak:
        return None

    return RiskAlert(
        severity=AlertSeverity.CRITICAL,
        ruleId=CRITICAL_KPI_RULE,
        title="Critical KPIs underperforming",
        description=(
            f"{len(weak)} highest-weight KPI(s) score below {threshold:g}. These KPIs "
            "carry the most weight for this stage."
        ),
        affectedKPIs=_ids(weak),
        suggestedActions=(
            "Treat the affected KPIs as this quarter's top priority",
            "Assign a single owner to each affected KPI",
        ),
    )


def team_health_rule(scored: Sequence[ScoredKPI], profile: ClusterProfile) -> Optional[RiskAlert]:
    threshold = profile.riskThresholds.teamHealthScore
    team_score = score_axis(scored, Axis.TO)
    if team_score is None or team_score >= threshold:
        return None

    return RiskAlert(
        severity=AlertSeverity.WARNING,
        ruleId=TEAM_HEALTH_RULE,
        title="Team and organization risk",
        description=(
            f"The team & organization axis scores {team_score:.1f}, below {threshold:g}. "
            "Execution capacity may limit growth."
        ),
        affectedKPIs=_ids(kpi for kpi in scored if kpi.axis == Axis.TO),
        suggestedActions=(
            "Identify the key hires needed for the next stage",
            "Clarify roles and decision rights among founders",
        ),
    )


def unit_economics_rule(scored: Sequence[ScoredKPI], profile: ClusterProfile) -> Optional[RiskAlert]:
    thresholds = profile.riskThresholds
    computed = ltv_to_cac_ratio(collect_inputs(scored))
    if computed is None:
        return None
    ratio, affected = computed
    if ratio >= thresholds.unitEconomicsRatio:
        return None

    critical = ratio < thresholds.unitEconomicsCriticalRatio
    return RiskAlert(
        severity=AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING,
        ruleId=UNIT_ECONOMICS_RULE,
        title="Unsustainable unit economics" if critical else "Weak unit economics",
        description=(
            f"LTV/CAC is {ratio:.2f}, below {thresholds.unitEconomicsRatio:g}. "
            "Customer acquisition is not paying back sufficiently."
        ),
        affectedKPIs=affected,
        suggestedActions=(
            "Reduce CAC by shifting spend to the most efficient channels",
            "Raise LTV through retention, pricing or upsell",
        ),
    )


def incomplete_axes_rule(scored: Sequence[ScoredKPI], profile: ClusterProfile) -> Optional[RiskAlert]:
    present = {kpi.axis for kpi in scored}
    missing = [axis.value for axis in AXIS_ORDER if axis not in present]
    if not missing:
        return None

    return RiskAlert(
        severity=AlertSeverity.INFO,
        ruleId=INCOMPLETE_AXES_RULE,
        title="Insufficient data for some axes",
        description=f"No scored KPIs for axis(es) {', '.join(missing)}; they are excluded from the overall score.",
        suggestedActions=("Answer at least one KPI on every axis for a complete assessment",),
    )


BUILTIN_RULES: Tuple[Callable[[Sequence[ScoredKPI], ClusterProfile], Optional[RiskAlert]], ...] = (
    low_score_rule,
    critical_kpi_rule,
    team_health_rule,
    unit_economics_rule,
    incomplete_axes_rule,
)


# =============================================================================
# Profile Rules
# =============================================================================


def evaluate_profile_rule(rule: RiskRuleDefinition, scored: Sequence[ScoredKPI]) -> Optional[RiskAlert]:
    """
    Evaluate one declarative rule; every condition must hold for some KPI.
    """
    affected = set()
    for condition in rule.conditions:
        matching = [
            kpi for kpi in scored
            if kpi.category == condition.category and (
                kpi.score < condition.score
                if condition.operator == ConditionOperator.BELOW
                else kpi.score > condition.score
            )
        ]
        if not matching:
            return None
        affected.update(kpi.kpiId for kpi in matching)

    return RiskAlert(
        severity=rule.severity,
        ruleId=rule.ruleId,
        title=rule.title,
        description=rule.description,
        affectedKPIs=tuple(sorted(affected)),
        suggestedActions=rule.suggestedActions,
    )


# =============================================================================
# Detection
# =============================================================================


def alert_sort_key(alert: RiskAlert):
    return (SEVERITY_RANK[alert.severity], -len(alert.affectedKPIs), alert.ruleId)


def detect_risks(scored: Iterable[ScoredKPI], profile: ClusterProfile) -> Tuple[RiskAlert, ...]:
    """
    Run every built-in and profile rule.

    Args:
        scored: Scored KPIs of the snapshot
        profile: Cluster profile supplying thresholds and declarative rules

    Returns:
        Alerts sorted by severity, affected count (descending), then ruleId
    """
    items: List[ScoredKPI] = sorted(scored, key=lambda kpi: kpi.kpiId)

    alerts = [rule(items, profile) for rule in BUILTIN_RULES]
    alerts.extend(evaluate_profile_rule(rule, items) for rule in profile.riskRules)
    fired = [alert for alert in alerts if alert is not None]

    fired.sort(key=alert_sort_key)
    if fired:
        logger.info(f"Risk detection for '{profile.profileId}': {len(fired)} alert(s)")
    return tuple(fired)
