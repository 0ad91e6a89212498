"""
Report Assembler

Orders and packages the outputs of one diagnostic snapshot into an immutable
Report. Assembly is purely structural: no score, percentile or alert is computed
or changed here.

Ordering:
- Scored and flagged KPIs by kpiId
- Axis scores in Axis display order (GO, EC, PT, PF, TO)
- Benchmark comparisons by (category, kpiId)
- Correlation insights by priority, then formulaId
- Risk alerts by severity, affected count (descending), then ruleId

Equal inputs always produce equal Reports.
"""

from datetime import datetime
from typing import Iterable, Optional

from kpi_engine.models import (
    BenchmarkComparison,
    ClusterKey,
    ClusterProfile,
    CorrelationInsight,
    FlaggedKPI,
    Report,
    RiskAlert,
    ScoredKPI,
    ScoreSummary,
    StageTransitionAssessment,
)
from kpi_engine.models.enums import AXIS_RANK
from kpi_engine.services.correlation import insight_sort_key
from kpi_engine.services.risk_detection import alert_sort_key


def assemble_report(
    cluster_key: ClusterKey,
    profile: ClusterProfile,
    used_fallback: bool,
    knowledge_base_version: str,
    as_of: datetime,
    summary: ScoreSummary,
    scored: Iterable[ScoredKPI],
    flagged: Iterable[FlaggedKPI] = (),
    comparisons: Iterable[BenchmarkComparison] = (),
    insights: Iterable[CorrelationInsight] = (),
    alerts: Iterable[RiskAlert] = (),
    stage_transition: Optional[StageTransitionAssessment] = None,
) -> Report:
    """
    Build the Report for one snapshot.

    Args:
        cluster_key: Cluster the report was requested for
        profile: Profile actually used (may be the general fallback)
        used_fallback: Whether the general profile replaced a missing cluster profile
        knowledge_base_version: Version of the knowledge base snapshot used
        as_of: Reference time of the report
        summary: Axis and overall scores
        scored: Scored KPIs
        flagged: KPIs excluded from aggregation
        comparisons: Benchmark comparisons
        insights: Correlation insights
        alerts: Risk alerts
        stage_transition: Optional stage readiness assessment

    Returns:
        Immutable Report
    """
    return Report(
        clusterKey=cluster_key,
        profileId=profile.profileId,
        usedFallbackProfile=used_fallback,
        knowledgeBaseVersion=knowledge_base_version,
        asOf=as_of,
        overallScore=summary.overallScore,
        overallStatus=summary.overallStatus,
        axisScores=tuple(sorted(summary.axisScores, key=lambda a: AXIS_RANK[a.axis])),
        scoredKPIs=tuple(sorted(scored, key=lambda k: k.kpiId)),
        flaggedKPIs=tuple(sorted(flagged, key=lambda f: f.kpiId)),
        benchmarkComparisons=tuple(sorted(comparisons, key=lambda c: (c.category, c.kpiId))),
        correlationInsights=tuple(sorted(insights, key=insight_sort_key)),
        riskAlerts=tuple(sorted(alerts, key=alert_sort_key)),
        stageTransition=stage_transition,
    )
