"""
Stage transition evaluation.

Checks a snapshot against the conditions a cluster profile sets for moving to the
next growth stage. Each condition compares the best score among KPIs of its
category with the condition's minimum; a category without any scored KPI counts
as unmet.
"""

import logging
from typing import Iterable, List, Optional

from kpi_engine.models import (
    ClusterProfile,
    ScoredKPI,
    StageTransitionAssessment,
    TransitionConditionResult,
)

logger = logging.getLogger(__name__)


def evaluate_stage_transition(
    scored: Iterable[ScoredKPI],
    profile: ClusterProfile,
) -> Optional[StageTransitionAssessment]:
    """
    Assess readiness for the profile's next stage.

    Returns:
        StageTransitionAssessment, or None when the profile defines no transition
    """
    transition = profile.stageTransition
    if transition is None:
        return None

    items = list(scored)
    results: List[TransitionConditionResult] = []

    for condition in transition.requiredConditions:
        candidates = sorted(
            (kpi for kpi in items if kpi.category == condition.category),
            key=lambda kpi: (-kpi.score, kpi.kpiId),
        )
        best = candidates[0] if candidates else None
        results.append(TransitionConditionResult(
            category=condition.category,
            minScore=condition.minScore,
            description=condition.description,
            kpiId=best.kpiId if best else None,
            score=best.score if best else None,
            met=best is not None and best.score >= condition.minScore,
        ))

    ready = all(result.met for result in results)
    logger.debug(
        f"Stage transition {profile.stage} -> {transition.nextStage}: "
        f"{sum(r.met for r in results)}/{len(results)} conditions met"
    )
    return StageTransitionAssessment(
        currentStage=profile.stage,
        nextStage=transition.nextStage,
        conditions=tuple(results),
        ready=ready,
        recommendedActions=transition.recommendedActions,
    )
