"""
Weighted Scoring Engine

Turns raw KPI answers into normalized scores and aggregates them into per-axis and
overall scores.

Pipeline:
1. normalize_response(): raw answer -> score using the KPI's scoring rule
2. score_responses(): builds ScoredKPI records; anything that cannot be scored is
   returned as a FlaggedKPI instead of being clamped or dropped silently
3. score_axis() / score_axes(): weight-proportional means

Aggregation formula (per axis):
    axis_score = sum(score_i * weight_i) / sum(weight_i)

The overall score is the mean of complete axis scores weighted by each axis's total
KPI weight. An axis without KPIs is "incomplete": its score is None and it takes no
part in the overall score. It is never reported as zero.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from kpi_engine.core.exceptions import InvalidKPIScoreError
from kpi_engine.models import (
    AXIS_ORDER,
    Axis,
    AxisScore,
    AxisStatus,
    FlaggedKPI,
    FlagReason,
    InputKind,
    KPIDefinition,
    KPIResponse,
    ScoredKPI,
    ScoreSummary,
)
from kpi_engine.services.category_matcher import resolve_category

logger = logging.getLogger(__name__)


MIN_SCORE = 0.0
MAX_SCORE = 100.0


# =============================================================================
# Normalization
# =============================================================================


def _as_number(raw) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"expected a number, got {raw!r}")
    value = float(raw)
    if not np.isfinite(value):
        raise ValueError(f"expected a finite number, got {raw!r}")
    return value


def _as_indices(raw) -> Tuple[int, ...]:
    """Selected choice indices from a single index or a sequence of them."""
    items = raw if isinstance(raw, (tuple, list)) else (raw,)
    indices = []
    for item in items:
        if isinstance(item, bool):
            raise ValueError(f"invalid choice index {item!r}")
        if isinstance(item, float) and item.is_integer():
            item = int(item)
        if not isinstance(item, int) or item < 0:
            raise ValueError(f"invalid choice index {item!r}")
        indices.append(item)
    return tuple(indices)


def _choice_score(definition: KPIDefinition, index: int) -> float:
    choices = definition.scoring.choices if definition.scoring else ()
    if index >= len(choices):
        raise ValueError(
            f"choice index {index} out of range for KPI '{definition.kpiId}' "
            f"({len(choices)} choices)"
        )
    return float(choices[index])


def normalize_response(definition: KPIDefinition, response: KPIResponse) -> float:
    """
    Normalize one raw answer into a score.

    The result is deliberately not clamped: callers validate it against [0, 100]
    and flag the KPI when it falls outside.

    Normalization by input kind:
    - numeric: linear between (minValue, minScore) and (maxValue, maxScore), held at
      the endpoint scores outside the value range. Without a value range the raw
      number is taken as the score itself.
    - rubric: score of the selected choice
    - multiselect / checklist: sum of the selected choices' scores (each index once)
    - calculation: the raw fraction x 100

    Args:
        definition: KPI definition with its scoring rule
        response: The answer to normalize

    Returns:
        Unclamped score

    Raises:
        ValueError: If the raw value has the wrong shape for the KPI's input kind
    """
    if response.score is not None:
        return float(response.score)

    raw = response.rawValue
    if raw is None:
        raise ValueError(f"KPI '{definition.kpiId}' has neither a raw value nor a score")

    kind = definition.inputKind
    rule = definition.scoring

    if kind == InputKind.NUMERIC:
        value = _as_number(raw)
        if rule is None or rule.minValue is None:
            return value
        ratio = (value - rule.minValue) / (rule.maxValue - rule.minValue)
        ratio = float(np.clip(ratio, 0.0, 1.0))
        return rule.minScore + ratio * (rule.maxScore - rule.minScore)

    if kind == InputKind.CALCULATION:
        return _as_number(raw) * 100.0

    indices = _as_indices(raw)
    if kind == InputKind.RUBRIC:
        if len(indices) != 1:
            raise ValueError(
                f"rubric KPI '{definition.kpiId}' needs exactly one selected choice, "
                f"got {len(indices)}"
            )
        return _choice_score(definition, indices[0])

    # multiselect / checklist
    return float(sum(_choice_score(definition, index) for index in sorted(set(indices))))


def validate_score(kpi_id: str, score: Optional[float]) -> float:
    """
    Check a score lies within [0, 100].

    Raises:
        InvalidKPIScoreError: If the score is missing, not finite or out of range
    """
    if score is None or not np.isfinite(score) or not MIN_SCORE <= score <= MAX_SCORE:
        raise InvalidKPIScoreError(kpi_id, score)
    return float(score)


# =============================================================================
# Response Scoring
# =============================================================================


def score_responses(
    responses: Iterable[KPIResponse],
    definitions: Iterable[KPIDefinition],
) -> Tuple[Tuple[ScoredKPI, ...], Tuple[FlaggedKPI, ...]]:
    """
    Score a diagnostic snapshot.

    Responses marked notApplicable are skipped. Every other response either becomes
    a ScoredKPI or is excluded and recorded as a FlaggedKPI:
    - unknown_kpi: no definition exists for the kpiId
    - invalid_raw_value: the raw value cannot be normalized
    - score_out_of_range: the normalized score lies outside [0, 100]

    When a kpiId is answered more than once, the last answer wins.

    Args:
        responses: Raw answers
        definitions: KPI definition catalogue

    Returns:
        (scored, flagged), both ordered by kpiId
    """
    catalogue: Dict[str, KPIDefinition] = {d.kpiId: d for d in definitions}

    latest: Dict[str, KPIResponse] = {}
    for response in responses:
        if response.kpiId in latest:
            logger.debug(f"KPI {response.kpiId} answered more than once; keeping the last answer")
        latest[response.kpiId] = response

    scored: List[ScoredKPI] = []
    flagged: List[FlaggedKPI] = []

    for kpi_id in sorted(latest):
        response = latest[kpi_id]
        if response.notApplicable:
            continue

        definition = catalogue.get(kpi_id)
        if definition is None:
            flagged.append(FlaggedKPI(
                kpiId=kpi_id,
                reason=FlagReason.UNKNOWN_KPI,
                detail=f"no definition for KPI '{kpi_id}'",
            ))
            continue

        try:
            raw_score = normalize_response(definition, response)
        except ValueError as exc:
            logger.warning(f"Excluding KPI {kpi_id}: {exc}")
            flagged.append(FlaggedKPI(
                kpiId=kpi_id,
                reason=FlagReason.INVALID_RAW_VALUE,
                detail=str(exc),
            ))
            continue

        try:
            score = validate_score(kpi_id, raw_score)
        except InvalidKPIScoreError as exc:
            logger.warning(f"Excluding KPI {kpi_id}: {exc}")
            flagged.append(FlaggedKPI(
                kpiId=kpi_id,
                reason=FlagReason.SCORE_OUT_OF_RANGE,
                value=raw_score if np.isfinite(raw_score) else None,
                detail=str(exc),
            ))
            continue

        raw_value = response.rawValue
        if isinstance(raw_value, list):
            raw_value = tuple(raw_value)

        scored.append(ScoredKPI(
            kpiId=kpi_id,
            name=definition.name,
            axis=definition.axis,
            weight=definition.weight,
            inputKind=definition.inputKind,
            rawValue=raw_value,
            score=score,
            category=resolve_category(definition),
        ))

    logger.debug(f"Scored {len(scored)} KPIs, flagged {len(flagged)}")
    return tuple(scored), tuple(flagged)


# =============================================================================
# Aggregation
# =============================================================================


def _weighted_mean(scores: Sequence[float], weights: Sequence[float]) -> float:
    mean = np.average(np.asarray(scores, dtype=float), weights=np.asarray(weights, dtype=float))
    return float(np.clip(mean, MIN_SCORE, MAX_SCORE))


def score_axis(scored: Iterable[ScoredKPI], axis: Axis) -> Optional[float]:
    """
    Weight-proportional mean score of one axis.

    Args:
        scored: Scored KPIs of any axes
        axis: Axis to aggregate

    Returns:
        Score in [0, 100], or None when the axis has no KPIs

    Raises:
        InvalidKPIScoreError: If any contributing score lies outside [0, 100]

    Example:
        Scores 80 (weight 3) and 60 (weight 1) give (240 + 60) / 4 = 75.0
    """
    members = [kpi for kpi in scored if kpi.axis == axis]
    if not members:
        return None
    scores = [validate_score(kpi.kpiId, kpi.score) for kpi in members]
    weights = [int(kpi.weight) for kpi in members]
    return _weighted_mean(scores, weights)


def score_axes(scored: Iterable[ScoredKPI]) -> ScoreSummary:
    """
    Score every axis and the snapshot overall.

    Returns:
        ScoreSummary with one AxisScore per axis in display order
    """
    items = list(scored)
    axis_scores: List[AxisScore] = []

    for axis in AXIS_ORDER:
        members = [kpi for kpi in items if kpi.axis == axis]
        score = score_axis(members, axis)
        if score is None:
            axis_scores.append(AxisScore(axis=axis, status=AxisStatus.INCOMPLETE))
            continue
        axis_scores.append(AxisScore(
            axis=axis,
            score=score,
            status=AxisStatus.COMPLETE,
            totalWeight=sum(int(kpi.weight) for kpi in members),
            kpiCount=len(members),
        ))

    complete = [a for a in axis_scores if a.status == AxisStatus.COMPLETE]
    if not complete:
        return ScoreSummary(
            axisScores=tuple(axis_scores),
            overallScore=None,
            overallStatus=AxisStatus.INCOMPLETE,
        )

    overall = _weighted_mean([a.score for a in complete], [a.totalWeight for a in complete])
    incomplete = len(axis_scores) - len(complete)
    if incomplete:
        logger.info(f"{incomplete} axis(es) incomplete; overall score uses {len(complete)} axes")

    return ScoreSummary(
        axisScores=tuple(axis_scores),
        overallScore=overall,
        overallStatus=AxisStatus.COMPLETE,
    )
