"""
Weighted Scoring Test Module

Tests for kpi_engine/services/scoring.py:
- Normalization per input kind
- Out-of-range scores are flagged, never clamped
- Weight-proportional axis aggregation (convex combination)
- Incomplete axes are reported as undefined, not zero
"""

from typing import List

import pytest

from kpi_engine.core.exceptions import InvalidKPIScoreError
from kpi_engine.models import (
    Axis,
    AxisStatus,
    FlagReason,
    KPIDefinition,
    KPIResponse,
    ScoredKPI,
    WeightTier,
)
from kpi_engine.services.scoring import (
    normalize_response,
    score_axes,
    score_axis,
    score_responses,
    validate_score,
)


def _definition(**overrides) -> KPIDefinition:
    data = {"kpiId": "K-01", "name": "Test KPI", "axis": "EC", "weight": 1}
    data.update(overrides)
    return KPIDefinition.model_validate(data)


# =============================================================================
# Normalization
# =============================================================================


class TestNormalizeResponse:

    def test_numeric_interpolates(self):
        definition = _definition(scoring={"minValue": 0, "maxValue": 200})
        assert normalize_response(definition, KPIResponse(kpiId="K-01", rawValue=50)) == 25.0

    def test_numeric_holds_endpoint_scores_outside_range(self):
        definition = _definition(scoring={"minValue": 0, "maxValue": 200})
        assert normalize_response(definition, KPIResponse(kpiId="K-01", rawValue=500)) == 100.0
        assert normalize_response(definition, KPIResponse(kpiId="K-01", rawValue=-10)) == 0.0

    def test_numeric_inverted_range(self):
        # Smaller is better: 1000 -> 0, 0 -> 100
        definition = _definition(scoring={"minValue": 1000, "maxValue": 0})
        assert normalize_response(definition, KPIResponse(kpiId="K-01", rawValue=250)) == pytest.approx(75.0)

    def test_numeric_custom_score_range(self):
        definition = _definition(scoring={"minValue": 0, "maxValue": 10, "minScore": 20, "maxScore": 80})
        assert normalize_response(definition, KPIResponse(kpiId="K-01", rawValue=5)) == pytest.approx(50.0)

    def test_numeric_without_range_uses_value(self):
        definition = _definition()
        assert normalize_response(definition, KPIResponse(kpiId="K-01", rawValue=64)) == 64.0

    def test_pre_normalized_score_is_used_as_given(self):
        definition = _definition(scoring={"minValue": 0, "maxValue": 200})
        response = KPIResponse(kpiId="K-01", rawValue=50, score=120)
        assert normalize_response(definition, response) == 120.0

    def test_rubric_uses_selected_choice(self):
        definition = _definition(inputKind="rubric", scoring={"choices": [0, 30, 60, 100]})
        assert normalize_response(definition, KPIResponse(kpiId="K-01", rawValue=2)) == 60.0

    def test_rubric_index_out_of_range(self):
        definition = _definition(inputKind="rubric", scoring={"choices": [0, 100]})
        with pytest.raises(ValueError):
            normalize_response(definition, KPIResponse(kpiId="K-01", rawValue=5))

    def test_multiselect_sums_choices(self):
        definition = _definition(inputKind="multiselect", scoring={"choices": [10, 20, 30, 40]})
        response = KPIResponse(kpiId="K-01", rawValue=[0, 2, 3])
        assert normalize_response(definition, response) == 80.0

    def test_checklist_counts_each_item_once(self):
        definition = _definition(inputKind="checklist", scoring={"choices": [25, 25, 25, 25]})
        response = KPIResponse(kpiId="K-01", rawValue=[1, 1, 3])
        assert normalize_response(definition, response) == 50.0

    def test_calculation_scales_fraction(self):
        definition = _definition(inputKind="calculation")
        assert normalize_response(definition, KPIResponse(kpiId="K-01", rawValue=0.45)) == pytest.approx(45.0)

    def test_missing_raw_value(self):
        with pytest.raises(ValueError):
            normalize_response(_definition(), KPIResponse(kpiId="K-01"))


class TestValidateScore:

    @pytest.mark.parametrize("score", [0, 0.0, 55.5, 100])
    def test_in_range(self, score):
        assert validate_score("K-01", score) == float(score)

    @pytest.mark.parametrize("score", [-0.1, 100.01, float("nan"), float("inf"), None])
    def test_out_of_range_raises(self, score):
        with pytest.raises(InvalidKPIScoreError) as exc_info:
            validate_score("K-01", score)
        assert exc_info.value.kpi_id == "K-01"


# =============================================================================
# Response Scoring
# =============================================================================


class TestScoreResponses:

    def test_scores_full_snapshot(self, kpi_definitions, kpi_responses):
        scored, flagged = score_responses(kpi_responses, kpi_definitions)

        assert flagged == ()
        by_id = {kpi.kpiId: kpi for kpi in scored}
        assert by_id["GO-01"].score == pytest.approx(15.0)
        assert by_id["EC-02"].score == pytest.approx(70.0)
        assert by_id["PT-01"].score == pytest.approx(80.0)
        assert by_id["PF-01"].score == pytest.approx(70.0)
        assert by_id["TO-01"].score == pytest.approx(75.0)
        assert by_id["GO-02"].weight == WeightTier.IMPORTANT

    def test_resolves_categories(self, kpi_definitions, kpi_responses):
        scored, _ = score_responses(kpi_responses, kpi_definitions)
        categories = {kpi.kpiId: kpi.category for kpi in scored}
        assert categories["GO-01"] == "mau"
        assert categories["EC-01"] == "mrr"
        assert categories["EC-02"] == "cac"
        assert categories["EC-03"] == "ltv"
        assert categories["PF-02"] == "retention_rate"
        assert categories["TO-02"] == "general"

    def test_output_sorted_by_kpi_id(self, kpi_definitions, kpi_responses):
        scored, _ = score_responses(list(reversed(kpi_responses)), kpi_definitions)
        ids = [kpi.kpiId for kpi in scored]
        assert ids == sorted(ids)

    def test_out_of_range_score_is_flagged_not_clamped(self, kpi_definitions):
        responses = [
            KPIResponse(kpiId="GO-01", score=120),
            KPIResponse(kpiId="GO-02", rawValue=50),
        ]
        scored, flagged = score_responses(responses, kpi_definitions)

        assert [kpi.kpiId for kpi in scored] == ["GO-02"]
        assert len(flagged) == 1
        assert flagged[0].kpiId == "GO-01"
        assert flagged[0].reason == FlagReason.SCORE_OUT_OF_RANGE
        assert flagged[0].value == 120.0

    def test_multiselect_sum_above_hundred_is_flagged(self):
        definition = _definition(inputKind="multiselect", scoring={"choices": [60, 60]})
        scored, flagged = score_responses([KPIResponse(kpiId="K-01", rawValue=[0, 1])], [definition])
        assert scored == ()
        assert flagged[0].reason == FlagReason.SCORE_OUT_OF_RANGE

    def test_unknown_kpi_is_flagged(self, kpi_definitions):
        scored, flagged = score_responses([KPIResponse(kpiId="ZZ-99", rawValue=1)], kpi_definitions)
        assert scored == ()
        assert flagged[0].reason == FlagReason.UNKNOWN_KPI

    def test_invalid_raw_value_is_flagged(self, kpi_definitions):
        scored, flagged = score_responses([KPIResponse(kpiId="PF-02", rawValue=9)], kpi_definitions)
        assert scored == ()
        assert flagged[0].reason == FlagReason.INVALID_RAW_VALUE

    def test_not_applicable_is_skipped(self, kpi_definitions):
        scored, flagged = score_responses(
            [KPIResponse(kpiId="GO-01", rawValue=1500, notApplicable=True)], kpi_definitions
        )
        assert scored == ()
        assert flagged == ()

    def test_last_answer_wins(self, kpi_definitions):
        responses = [
            KPIResponse(kpiId="GO-02", rawValue=10),
            KPIResponse(kpiId="GO-02", rawValue=40),
        ]
        scored, _ = score_responses(responses, kpi_definitions)
        assert scored[0].score == pytest.approx(40.0)


# =============================================================================
# Aggregation
# =============================================================================


class TestScoreAxis:

    @pytest.mark.scenario
    def test_weighted_mean(self, make_scored):
        # 80 at weight 3 and 60 at weight 1 -> (240 + 60) / 4
        scored = [
            make_scored("EC-01", score=80, weight=3),
            make_scored("EC-02", score=60, weight=1),
        ]
        assert score_axis(scored, Axis.EC) == pytest.approx(75.0)

    def test_empty_axis_is_none(self, make_scored):
        scored = [make_scored("EC-01", score=80)]
        assert score_axis(scored, Axis.GO) is None

    def test_ignores_other_axes(self, make_scored):
        scored = [
            make_scored("EC-01", score=80, axis=Axis.EC),
            make_scored("GO-01", score=10, axis=Axis.GO, weight=3),
        ]
        assert score_axis(scored, Axis.EC) == pytest.approx(80.0)

    def test_out_of_range_input_raises(self):
        # model_construct skips validation, simulating a corrupted record
        bad = ScoredKPI.model_construct(
            kpiId="EC-09", name="bad", axis=Axis.EC, weight=WeightTier.STANDARD,
            inputKind="numeric", rawValue=None, score=140.0, category="general",
        )
        with pytest.raises(InvalidKPIScoreError):
            score_axis([bad], Axis.EC)

    @pytest.mark.slow
    @pytest.mark.parametrize("scores, weights", [
        ([0, 100], [1, 3]),
        ([12.5, 99.9, 47], [3, 3, 1]),
        ([40, 40, 40], [1, 2, 3]),
        ([100], [2]),
        ([5, 95, 60, 30], [1, 2, 3, 1]),
    ])
    def test_convex_combination(self, make_scored, scores: List[float], weights: List[int]):
        scored = [
            make_scored(f"EC-{i:02d}", score=s, weight=w)
            for i, (s, w) in enumerate(zip(scores, weights))
        ]
        result = score_axis(scored, Axis.EC)
        assert min(scores) - 1e-9 <= result <= max(scores) + 1e-9


class TestScoreAxes:

    def test_summary_for_full_snapshot(self, kpi_definitions, kpi_responses):
        scored, _ = score_responses(kpi_responses, kpi_definitions)
        summary = score_axes(scored)

        axis_scores = {a.axis: a for a in summary.axisScores}
        assert [a.axis for a in summary.axisScores] == [Axis.GO, Axis.EC, Axis.PT, Axis.PF, Axis.TO]
        assert axis_scores[Axis.GO].score == pytest.approx(17.0)
        assert axis_scores[Axis.EC].score == pytest.approx(35.25)
        assert axis_scores[Axis.TO].score == pytest.approx(68.75)
        assert axis_scores[Axis.EC].totalWeight == 8
        assert summary.overallScore == pytest.approx(1082 / 23)
        assert summary.overallStatus == AxisStatus.COMPLETE

    def test_incomplete_axis_is_undefined_not_zero(self, make_scored):
        summary = score_axes([make_scored("EC-01", score=80, weight=3)])
        axis_scores = {a.axis: a for a in summary.axisScores}

        assert axis_scores[Axis.EC].status == AxisStatus.COMPLETE
        assert axis_scores[Axis.GO].status == AxisStatus.INCOMPLETE
        assert axis_scores[Axis.GO].score is None
        assert axis_scores[Axis.GO].kpiCount == 0
        # Incomplete axes do not drag the overall score down
        assert summary.overallScore == pytest.approx(80.0)

    def test_no_kpis_at_all(self):
        summary = score_axes([])
        assert summary.overallScore is None
        assert summary.overallStatus == AxisStatus.INCOMPLETE
        assert all(a.status == AxisStatus.INCOMPLETE for a in summary.axisScores)

    def test_overall_weights_axes_by_total_weight(self, make_scored):
        summary = score_axes([
            make_scored("EC-01", score=90, axis=Axis.EC, weight=3),
            make_scored("GO-01", score=30, axis=Axis.GO, weight=1),
        ])
        assert summary.overallScore == pytest.approx((90 * 3 + 30 * 1) / 4)
