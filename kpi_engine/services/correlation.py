"""
Correlation Analyzer

Derives financial and operational ratios from combinations of raw KPI values.

Formulas (closed set, evaluated in this order):
1. arpu:               MRR / MAU
2. burn_multiple:      monthly burn / net new recurring revenue
3. cac_payback_months: CAC / (ARPU x gross margin fraction); a reported ARPU KPI
                       is used when present, otherwise MRR / MAU
4. growth_efficiency:  (new MRR / CAC) x 100
5. ltv_to_cac:         LTV / CAC

Inputs are the numeric raw values of scored KPIs, looked up by resolved category.
When several KPIs share a category the one with the lowest kpiId is used, so the
result does not depend on response order.

A formula runs only when every input is present and every divisor is non-zero.
Otherwise the insight is omitted; a missing insight is never reported as zero.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from kpi_engine.models import (
    ClusterProfile,
    CorrelationFormula,
    CorrelationInsight,
    InsightPriority,
    ScoredKPI,
)
from kpi_engine.models.enums import PRIORITY_RANK

logger = logging.getLogger(__name__)


# Monthly revenue per user assumed when a profile sets no target
DEFAULT_TARGET_ARPU = 50.0

# Recommended LTV/CAC ratio
HEALTHY_LTV_TO_CAC = 3.0


# =============================================================================
# Input Collection
# =============================================================================


def collect_inputs(scored: Iterable[ScoredKPI]) -> Dict[str, ScoredKPI]:
    """
    Numeric KPIs by category; the lowest kpiId wins within a category.
    """
    inputs: Dict[str, ScoredKPI] = {}
    for kpi in sorted(scored, key=lambda k: k.kpiId):
        if kpi.numeric_value is None:
            continue
        inputs.setdefault(kpi.category, kpi)
    return inputs


def _values(
    formula: CorrelationFormula,
    inputs: Dict[str, ScoredKPI],
    categories: Tuple[str, ...],
) -> Optional[Tuple[List[float], Tuple[str, ...]]]:
    missing = [c for c in categories if c not in inputs]
    if missing:
        logger.debug(f"Skipping {formula.value}: missing inputs {missing}")
        return None
    kpis = [inputs[c] for c in categories]
    return [k.numeric_value for k in kpis], tuple(sorted({k.kpiId for k in kpis}))


def _zero_divisor(formula: CorrelationFormula, divisor: float) -> bool:
    if divisor == 0:
        logger.debug(f"Skipping {formula.value}: zero divisor")
        return True
    return False


def margin_fraction(value: float) -> float:
    """Gross margin as a fraction; values above 1 are read as percentages."""
    return value / 100.0 if value > 1 else value


def _money(value: float) -> str:
    if abs(value) >= 1_000_000:
        return f"${value / 1_000_000:.2f}M"
    if abs(value) >= 1_000:
        return f"${value / 1_000:.1f}K"
    return f"${value:.2f}"


# =============================================================================
# Formulas
# =============================================================================


def _arpu(inputs: Dict[str, ScoredKPI], profile: ClusterProfile) -> Optional[CorrelationInsight]:
    formula = CorrelationFormula.ARPU
    found = _values(formula, inputs, ("mrr", "mau"))
    if found is None:
        return None
    (mrr, mau), affected = found
    if _zero_divisor(formula, mau):
        return None

    arpu = mrr / mau
    target = profile.targetArpu or DEFAULT_TARGET_ARPU
    ratio = arpu / target

    if ratio < 0.5:
        priority = InsightPriority.HIGH
    elif ratio < 0.75:
        priority = InsightPriority.MEDIUM
    else:
        priority = InsightPriority.LOW

    if arpu >= target:
        interpretation = f"ARPU of {_money(arpu)} is healthy; monetization is working."
    elif ratio >= 0.7:
        interpretation = (
            f"ARPU of {_money(arpu)} is reasonable but below the {_money(target)} target."
        )
    else:
        interpretation = (
            f"ARPU of {_money(arpu)} needs improvement against the {_money(target)} target. "
            "Review upsell strategy and premium features."
        )

    return CorrelationInsight(
        formulaId=formula,
        title="Average revenue per user (ARPU)",
        value=arpu,
        priority=priority,
        interpretation=interpretation,
        affectedKPIs=affected,
    )


def _burn_multiple(inputs: Dict[str, ScoredKPI], profile: ClusterProfile) -> Optional[CorrelationInsight]:
    formula = CorrelationFormula.BURN_MULTIPLE
    found = _values(formula, inputs, ("monthly_burn", "net_new_arr"))
    if found is None:
        return None
    (burn, net_new), affected = found
    if _zero_divisor(formula, net_new):
        return None

    multiple = burn / net_new

    if multiple < 0:
        priority = InsightPriority.CRITICAL
        interpretation = (
            f"Burn multiple of {multiple:.2f}x: recurring revenue is shrinking while cash "
            "is being spent."
        )
    elif multiple < 1.5:
        priority = InsightPriority.LOW
        interpretation = (
            f"Burn multiple of {multiple:.2f}x is very efficient; there is room to invest "
            "in growth."
        )
    elif multiple < 3:
        priority = InsightPriority.MEDIUM
        interpretation = (
            f"Burn multiple of {multiple:.2f}x is acceptable; growth is sustainable but "
            "efficiency can improve."
        )
    else:
        priority = InsightPriority.HIGH
        interpretation = (
            f"Burn multiple of {multiple:.2f}x is high; cash burn is excessive relative "
            "to growth."
        )

    return CorrelationInsight(
        formulaId=formula,
        title="Burn multiple (capital efficiency)",
        value=multiple,
        priority=priority,
        interpretation=interpretation,
        affectedKPIs=affected,
    )


def _cac_payback(inputs: Dict[str, ScoredKPI], profile: ClusterProfile) -> Optional[CorrelationInsight]:
    formula = CorrelationFormula.CAC_PAYBACK_MONTHS
    if "arpu" in inputs:
        found = _values(formula, inputs, ("cac", "arpu", "gross_margin"))
        if found is None:
            return None
        (cac, arpu, margin), affected = found
    else:
        found = _values(formula, inputs, ("cac", "mrr", "mau", "gross_margin"))
        if found is None:
            return None
        (cac, mrr, mau, margin), affected = found
        if _zero_divisor(formula, mau):
            return None
        arpu = mrr / mau
    monthly_gross_profit = arpu * margin_fraction(margin)
    if _zero_divisor(formula, monthly_gross_profit):
        return None

    months = cac / monthly_gross_profit

    if months <= 0:
        priority = InsightPriority.CRITICAL
        interpretation = (
            f"CAC payback of {months:.1f} months: each customer loses money at the gross "
            "margin level, so acquisition cost is never recovered."
        )
    elif months <= 12:
        priority = InsightPriority.LOW
        interpretation = f"CAC payback of {months:.1f} months is excellent; acquisition cost is recovered quickly."
    elif months <= 18:
        priority = InsightPriority.MEDIUM
        interpretation = f"CAC payback of {months:.1f} months is fair; getting under 12 months would be healthier."
    elif months <= 24:
        priority = InsightPriority.HIGH
        interpretation = (
            f"CAC payback of {months:.1f} months is long. Under 12 months is ideal; "
            "reduce CAC or increase ARPU."
        )
    else:
        priority = InsightPriority.CRITICAL
        interpretation = (
            f"CAC payback of {months:.1f} months is far beyond the 12-month ideal; "
            "the acquisition model is not sustainable."
        )

    return CorrelationInsight(
        formulaId=formula,
        title="CAC payback period",
        value=months,
        priority=priority,
        interpretation=interpretation,
        affectedKPIs=affected,
    )


def _growth_efficiency(inputs: Dict[str, ScoredKPI], profile: ClusterProfile) -> Optional[CorrelationInsight]:
    formula = CorrelationFormula.GROWTH_EFFICIENCY
    found = _values(formula, inputs, ("new_mrr", "cac"))
    if found is None:
        return None
    (new_mrr, cac), affected = found
    if _zero_divisor(formula, cac):
        return None

    efficiency = (new_mrr / cac) * 100.0

    if efficiency >= 100:
        priority = InsightPriority.LOW
        interpretation = "Growth is very capital-efficient: new recurring revenue exceeds acquisition cost."
    elif efficiency >= 50:
        priority = InsightPriority.MEDIUM
        interpretation = "Growth efficiency is balanced, with room to grow more efficiently."
    elif efficiency >= 25:
        priority = InsightPriority.HIGH
        interpretation = "Growth is expensive relative to acquisition cost. Optimize marketing and sales."
    else:
        priority = InsightPriority.CRITICAL
        interpretation = "Acquisition spend produces little new recurring revenue. Revisit channels and pricing."

    return CorrelationInsight(
        formulaId=formula,
        title="Growth efficiency",
        value=efficiency,
        priority=priority,
        interpretation=interpretation,
        affectedKPIs=affected,
    )


def ltv_to_cac_ratio(inputs: Dict[str, ScoredKPI]) -> Optional[Tuple[float, Tuple[str, ...]]]:
    """
    LTV / CAC and the KPI ids it was computed from, or None when not computable.

    Shared with the unit economics risk rule so both always agree.
    """
    formula = CorrelationFormula.LTV_TO_CAC
    found = _values(formula, inputs, ("ltv", "cac"))
    if found is None:
        return None
    (ltv, cac), affected = found
    if _zero_divisor(formula, cac):
        return None
    return ltv / cac, affected


def _ltv_to_cac(inputs: Dict[str, ScoredKPI], profile: ClusterProfile) -> Optional[CorrelationInsight]:
    computed = ltv_to_cac_ratio(inputs)
    if computed is None:
        return None
    ratio, affected = computed

    if ratio >= HEALTHY_LTV_TO_CAC:
        priority = InsightPriority.LOW
        interpretation = (
            f"Strong unit economics (recommended 3:1 or better). LTV is {ratio:.1f}x CAC, "
            "which supports aggressive marketing investment."
        )
    elif ratio >= 2:
        priority = InsightPriority.MEDIUM
        interpretation = (
            f"Fair unit economics. Raising the LTV/CAC ratio of {ratio:.1f}:1 to 3:1 "
            "would make the business healthier."
        )
    elif ratio >= 1:
        priority = InsightPriority.HIGH
        interpretation = (
            f"LTV/CAC of {ratio:.1f}:1 is well below the recommended 3:1. Improving unit "
            "economics should be a priority."
        )
    else:
        priority = InsightPriority.CRITICAL
        interpretation = (
            f"Unsustainable unit economics: LTV/CAC of {ratio:.1f}:1 means each customer "
            "costs more to acquire than they return."
        )

    return CorrelationInsight(
        formulaId=CorrelationFormula.LTV_TO_CAC,
        title="LTV/CAC ratio (unit economics)",
        value=ratio,
        priority=priority,
        interpretation=interpretation,
        affectedKPIs=affected,
    )


FORMULAS: Dict[
    CorrelationFormula,
    Callable[[Dict[str, ScoredKPI], ClusterProfile], Optional[CorrelationInsight]],
] = {
    CorrelationFormula.ARPU: _arpu,
    CorrelationFormula.BURN_MULTIPLE: _burn_multiple,
    CorrelationFormula.CAC_PAYBACK_MONTHS: _cac_payback,
    CorrelationFormula.GROWTH_EFFICIENCY: _growth_efficiency,
    CorrelationFormula.LTV_TO_CAC: _ltv_to_cac,
}


# =============================================================================
# Analysis
# =============================================================================


def insight_sort_key(insight: CorrelationInsight):
    return (PRIORITY_RANK[insight.priority], insight.formulaId.value)


def analyze_correlations(
    scored: Iterable[ScoredKPI],
    profile: ClusterProfile,
) -> Tuple[CorrelationInsight, ...]:
    """
    Compute every derived metric whose inputs are available.

    Args:
        scored: Scored KPIs of the snapshot
        profile: Cluster profile (supplies the ARPU target)

    Returns:
        Insights sorted critical -> high -> medium -> low, ties by formulaId
    """
    inputs = collect_inputs(scored)
    insights = []
    for formula in FORMULAS.values():
        insight = formula(inputs, profile)
        if insight is not None:
            insights.append(insight)
    insights.sort(key=insight_sort_key)
    return tuple(insights)
