"""
Benchmark Comparator

Places a KPI's raw value within its cluster's reference distribution and produces
a human-readable comparison.

Percentile calculation:
- Anchors (p10, p25, p50, p75, p90) map to percentiles (10, 25, 50, 75, 90)
- Between anchors: piecewise-linear interpolation
- A value equal to one or more anchors takes the tied anchor percentile closest to
  50, so percentile(p50) == 50 for every valid distribution
- Below p10 / above p90: linear extrapolation from the two nearest distinct anchors,
  clamped to [0, 100]; a distribution with all anchors equal gives 0 below and 100
  above
The result is non-decreasing in the value.

Performance tiers (inclusive lower bounds): >= 90 excellent, >= 75 good,
>= 40 average, >= 25 below_average, otherwise poor. For lower_is_better
distributions tier and label use 100 - percentile; the reported percentile stays
the raw rank.

Confidence is advisory metadata combining sample size, data recency and source
trust. It never changes a percentile or a tier.
"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple, Union

import numpy as np

from kpi_engine.core.config import Settings, get_settings
from kpi_engine.models import (
    BenchmarkComparison,
    BenchmarkDirection,
    BenchmarkDistribution,
    ClusterProfile,
    DistributionSummary,
    PerformanceTier,
    ScoredKPI,
    ValueComparison,
)
from kpi_engine.services.category_matcher import GENERAL_CATEGORY
from kpi_engine.services.knowledge_base import KnowledgeBase

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

ANCHOR_PERCENTILES = np.array([10.0, 25.0, 50.0, 75.0, 90.0])

# (lower bound, tier) checked top-down
PERFORMANCE_THRESHOLDS: Tuple[Tuple[float, PerformanceTier], ...] = (
    (90.0, PerformanceTier.EXCELLENT),
    (75.0, PerformanceTier.GOOD),
    (40.0, PerformanceTier.AVERAGE),
    (25.0, PerformanceTier.BELOW_AVERAGE),
)

PERCENTILE_LABELS: Tuple[Tuple[float, str], ...] = (
    (90.0, "Top 10%"),
    (75.0, "Top 25%"),
    (50.0, "Above Average"),
    (25.0, "Below Average"),
)
BOTTOM_LABEL = "Bottom 25%"

# (minimum |percentage difference|, favorable qualifier, unfavorable qualifier)
DIFFERENCE_BANDS: Tuple[Tuple[float, str, str], ...] = (
    (50.0, " (outstanding)", " (needs significant improvement)"),
    (20.0, " (strong)", " (needs improvement)"),
    (5.0, "", ""),
)
SAME_MESSAGE = "About the same"

DEFAULT_TEMPLATES = {
    PerformanceTier.EXCELLENT: "{value} is in the top 10% for {category}. Best-in-class performance.",
    PerformanceTier.GOOD: "{value} is in the top 25% for {category}, well above the industry median.",
    PerformanceTier.AVERAGE: "{value} is in line with the industry median for {category}.",
    PerformanceTier.BELOW_AVERAGE: "{value} is below the industry median for {category}. There is room to improve.",
    PerformanceTier.POOR: "{value} is in the bottom 25% for {category} and needs significant improvement.",
}

# Value formatting families by category
CURRENCY_CATEGORIES = frozenset({
    "mrr", "arr", "new_mrr", "net_new_arr", "arpu", "cac", "ltv", "gmv", "aov", "monthly_burn",
})
PERCENT_CATEGORIES = frozenset({
    "gross_margin", "churn_rate", "retention_rate", "nrr", "mom_growth",
    "conversion_rate", "dau_mau", "repeat_purchase", "mvp_completion",
})
USER_CATEGORIES = frozenset({"mau", "initial_users", "paying_customers"})
MONTH_CATEGORIES = frozenset({"runway", "cac_payback"})

_ACRONYMS = {"mrr": "MRR", "arr": "ARR", "arpu": "ARPU", "cac": "CAC", "ltv": "LTV",
             "gmv": "GMV", "aov": "AOV", "mau": "MAU", "dau": "DAU", "nrr": "NRR",
             "nps": "NPS", "mvp": "MVP", "mom": "MoM"}

DAYS_PER_MONTH = 30.4375


# =============================================================================
# Percentile and Tier
# =============================================================================


def calculate_percentile(value: float, distribution: BenchmarkDistribution) -> float:
    """
    Percentile rank of a value within a five-anchor distribution.

    Args:
        value: Raw KPI value
        distribution: Validated (non-decreasing) distribution

    Returns:
        Percentile in [0, 100]

    Example:
        >>> # anchors 200 / 500 / 1500 / 5000 / 15000
        >>> calculate_percentile(1500, mau)
        50.0
        >>> calculate_percentile(15000, mau)
        90.0
    """
    anchors = np.asarray(distribution.anchors, dtype=float)
    value = float(value)

    tied = ANCHOR_PERCENTILES[anchors == value]
    if tied.size:
        return float(tied[np.argmin(np.abs(tied - 50.0))])

    low, high = anchors[0], anchors[-1]

    if value < low:
        distinct = np.nonzero(anchors > low)[0]
        if not distinct.size:
            return 0.0
        j = distinct[0]
        slope = (ANCHOR_PERCENTILES[j] - ANCHOR_PERCENTILES[0]) / (anchors[j] - low)
        return float(np.clip(ANCHOR_PERCENTILES[0] - (low - value) * slope, 0.0, 100.0))

    if value > high:
        distinct = np.nonzero(anchors < high)[0]
        if not distinct.size:
            return 100.0
        j = distinct[-1]
        slope = (ANCHOR_PERCENTILES[-1] - ANCHOR_PERCENTILES[j]) / (high - anchors[j])
        return float(np.clip(ANCHOR_PERCENTILES[-1] + (value - high) * slope, 0.0, 100.0))

    # Strictly between two anchors, which are therefore distinct
    i = int(np.searchsorted(anchors, value, side="right")) - 1
    x0, x1 = anchors[i], anchors[i + 1]
    y0, y1 = ANCHOR_PERCENTILES[i], ANCHOR_PERCENTILES[i + 1]
    return float(y0 + (value - x0) / (x1 - x0) * (y1 - y0))


def standing(percentile: float, direction: BenchmarkDirection) -> float:
    """Percentile with 'higher is better' semantics for the given direction."""
    if direction == BenchmarkDirection.LOWER_IS_BETTER:
        return 100.0 - percentile
    return percentile


def performance_tier(
    percentile: float,
    direction: BenchmarkDirection = BenchmarkDirection.HIGHER_IS_BETTER,
) -> PerformanceTier:
    """Qualitative tier for a percentile (see module docstring for thresholds)."""
    adjusted = standing(percentile, direction)
    for lower_bound, tier in PERFORMANCE_THRESHOLDS:
        if adjusted >= lower_bound:
            return tier
    return PerformanceTier.POOR


def percentile_label(
    percentile: float,
    direction: BenchmarkDirection = BenchmarkDirection.HIGHER_IS_BETTER,
) -> str:
    """Short positioning label, e.g. 'Top 10%' or 'Below Average'."""
    adjusted = standing(percentile, direction)
    for lower_bound, label in PERCENTILE_LABELS:
        if adjusted >= lower_bound:
            return label
    return BOTTOM_LABEL


def is_excellent(value: float, distribution: BenchmarkDistribution) -> bool:
    """Top quartile for the distribution's direction."""
    return standing(calculate_percentile(value, distribution), distribution.direction) >= 75.0


def is_above_average(value: float, distribution: BenchmarkDistribution) -> bool:
    return standing(calculate_percentile(value, distribution), distribution.direction) >= 50.0


def needs_improvement(value: float, distribution: BenchmarkDistribution) -> bool:
    """Below the 40th percentile for the distribution's direction."""
    return standing(calculate_percentile(value, distribution), distribution.direction) < 40.0


def compare_values(
    value: float,
    reference: float,
    direction: BenchmarkDirection = BenchmarkDirection.HIGHER_IS_BETTER,
) -> ValueComparison:
    """
    Describe how far a value sits from a reference value.

    The percentage difference is relative to |reference| so its sign always
    follows the raw difference. Differences within 5% read as "About the same".

    Example:
        >>> compare_values(180, 100).message
        '80% higher (outstanding)'
        >>> compare_values(130, 100, BenchmarkDirection.LOWER_IS_BETTER).message
        '30% higher (needs improvement)'
    """
    difference = value - reference
    if reference == 0:
        word = "higher" if difference > 0 else "lower"
        message = SAME_MESSAGE if difference == 0 else f"{word.capitalize()} than a zero reference"
        return ValueComparison(
            value=value, reference=reference, difference=difference, message=message,
        )

    percentage = difference / abs(reference) * 100.0
    magnitude = abs(percentage)
    favorable = (difference > 0) == (direction == BenchmarkDirection.HIGHER_IS_BETTER)

    message = SAME_MESSAGE
    for lower_bound, good, bad in DIFFERENCE_BANDS:
        if magnitude > lower_bound:
            word = "higher" if difference > 0 else "lower"
            message = f"{magnitude:.0f}% {word}{good if favorable else bad}"
            break

    return ValueComparison(
        value=value,
        reference=reference,
        difference=difference,
        percentageDiff=percentage,
        message=message,
    )


def summarize_distribution(distribution: BenchmarkDistribution) -> DistributionSummary:
    """Median, approximate mean, p10-p90 range and quartiles of a distribution."""
    return DistributionSummary(
        category=distribution.category,
        median=distribution.p50,
        average=float(np.mean(distribution.anchors)),
        rangeMin=distribution.p10,
        rangeMax=distribution.p90,
        topQuartile=distribution.p75,
        bottomQuartile=distribution.p25,
    )


# =============================================================================
# Confidence
# =============================================================================


def _as_date(moment: Union[date, datetime]) -> date:
    return moment.date() if isinstance(moment, datetime) else moment


def calculate_confidence(
    distribution: BenchmarkDistribution,
    source_trust: float,
    as_of: Union[date, datetime],
    settings: Optional[Settings] = None,
) -> float:
    """
    Advisory confidence in [0, 100] for a benchmark comparison.

    Components (weights from settings):
    - Sample size: min(1, n / saturation) x 100, or missing_sample_size_score
    - Recency: 100 x 0.5 ** (age_months / half_life_months); future dates count as age 0
    - Source trust: trust x 100

    Args:
        distribution: Distribution the comparison used
        source_trust: Trust weight in [0, 1] for the distribution's source
        as_of: Reference date of the report
        settings: Optional settings override

    Returns:
        Confidence rounded to one decimal place
    """
    settings = settings or get_settings()

    if distribution.sampleSize is None:
        sample_score = settings.missing_sample_size_score
    else:
        sample_score = min(1.0, distribution.sampleSize / settings.confidence_sample_saturation) * 100.0

    age_days = max(0, (_as_date(as_of) - distribution.lastUpdated).days)
    age_months = age_days / DAYS_PER_MONTH
    recency_score = 100.0 * 0.5 ** (age_months / settings.confidence_recency_half_life_months)

    trust_score = float(np.clip(source_trust, 0.0, 1.0)) * 100.0

    confidence = np.average(
        [sample_score, recency_score, trust_score],
        weights=[
            settings.confidence_sample_weight,
            settings.confidence_recency_weight,
            settings.confidence_source_weight,
        ],
    )
    return round(float(np.clip(confidence, 0.0, 100.0)), 1)


# =============================================================================
# Messages
# =============================================================================


def category_label(category: str) -> str:
    """
    Display name for a category.

    Example:
        >>> category_label("cac_payback")
        'CAC payback'
    """
    if category == "dau_mau":
        return "DAU/MAU"
    words = [_ACRONYMS.get(word, word) for word in category.split("_")]
    label = " ".join(words)
    return label[0].upper() + label[1:] if label else label


def _trim(number: str) -> str:
    return number.rstrip("0").rstrip(".") if "." in number else number


def format_value(value: float, category: str) -> str:
    """
    Format a raw value the way its category is usually quoted.

    Example:
        >>> format_value(1_250_000, "mrr")
        '$1.25M'
        >>> format_value(1500, "mau")
        '1.5K users'
    """
    if category in CURRENCY_CATEGORIES:
        sign = "-" if value < 0 else ""
        magnitude = abs(value)
        if magnitude >= 1_000_000:
            return f"{sign}${magnitude / 1_000_000:.2f}M"
        if magnitude >= 1_000:
            return f"{sign}${magnitude / 1_000:.1f}K"
        return f"{sign}${magnitude:.0f}"
    if category in PERCENT_CATEGORIES:
        return f"{value:.1f}%"
    if category in USER_CATEGORIES:
        if value >= 1_000_000:
            return f"{value / 1_000_000:.2f}M users"
        if value >= 1_000:
            return f"{value / 1_000:.1f}K users"
        return f"{value:.0f} users"
    if category in MONTH_CATEGORIES:
        return f"{value:.1f} months"
    if abs(value) >= 1000:
        return f"{value:,.0f}"
    return _trim(f"{value:.1f}")


def render_message(
    profile: ClusterProfile,
    category: str,
    tier: PerformanceTier,
    value: float,
    percentile: Optional[float] = None,
) -> str:
    """
    Render the interpretation message for a comparison.

    Template selection is deterministic: the profile's template for
    (category, tier) when present, otherwise the built-in default for the tier.
    Placeholders: {value}, {percentile}, {category}, {display_name}.
    """
    template = profile.interpretationTemplates.get(category, {}).get(tier)
    if template is None:
        template = DEFAULT_TEMPLATES[tier]
    return template.format(
        value=format_value(value, category),
        percentile="n/a" if percentile is None else f"{percentile:.0f}",
        category=category_label(category),
        display_name=profile.displayName or profile.profileId,
    )


# =============================================================================
# Comparison
# =============================================================================


def compare(
    value: float,
    distribution: BenchmarkDistribution,
    profile: ClusterProfile,
    kpi_id: str,
    source_trust: float,
    as_of: Union[date, datetime],
    benchmark_profile_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> BenchmarkComparison:
    """
    Compare one value against a distribution.

    Args:
        value: Raw KPI value
        distribution: Reference distribution for the KPI's category
        profile: Cluster profile supplying interpretation templates
        kpi_id: KPI the value belongs to
        source_trust: Trust weight of the distribution's source
        as_of: Report reference date, used for confidence only
        benchmark_profile_id: Profile owning the distribution (defaults to profile)
        settings: Optional settings override

    Returns:
        BenchmarkComparison
    """
    percentile = calculate_percentile(value, distribution)
    tier = performance_tier(percentile, distribution.direction)
    return BenchmarkComparison(
        kpiId=kpi_id,
        category=distribution.category,
        value=float(value),
        percentile=round(percentile, 2),
        percentileLabel=percentile_label(percentile, distribution.direction),
        performance=tier,
        message=render_message(profile, distribution.category, tier, value, percentile),
        confidence=calculate_confidence(distribution, source_trust, as_of, settings),
        benchmarkProfileId=benchmark_profile_id or profile.profileId,
        source=distribution.source,
    )


def compare_scored(
    scored: Iterable[ScoredKPI],
    profile: ClusterProfile,
    knowledge_base: KnowledgeBase,
    as_of: Union[date, datetime],
    settings: Optional[Settings] = None,
) -> Tuple[BenchmarkComparison, ...]:
    """
    Benchmark every numeric KPI that has a distribution.

    The cluster profile's distribution is preferred, then the general profile's.
    KPIs without a numeric raw value, in the 'general' category, or without any
    distribution are skipped.

    Returns:
        Comparisons sorted by (category, kpiId)
    """
    comparisons: List[BenchmarkComparison] = []

    for kpi in scored:
        value = kpi.numeric_value
        if value is None or kpi.category == GENERAL_CATEGORY:
            continue
        context = knowledge_base.distribution_for(profile, kpi.category)
        if context is None:
            logger.debug(f"No benchmark distribution for category '{kpi.category}' (KPI {kpi.kpiId})")
            continue
        distribution, owner = context
        comparisons.append(compare(
            value=value,
            distribution=distribution,
            profile=profile,
            kpi_id=kpi.kpiId,
            source_trust=knowledge_base.source_trust_for(distribution.source),
            as_of=as_of,
            benchmark_profile_id=owner.profileId,
            settings=settings,
        ))

    comparisons.sort(key=lambda c: (c.category, c.kpiId))
    return tuple(comparisons)
