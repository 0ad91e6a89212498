"""
KPI Category Matcher

Maps a KPI's free-text identifier (name, question, id) onto a canonical benchmark
category using an ordered keyword rule table.

Matching rules:
- Case-insensitive substring match
- Rules are evaluated top-to-bottom and the first match wins
- No match yields the reserved fallback category 'general'

Rule order is part of the observable contract. Where one keyword is a substring of
another, the more specific rule must come first:
- net_new_arr ("net new mrr") before new_mrr ("new mrr") before mrr ("mrr")
- cac_payback ("cac payback") before cac ("cac")
- dau_mau ("dau") before mau ("mau")
- nrr ("net revenue retention") before retention_rate ("retention")
- mom_growth ("mrr growth", "growth rate") before every metric whose rate it measures
- ltv_to_cac ("ltv/cac") before cac and ltv
- arr ("annual recurring") before mrr ("recurring revenue")

Bump CATEGORY_RULES_VERSION whenever a rule is added, removed or reordered; the
version is recorded in every knowledge base snapshot.
"""

import logging
from typing import FrozenSet, Optional, Tuple

from kpi_engine.models import KPIDefinition

logger = logging.getLogger(__name__)


# =============================================================================
# Rule Table
# =============================================================================

CATEGORY_RULES_VERSION = "3"

GENERAL_CATEGORY = "general"

# (category, keywords) in evaluation order
CATEGORY_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    # Growth rates
    ("mom_growth", (
        "growth rate", "mrr growth", "arr growth", "revenue growth", "user growth",
        "mom growth", "month-over-month growth", "month over month growth",
    )),
    # Recurring revenue movements
    ("net_new_arr", ("net new arr", "net new mrr", "net new recurring", "net new revenue")),
    ("new_mrr", ("new mrr", "new arr", "new recurring revenue", "new revenue")),
    # Unit economics
    ("ltv_to_cac", ("ltv/cac", "ltv / cac", "ltv:cac", "ltv to cac", "ltv-to-cac")),
    ("cac_payback", ("cac payback", "payback")),
    ("cac", ("cac", "customer acquisition cost", "acquisition cost")),
    ("ltv", ("ltv", "lifetime value", "life time value")),
    ("arpu", ("arpu", "revenue per user", "revenue per account", "arpa")),
    ("gross_margin", ("gross margin",)),
    # Users and customers
    ("dau_mau", ("dau", "daily active")),
    ("mau", ("mau", "monthly active", "active users", "active user")),
    ("initial_users", ("initial users", "early users", "early adopters", "beta users")),
    ("paying_customers", ("paying customer", "paid customer", "paying accounts")),
    # Retention
    ("nrr", ("nrr", "net revenue retention", "net dollar retention")),
    ("churn_rate", ("churn",)),
    ("retention_rate", ("retention",)),
    ("repeat_purchase", ("repeat purchase", "repurchase")),
    # Revenue
    ("arr", ("annual recurring", "annual run rate", "(arr)")),
    ("mrr", ("mrr", "monthly recurring", "recurring revenue", "monthly revenue")),
    ("gmv", ("gmv", "gross merchandise")),
    ("aov", ("aov", "average order")),
    # Finance
    ("monthly_burn", ("burn",)),
    ("runway", ("runway",)),
    # Virality
    ("k_factor", ("k-factor", "k factor", "viral")),
    # Satisfaction and product
    ("nps", ("nps", "net promoter")),
    ("mvp_completion", ("mvp", "prototype")),
    # Team
    ("team_size", ("team size", "headcount", "team")),
    # Funnel
    ("conversion_rate", ("conversion",)),
)

KNOWN_CATEGORIES: FrozenSet[str] = frozenset(
    [category for category, _ in CATEGORY_RULES] + [GENERAL_CATEGORY]
)


# =============================================================================
# Matching
# =============================================================================


def match_category(kpi_identifier: Optional[str]) -> str:
    """
    Map free text onto a benchmark category.

    Args:
        kpi_identifier: KPI name, question or id (any free text)

    Returns:
        The category of the first matching rule, or 'general' when none matches

    Example:
        >>> match_category("CAC Payback Period (months)")
        'cac_payback'
        >>> match_category("Office snacks budget")
        'general'
    """
    if not kpi_identifier:
        return GENERAL_CATEGORY

    text = kpi_identifier.lower()
    for category, keywords in CATEGORY_RULES:
        for keyword in keywords:
            if keyword in text:
                return category
    return GENERAL_CATEGORY


def resolve_category(definition: KPIDefinition) -> str:
    """
    Resolve the category for a KPI definition.

    A declared category wins over keyword matching; otherwise the name, question
    and id are matched together.
    """
    if definition.category:
        return definition.category
    category = match_category(definition.search_text)
    if category == GENERAL_CATEGORY:
        logger.debug(f"No category rule matched KPI {definition.kpiId}; using '{GENERAL_CATEGORY}'")
    return category


def is_known_category(category: str) -> bool:
    """Whether a category is one the rule table can produce."""
    return category in KNOWN_CATEGORIES
