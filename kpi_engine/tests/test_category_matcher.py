"""
Category Matcher Test Module

Tests for kpi_engine/services/category_matcher.py:
- Every rule is reachable from a representative KPI name
- Ordering contracts where one keyword is a substring of another
- Declared categories override keyword matching
- Unmatched text falls back to 'general'
"""

import pytest

from kpi_engine.models import KPIDefinition
from kpi_engine.services.category_matcher import (
    CATEGORY_RULES,
    CATEGORY_RULES_VERSION,
    GENERAL_CATEGORY,
    KNOWN_CATEGORIES,
    is_known_category,
    match_category,
    resolve_category,
)


class TestMatchCategory:
    """Keyword matching over free text."""

    @pytest.mark.parametrize("text, expected", [
        ("Net new ARR this quarter", "net_new_arr"),
        ("New MRR added this month", "new_mrr"),
        ("CAC payback period (months)", "cac_payback"),
        ("Customer acquisition cost", "cac"),
        ("Customer lifetime value", "ltv"),
        ("LTV/CAC ratio", "ltv_to_cac"),
        ("ARPU", "arpu"),
        ("Gross margin", "gross_margin"),
        ("DAU/MAU ratio", "dau_mau"),
        ("Monthly active users", "mau"),
        ("Number of beta users", "initial_users"),
        ("Paying customers", "paying_customers"),
        ("Net revenue retention", "nrr"),
        ("Monthly logo churn", "churn_rate"),
        ("Week-4 retention", "retention_rate"),
        ("Repeat purchase rate", "repeat_purchase"),
        ("Annual recurring revenue", "arr"),
        ("Monthly recurring revenue", "mrr"),
        ("Gross merchandise value", "gmv"),
        ("Average order value", "aov"),
        ("Monthly burn", "monthly_burn"),
        ("Cash runway", "runway"),
        ("Month-over-month growth", "mom_growth"),
        ("Viral coefficient", "k_factor"),
        ("Net promoter score", "nps"),
        ("MVP progress", "mvp_completion"),
        ("Team size", "team_size"),
        ("Signup conversion", "conversion_rate"),
    ])
    def test_representative_names(self, text: str, expected: str):
        assert match_category(text) == expected

    def test_case_insensitive(self):
        assert match_category("MONTHLY ACTIVE USERS") == "mau"
        assert match_category("monthly active users") == "mau"

    def test_no_match_falls_back_to_general(self):
        assert match_category("Office snacks budget") == GENERAL_CATEGORY

    @pytest.mark.parametrize("text", [None, ""])
    def test_empty_input_is_general(self, text):
        assert match_category(text) == GENERAL_CATEGORY


class TestRuleOrdering:
    """More specific keywords must win over the substrings they contain."""

    def test_net_new_before_new_before_mrr(self):
        assert match_category("Net new MRR") == "net_new_arr"
        assert match_category("New MRR") == "new_mrr"
        assert match_category("MRR") == "mrr"

    def test_cac_payback_before_cac(self):
        assert match_category("CAC payback") == "cac_payback"
        assert match_category("Blended CAC") == "cac"

    def test_dau_before_mau(self):
        assert match_category("DAU / MAU") == "dau_mau"

    def test_nrr_before_retention(self):
        assert match_category("Net revenue retention") == "nrr"
        assert match_category("Retention") == "retention_rate"

    def test_ratio_before_its_components(self):
        for text in ("LTV/CAC ratio", "LTV:CAC", "LTV to CAC ratio", "LTV / CAC"):
            assert match_category(text) == "ltv_to_cac"
        assert match_category("Customer acquisition cost (CAC)") == "cac"
        assert match_category("Customer lifetime value (LTV)") == "ltv"

    def test_growth_rate_before_revenue(self):
        assert match_category("MRR growth rate") == "mom_growth"
        assert match_category("ARR growth") == "mom_growth"
        assert match_category("Monthly user growth rate") == "mom_growth"
        assert match_category("Monthly recurring revenue") == "mrr"

    def test_annual_before_monthly_recurring_revenue(self):
        assert match_category("Annual recurring revenue (ARR)") == "arr"
        assert match_category("Recurring revenue") == "mrr"

    def test_first_match_wins_for_combined_text(self):
        # Both churn and retention keywords present; churn rule comes first
        assert match_category("Churn and retention") == "churn_rate"


class TestRuleTable:

    def test_categories_are_unique(self):
        categories = [category for category, _ in CATEGORY_RULES]
        assert len(categories) == len(set(categories))

    def test_keywords_are_lower_case(self):
        for _, keywords in CATEGORY_RULES:
            for keyword in keywords:
                assert keyword == keyword.lower()

    def test_general_is_known(self):
        assert is_known_category(GENERAL_CATEGORY)
        assert GENERAL_CATEGORY in KNOWN_CATEGORIES

    def test_unknown_category(self):
        assert not is_known_category("take_rate")

    def test_version_is_set(self):
        assert CATEGORY_RULES_VERSION


class TestResolveCategory:

    def test_declared_category_wins(self):
        definition = KPIDefinition(
            kpiId="X-01", name="Monthly active users", axis="GO", weight=1,
            category="dau_mau",
        )
        assert resolve_category(definition) == "dau_mau"

    def test_matches_on_question_when_name_is_generic(self):
        definition = KPIDefinition(
            kpiId="X-02", name="Key number", question="What is your current MRR?",
            axis="EC", weight=1,
        )
        assert resolve_category(definition) == "mrr"

    def test_unmatched_definition_is_general(self):
        definition = KPIDefinition(kpiId="X-03", name="Hiring plan", axis="TO", weight=1)
        assert resolve_category(definition) == GENERAL_CATEGORY
