"""
Pytest Configuration and Shared Fixtures for KPI Engine Tests.

This module provides fixtures and configuration for all engine tests, supporting:
- Async test execution with pytest-asyncio (store reload, async pipeline)
- The bundled knowledge base, loaded once per session
- Mutable copies of the raw knowledge base document for validation tests
- A representative KPI definition catalogue covering all five axes
- Factories for ScoredKPI records and cluster profiles

Custom markers:
- scenario: Acceptance scenarios with fixed expected numbers
- slow: Property-style tests sweeping many values
"""

import copy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from kpi_engine.core.config import Settings
from kpi_engine.models import (
    Axis,
    BenchmarkDistribution,
    ClusterKey,
    ClusterProfile,
    InputKind,
    KPIDefinition,
    KPIResponse,
    ScoredKPI,
    WeightTier,
)
from kpi_engine.services.knowledge_base import (
    KnowledgeBase,
    load_default_profiles,
    read_default_document,
)


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Register custom markers.

    Usage:
        @pytest.mark.scenario
        def test_median_value_is_fiftieth_percentile():
            ...

        # Skip sweeps:
        pytest -m "not slow"
    """
    config.addinivalue_line("markers", "scenario: acceptance scenarios with fixed expected results")
    config.addinivalue_line("markers", "slow: property-style tests sweeping many inputs")


# ============================================================
# SETTINGS AND TIME
# ============================================================

@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the process environment cache."""
    return Settings()


@pytest.fixture
def as_of() -> datetime:
    """Fixed report reference time."""
    return datetime(2024, 7, 1, 12, 0, tzinfo=timezone.utc)


# ============================================================
# KNOWLEDGE BASE
# ============================================================

@pytest.fixture(scope="session")
def knowledge_base() -> KnowledgeBase:
    """The bundled knowledge base (immutable, safe to share)."""
    return load_default_profiles()


@pytest.fixture
def raw_document() -> Dict[str, Any]:
    """A fresh, mutable copy of the bundled knowledge base document."""
    return copy.deepcopy(read_default_document())


@pytest.fixture
def pmf_profile(knowledge_base: KnowledgeBase) -> ClusterProfile:
    return knowledge_base.lookup("Technology", "Product-Market Fit")


@pytest.fixture
def general_profile(knowledge_base: KnowledgeBase) -> ClusterProfile:
    return knowledge_base.general_profile


@pytest.fixture
def mau_distribution() -> BenchmarkDistribution:
    """MAU distribution with anchors 200 / 500 / 1500 / 5000 / 15000."""
    return BenchmarkDistribution(
        category="mau",
        p10=200, p25=500, p50=1500, p75=5000, p90=15000,
        source="SaaS Capital PMF Survey 2024",
        lastUpdated="2024-01",
        sampleSize=450,
    )


@pytest.fixture
def make_profile() -> Callable[..., ClusterProfile]:
    """Factory building a minimal profile with optional overrides."""

    def _make(**overrides: Any) -> ClusterProfile:
        data: Dict[str, Any] = {
            "profileId": "test-profile",
            "segment": "Test",
            "stage": "Seed",
        }
        data.update(overrides)
        return ClusterProfile.model_validate(data)

    return _make


# ============================================================
# KPI DEFINITIONS AND RESPONSES
# ============================================================

@pytest.fixture
def kpi_definitions() -> List[KPIDefinition]:
    """Catalogue with at least one KPI on every axis and every input kind."""
    raw = [
        {"kpiId": "GO-01", "name": "Monthly active users (MAU)", "axis": "GO", "weight": 3,
         "scoring": {"minValue": 0, "maxValue": 10000}},
        {"kpiId": "GO-02", "name": "Paying customers", "axis": "GO", "weight": "x2",
         "scoring": {"minValue": 0, "maxValue": 100}},
        {"kpiId": "EC-01", "name": "Monthly recurring revenue (MRR)", "axis": "EC", "weight": 3,
         "scoring": {"minValue": 0, "maxValue": 50000}},
        {"kpiId": "EC-02", "name": "Customer acquisition cost (CAC)", "axis": "EC", "weight": 2,
         "scoring": {"minValue": 1000, "maxValue": 0}},
        {"kpiId": "EC-03", "name": "Customer lifetime value (LTV)", "axis": "EC", "weight": 2,
         "scoring": {"minValue": 0, "maxValue": 5000}},
        {"kpiId": "EC-04", "name": "Gross margin", "axis": "EC", "weight": 1,
         "scoring": {"minValue": 0, "maxValue": 100}},
        {"kpiId": "PT-01", "name": "MVP completion", "axis": "PT", "weight": 2,
         "inputKind": "calculation"},
        {"kpiId": "PF-01", "name": "Net promoter score (NPS)", "axis": "PF", "weight": 2,
         "scoring": {"minValue": -100, "maxValue": 100}},
        {"kpiId": "PF-02", "name": "Month-1 retention", "axis": "PF", "weight": 2,
         "inputKind": "rubric", "scoring": {"choices": [0, 40, 70, 100]}},
        {"kpiId": "TO-01", "name": "Founding team completeness", "axis": "TO", "weight": 3,
         "inputKind": "checklist", "scoring": {"choices": [25, 25, 25, 25]}},
        {"kpiId": "TO-02", "name": "Hiring plan", "axis": "TO", "weight": 1,
         "inputKind": "rubric", "scoring": {"choices": [0, 50, 100]}},
    ]
    return [KPIDefinition.model_validate(item) for item in raw]


@pytest.fixture
def kpi_responses() -> List[KPIResponse]:
    """A complete, valid snapshot for the catalogue above."""
    return [
        KPIResponse(kpiId="GO-01", rawValue=1500),
        KPIResponse(kpiId="GO-02", rawValue=20),
        KPIResponse(kpiId="EC-01", rawValue=6000),
        KPIResponse(kpiId="EC-02", rawValue=300),
        KPIResponse(kpiId="EC-03", rawValue=900),
        KPIResponse(kpiId="EC-04", rawValue=70),
        KPIResponse(kpiId="PT-01", rawValue=0.8),
        KPIResponse(kpiId="PF-01", rawValue=40),
        KPIResponse(kpiId="PF-02", rawValue=2),
        KPIResponse(kpiId="TO-01", rawValue=[0, 1, 2]),
        KPIResponse(kpiId="TO-02", rawValue=1),
    ]


@pytest.fixture
def cluster_key() -> ClusterKey:
    return ClusterKey(segment="Technology", stage="Product-Market Fit")


# ============================================================
# SCORED KPI FACTORY
# ============================================================

@pytest.fixture
def make_scored() -> Callable[..., ScoredKPI]:
    """
    Factory for ScoredKPI records.

    Usage:
        kpi = make_scored("EC-01", score=80, category="mrr", raw=5000)
    """

    def _make(
        kpi_id: str,
        score: float,
        category: str = "general",
        raw: Optional[float] = None,
        axis: Axis = Axis.EC,
        weight: int = 1,
        input_kind: InputKind = InputKind.NUMERIC,
    ) -> ScoredKPI:
        return ScoredKPI(
            kpiId=kpi_id,
            name=kpi_id,
            axis=axis,
            weight=WeightTier(weight),
            inputKind=input_kind,
            rawValue=raw,
            score=score,
            category=category,
        )

    return _make
