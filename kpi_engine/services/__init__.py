"""
KPI Engine Services Module

This module contains the analysis services of the engine. Each service is a set of
stateless functions over immutable inputs; the only shared state is the knowledge
base snapshot, which is never modified after loading.

Services:
- knowledge_base: Cluster profile loading, validation, lookup and atomic reload
- category_matcher: Ordered keyword rules mapping KPIs to benchmark categories
- scoring: Normalization and weighted axis/overall scoring
- benchmark: Percentile placement, tiers, confidence and messages
- correlation: Derived ratios (ARPU, burn multiple, CAC payback, ...)
- risk_detection: Independent risk rules
- stage_transition: Readiness for the next growth stage
- report: Deterministic report assembly
- engine: End-to-end pipeline (sync and async)
"""

# =============================================================================
# Category Matcher Exports
# =============================================================================

from kpi_engine.services.category_matcher import (
    CATEGORY_RULES,
    CATEGORY_RULES_VERSION,
    GENERAL_CATEGORY,
    KNOWN_CATEGORIES,
    match_category,
    resolve_category,
    is_known_category,
)

# =============================================================================
# Knowledge Base Exports
# Validated cluster profiles with general-profile fallback and an atomic store
# supporting timed asynchronous reloads
# =============================================================================

from kpi_engine.services.knowledge_base import (
    KnowledgeBase,
    KnowledgeBaseStore,
    load_profiles,
    load_profiles_file,
    load_default_profiles,
    load_configured_profiles,
    load_kpi_definitions,
    normalize_cluster_token,
)

# =============================================================================
# Scoring Exports
# =============================================================================

from kpi_engine.services.scoring import (
    normalize_response,
    validate_score,
    score_responses,
    score_axis,
    score_axes,
)

# =============================================================================
# Benchmark Exports
# Percentile interpolation over five-anchor distributions, performance tiers,
# advisory confidence and templated interpretation messages
# =============================================================================

from kpi_engine.services.benchmark import (
    calculate_percentile,
    performance_tier,
    percentile_label,
    calculate_confidence,
    render_message,
    format_value,
    compare,
    compare_scored,
    summarize_distribution,
    is_excellent,
    is_above_average,
    needs_improvement,
    compare_values,
)

# =============================================================================
# Correlation, Risk and Stage Transition Exports
# =============================================================================

from kpi_engine.services.correlation import analyze_correlations
from kpi_engine.services.risk_detection import detect_risks, BUILTIN_RULE_IDS
from kpi_engine.services.stage_transition import evaluate_stage_transition

# =============================================================================
# Report and Pipeline Exports
# =============================================================================

from kpi_engine.services.report import assemble_report
from kpi_engine.services.engine import generate_report, generate_report_async


__all__ = [
    # Category matcher
    'CATEGORY_RULES',
    'CATEGORY_RULES_VERSION',
    'GENERAL_CATEGORY',
    'KNOWN_CATEGORIES',
    'match_category',
    'resolve_category',
    'is_known_category',
    # Knowledge base
    'KnowledgeBase',
    'KnowledgeBaseStore',
    'load_profiles',
    'load_profiles_file',
    'load_default_profiles',
    'load_configured_profiles',
    'load_kpi_definitions',
    'normalize_cluster_token',
    # Scoring
    'normalize_response',
    'validate_score',
    'score_responses',
    'score_axis',
    'score_axes',
    # Benchmark
    'calculate_percentile',
    'performance_tier',
    'percentile_label',
    'calculate_confidence',
    'render_message',
    'format_value',
    'compare',
    'compare_scored',
    'summarize_distribution',
    'is_excellent',
    'is_above_average',
    'needs_improvement',
    'compare_values',
    # Correlation, risk, stage transition
    'analyze_correlations',
    'detect_risks',
    'BUILTIN_RULE_IDS',
    'evaluate_stage_transition',
    # Report and pipeline
    'assemble_report',
    'generate_report',
    'generate_report_async',
]
