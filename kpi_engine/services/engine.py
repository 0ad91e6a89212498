"""
Report generation pipeline.

Runs one diagnostic snapshot end to end:

    responses --> score_responses --> score_axes --+--> compare_scored ------+
                                                   +--> analyze_correlations -+--> assemble_report
                                                   +--> detect_risks --------+
                                                   +--> evaluate_stage_transition

The benchmark, correlation and risk stages only read the scored KPIs, the resolved
profile and the immutable knowledge base snapshot, so they run in parallel and are
joined before assembly. The reference time is fixed once here and passed down
explicitly; no stage reads the clock.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Iterable, Optional

from kpi_engine.core.config import Settings, get_settings
from kpi_engine.models import ClusterKey, KPIDefinition, KPIResponse, Report
from kpi_engine.services.benchmark import compare_scored
from kpi_engine.services.correlation import analyze_correlations
from kpi_engine.services.knowledge_base import KnowledgeBase
from kpi_engine.services.report import assemble_report
from kpi_engine.services.risk_detection import detect_risks
from kpi_engine.services.scoring import score_axes, score_responses
from kpi_engine.services.stage_transition import evaluate_stage_transition

logger = logging.getLogger(__name__)


def _reference_time(as_of: Optional[datetime]) -> datetime:
    if as_of is None:
        return datetime.now(timezone.utc)
    if as_of.tzinfo is None:
        return as_of.replace(tzinfo=timezone.utc)
    return as_of


def generate_report(
    responses: Iterable[KPIResponse],
    definitions: Iterable[KPIDefinition],
    cluster_key: ClusterKey,
    knowledge_base: KnowledgeBase,
    as_of: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> Report:
    """
    Generate the Report for one diagnostic snapshot.

    Args:
        responses: Raw KPI answers
        definitions: KPI definition catalogue
        cluster_key: (segment, stage) selecting benchmark context
        knowledge_base: Knowledge base snapshot; held for the whole report
        as_of: Reference time (default: now, UTC); naive values are taken as UTC
        settings: Optional settings override

    Returns:
        Immutable Report
    """
    settings = settings or get_settings()
    as_of = _reference_time(as_of)

    profile, used_fallback = knowledge_base.resolve(cluster_key.segment, cluster_key.stage)
    scored, flagged = score_responses(responses, definitions)
    summary = score_axes(scored)

    with ThreadPoolExecutor(max_workers=settings.parallel_workers) as pool:
        comparisons_future = pool.submit(compare_scored, scored, profile, knowledge_base, as_of, settings)
        insights_future = pool.submit(analyze_correlations, scored, profile)
        alerts_future = pool.submit(detect_risks, scored, profile)
        comparisons = comparisons_future.result()
        insights = insights_future.result()
        alerts = alerts_future.result()

    logger.info(
        f"Generated report for {cluster_key.segment}/{cluster_key.stage} "
        f"(profile '{profile.profileId}'): {len(scored)} scored, {len(flagged)} flagged, "
        f"{len(alerts)} alert(s)"
    )

    return assemble_report(
        cluster_key=cluster_key,
        profile=profile,
        used_fallback=used_fallback,
        knowledge_base_version=knowledge_base.version,
        as_of=as_of,
        summary=summary,
        scored=scored,
        flagged=flagged,
        comparisons=comparisons,
        insights=insights,
        alerts=alerts,
        stage_transition=evaluate_stage_transition(scored, profile),
    )


async def generate_report_async(
    responses: Iterable[KPIResponse],
    definitions: Iterable[KPIDefinition],
    cluster_key: ClusterKey,
    knowledge_base: KnowledgeBase,
    as_of: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> Report:
    """
    Async variant of generate_report for event-loop hosts.

    The three independent stages run in worker threads via asyncio.to_thread and
    are gathered before assembly. Cancelling the caller leaves no shared state
    behind.
    """
    settings = settings or get_settings()
    as_of = _reference_time(as_of)

    profile, used_fallback = knowledge_base.resolve(cluster_key.segment, cluster_key.stage)
    scored, flagged = score_responses(list(responses), list(definitions))
    summary = score_axes(scored)

    comparisons, insights, alerts = await asyncio.gather(
        asyncio.to_thread(compare_scored, scored, profile, knowledge_base, as_of, settings),
        asyncio.to_thread(analyze_correlations, scored, profile),
        asyncio.to_thread(detect_risks, scored, profile),
    )

    return assemble_report(
        cluster_key=cluster_key,
        profile=profile,
        used_fallback=used_fallback,
        knowledge_base_version=knowledge_base.version,
        as_of=as_of,
        summary=summary,
        scored=scored,
        flagged=flagged,
        comparisons=comparisons,
        insights=insights,
        alerts=alerts,
        stage_transition=evaluate_stage_transition(scored, profile),
    )
