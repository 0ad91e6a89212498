"""
Cluster Knowledge Base Service

Loads, validates and serves the cluster knowledge base: benchmark distributions,
interpretation templates, risk rules and stage-transition conditions keyed by
(segment, stage).

Load-time validation is complete and fails fast. A load either returns a fully
validated KnowledgeBase or raises InvalidClusterProfileError listing every problem
found:
- Malformed profiles and benchmark distributions (negative or non-monotonic anchors)
- Category references the category matcher cannot produce
- Template placeholders other than {value}, {percentile}, {category}, {display_name}
- Duplicate (segment, stage) keys or duplicate profile ids
- A missing designated general profile

Lookups never fail: an unknown (segment, stage) falls back to the general profile,
which is logged as a notice. The rest of the pipeline therefore always has some
benchmark context.

KnowledgeBaseStore holds the active snapshot. A reload validates the new content
completely before swapping the reference, so readers never observe a partially
loaded knowledge base; a failed reload leaves the previous snapshot active.

Raw document layout (see kpi_engine/data/cluster_profiles.json):
    {
        "version": "2024.1",
        "generalProfileId": "general",
        "defaultSourceTrust": 0.6,
        "sourceTrust": {"saas capital": 1.0, ...},
        "profiles": [{"profileId": ..., "segment": ..., "stage": ..., ...}, ...]
    }
"""

import asyncio
import json
import logging
import re
import string
import threading
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kpi_engine.core.config import Settings, get_settings
from kpi_engine.core.exceptions import (
    InvalidClusterProfileError,
    InvalidKPIDefinitionError,
    KnowledgeBaseUnavailableError,
)
from kpi_engine.models import (
    BenchmarkDistribution,
    ClusterProfile,
    KPIDefinition,
)
from kpi_engine.services.category_matcher import (
    CATEGORY_RULES_VERSION,
    is_known_category,
)
from kpi_engine.services.risk_detection import BUILTIN_RULE_IDS

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_PROFILES_RESOURCE = "cluster_profiles.json"

TEMPLATE_FIELDS = frozenset({"value", "percentile", "category", "display_name"})

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_cluster_token(text: str) -> str:
    """
    Normalize a segment or stage name for lookup.

    Lower-cases and collapses every run of non-alphanumeric characters to '_'.

    Example:
        >>> normalize_cluster_token("Product-Market Fit")
        'product_market_fit'
    """
    return _NON_ALNUM.sub("_", text.strip().lower()).strip("_")


def cluster_key_of(segment: str, stage: str) -> Tuple[str, str]:
    """Composite lookup key for a (segment, stage) pair."""
    return (normalize_cluster_token(segment), normalize_cluster_token(stage))


class _KnowledgeBaseHeader(BaseModel):
    """Top-level fields of a raw knowledge base document."""
    model_config = ConfigDict(extra='forbid')

    version: str = Field(..., min_length=1)
    generalProfileId: str = Field(..., min_length=1)
    defaultSourceTrust: float = Field(default=0.6, ge=0.0, le=1.0)
    sourceTrust: Dict[str, float] = Field(default_factory=dict)
    profiles: List[Dict[str, Any]] = Field(..., min_length=1)


# =============================================================================
# Knowledge Base Snapshot
# =============================================================================


class KnowledgeBase:
    """
    Immutable, validated snapshot of all cluster profiles.

    Instances are produced by load_profiles(); never construct one from
    unvalidated data.
    """

    def __init__(
        self,
        version: str,
        profiles: Iterable[ClusterProfile],
        general_profile_id: str,
        source_trust: Mapping[str, float],
        default_source_trust: float,
    ):
        ordered = tuple(profiles)
        self.version = version
        self.rules_version = CATEGORY_RULES_VERSION
        self.default_source_trust = default_source_trust
        self._profiles_by_id = MappingProxyType({p.profileId: p for p in ordered})
        self._profiles_by_key = MappingProxyType(
            {cluster_key_of(p.segment, p.stage): p for p in ordered}
        )
        self._general = self._profiles_by_id[general_profile_id]
        self._source_trust = MappingProxyType(
            {source.lower(): trust for source, trust in source_trust.items()}
        )
        self._profiles = ordered

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @property
    def general_profile(self) -> ClusterProfile:
        return self._general

    @property
    def profiles(self) -> Tuple[ClusterProfile, ...]:
        return self._profiles

    def resolve(self, segment: str, stage: str) -> Tuple[ClusterProfile, bool]:
        """
        Find the profile for a cluster.

        Returns:
            (profile, used_fallback) where used_fallback is True when no exact
            (segment, stage) match existed and the general profile was returned
        """
        profile = self._profiles_by_key.get(cluster_key_of(segment, stage))
        if profile is not None:
            return profile, False
        logger.info(
            f"No cluster profile for segment={segment!r} stage={stage!r}; "
            f"falling back to '{self._general.profileId}'"
        )
        return self._general, True

    def lookup(self, segment: str, stage: str) -> ClusterProfile:
        """
        Profile for (segment, stage), or the general profile. Never fails.
        """
        profile, _ = self.resolve(segment, stage)
        return profile

    def get_profile(self, profile_id: str) -> Optional[ClusterProfile]:
        return self._profiles_by_id.get(profile_id)

    def all_profiles(self) -> List[ClusterProfile]:
        return list(self._profiles)

    def profiles_for_segment(self, segment: str) -> List[ClusterProfile]:
        key = normalize_cluster_token(segment)
        return [p for p in self._profiles if normalize_cluster_token(p.segment) == key]

    def profiles_for_stage(self, stage: str) -> List[ClusterProfile]:
        key = normalize_cluster_token(stage)
        return [p for p in self._profiles if normalize_cluster_token(p.stage) == key]

    # -------------------------------------------------------------------------
    # Benchmark Context
    # -------------------------------------------------------------------------

    def distribution_for(
        self,
        profile: ClusterProfile,
        category: str,
    ) -> Optional[Tuple[BenchmarkDistribution, ClusterProfile]]:
        """
        Distribution for a category, preferring the given profile.

        Falls back to the general profile's distribution when the cluster profile
        has none for this category.

        Returns:
            (distribution, owning profile), or None when neither profile has one
        """
        distribution = profile.benchmarks.get(category)
        if distribution is not None:
            return distribution, profile
        distribution = self._general.benchmarks.get(category)
        if distribution is not None:
            return distribution, self._general
        return None

    def source_trust_for(self, source: str) -> float:
        """
        Trust weight in [0, 1] for a benchmark source label.

        Trusted-source keys are matched case-insensitively as substrings of the
        label; when several match the highest trust wins.
        """
        label = source.lower()
        matches = [trust for key, trust in self._source_trust.items() if key in label]
        return max(matches) if matches else self.default_source_trust

    def __repr__(self) -> str:
        return f"KnowledgeBase(version={self.version!r}, profiles={len(self._profiles)})"


# =============================================================================
# Validation and Loading
# =============================================================================


def _format_validation_error(prefix: str, exc: ValidationError) -> List[str]:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        problems.append(f"{prefix}{location}: {error.get('msg')}")
    return problems


def _template_problems(prefix: str, template: str) -> List[str]:
    try:
        fields = [name for _, name, _, _ in string.Formatter().parse(template) if name is not None]
    except ValueError as exc:
        return [f"{prefix}: malformed template ({exc})"]
    unknown = sorted({name for name in fields if name not in TEMPLATE_FIELDS})
    if unknown:
        return [f"{prefix}: unknown template placeholder(s) {unknown}"]
    return []


def _profile_problems(profile: ClusterProfile) -> List[str]:
    """Cross-reference checks pydantic field validation cannot express."""
    prefix = f"profile '{profile.profileId}'"
    problems: List[str] = []

    for key, distribution in profile.benchmarks.items():
        if key != distribution.category:
            problems.append(
                f"{prefix}: benchmark key '{key}' does not match its category "
                f"'{distribution.category}'"
            )
        if not is_known_category(key):
            problems.append(f"{prefix}: unknown benchmark category '{key}'")

    for category, templates in profile.interpretationTemplates.items():
        if not is_known_category(category):
            problems.append(f"{prefix}: unknown template category '{category}'")
        for tier, template in templates.items():
            problems.extend(
                _template_problems(f"{prefix} template {category}.{tier.value}", template)
            )

    seen_rules = set()
    for rule in profile.riskRules:
        if rule.ruleId in seen_rules:
            problems.append(f"{prefix}: duplicate risk rule id '{rule.ruleId}'")
        if rule.ruleId in BUILTIN_RULE_IDS:
            problems.append(f"{prefix}: risk rule id '{rule.ruleId}' is reserved")
        seen_rules.add(rule.ruleId)
        for condition in rule.conditions:
            if not is_known_category(condition.category):
                problems.append(
                    f"{prefix}: risk rule '{rule.ruleId}' references unknown category "
                    f"'{condition.category}'"
                )

    if profile.stageTransition is not None:
        for condition in profile.stageTransition.requiredConditions:
            if not is_known_category(condition.category):
                problems.append(
                    f"{prefix}: stage transition references unknown category "
                    f"'{condition.category}'"
                )

    return problems


def load_profiles(raw_config: Mapping[str, Any]) -> KnowledgeBase:
    """
    Validate a raw knowledge base document and build a KnowledgeBase.

    Every profile is validated before anything is returned; all problems are
    collected into one error so a broken document can be fixed in one pass.

    Args:
        raw_config: Parsed knowledge base document

    Returns:
        Validated, immutable KnowledgeBase

    Raises:
        InvalidClusterProfileError: If any part of the document is invalid
    """
    if not isinstance(raw_config, Mapping):
        raise InvalidClusterProfileError(["knowledge base document must be a JSON object"])

    try:
        header = _KnowledgeBaseHeader.model_validate(raw_config)
    except ValidationError as exc:
        raise InvalidClusterProfileError(_format_validation_error("document.", exc)) from exc

    problems: List[str] = []
    for source, trust in header.sourceTrust.items():
        if not 0.0 <= trust <= 1.0:
            problems.append(f"sourceTrust '{source}' must lie within [0, 1], got {trust}")

    profiles: List[ClusterProfile] = []
    seen_ids: Dict[str, int] = {}
    seen_keys: Dict[Tuple[str, str], str] = {}

    for index, raw_profile in enumerate(header.profiles):
        label = raw_profile.get("profileId", f"#{index}") if isinstance(raw_profile, dict) else f"#{index}"
        try:
            profile = ClusterProfile.model_validate(raw_profile)
        except ValidationError as exc:
            problems.extend(_format_validation_error(f"profiles[{index}] ({label}).", exc))
            continue

        if profile.profileId in seen_ids:
            problems.append(f"duplicate profile id '{profile.profileId}'")
        seen_ids[profile.profileId] = index

        key = cluster_key_of(profile.segment, profile.stage)
        if key in seen_keys:
            problems.append(
                f"profiles '{seen_keys[key]}' and '{profile.profileId}' share "
                f"(segment, stage) key {key}"
            )
        else:
            seen_keys[key] = profile.profileId

        problems.extend(_profile_problems(profile))
        profiles.append(profile)

    if header.generalProfileId not in seen_ids:
        problems.append(f"general profile '{header.generalProfileId}' is not defined")

    if problems:
        logger.error(f"Rejected knowledge base version {header.version!r}: {len(problems)} problem(s)")
        raise InvalidClusterProfileError(problems)

    knowledge_base = KnowledgeBase(
        version=header.version,
        profiles=profiles,
        general_profile_id=header.generalProfileId,
        source_trust=header.sourceTrust,
        default_source_trust=header.defaultSourceTrust,
    )
    logger.info(f"Loaded knowledge base version {header.version!r} with {len(profiles)} profiles")
    return knowledge_base


def load_profiles_file(path: Union[str, Path]) -> KnowledgeBase:
    """
    Load and validate a knowledge base from a JSON file.

    Raises:
        InvalidClusterProfileError: If the file is not valid JSON or fails validation
        OSError: If the file cannot be read
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidClusterProfileError([f"{path}: invalid JSON ({exc})"]) from exc
    return load_profiles(raw)


def read_default_document() -> Dict[str, Any]:
    """Parsed copy of the bundled knowledge base document."""
    resource = resources.files("kpi_engine.data").joinpath(DEFAULT_PROFILES_RESOURCE)
    return json.loads(resource.read_text(encoding="utf-8"))


def load_default_profiles() -> KnowledgeBase:
    """Load the knowledge base bundled with the package."""
    return load_profiles(read_default_document())


def load_configured_profiles(settings: Optional[Settings] = None) -> KnowledgeBase:
    """
    Load the knowledge base named by settings, or the bundled one.
    """
    settings = settings or get_settings()
    if settings.knowledge_base_path:
        return load_profiles_file(settings.knowledge_base_path)
    return load_default_profiles()


def load_kpi_definitions(raw_definitions: Iterable[Mapping[str, Any]]) -> Tuple[KPIDefinition, ...]:
    """
    Validate a KPI definition catalogue.

    Raises:
        InvalidKPIDefinitionError: On unknown weight tiers, unknown declared
            categories, missing fields or duplicate KPI ids
    """
    problems: List[str] = []
    definitions: List[KPIDefinition] = []
    seen = set()

    for index, raw in enumerate(raw_definitions):
        try:
            definition = KPIDefinition.model_validate(raw)
        except ValidationError as exc:
            problems.extend(_format_validation_error(f"definitions[{index}].", exc))
            continue
        if definition.kpiId in seen:
            problems.append(f"duplicate KPI id '{definition.kpiId}'")
        seen.add(definition.kpiId)
        if definition.category is not None and not is_known_category(definition.category):
            problems.append(f"KPI '{definition.kpiId}' declares unknown category '{definition.category}'")
        definitions.append(definition)

    if problems:
        raise InvalidKPIDefinitionError(problems)
    return tuple(definitions)


# =============================================================================
# Atomic Store
# =============================================================================


class KnowledgeBaseStore:
    """
    Holder of the active knowledge base snapshot.

    load() and reload() validate completely before swapping the reference under a
    lock; readers take the current reference and keep using it for the whole
    report, so a concurrent reload never changes the context of an in-flight
    report.
    """

    def __init__(self, knowledge_base: Optional[KnowledgeBase] = None):
        self._lock = threading.Lock()
        self._current = knowledge_base

    @property
    def current(self) -> KnowledgeBase:
        """
        Active snapshot.

        Raises:
            KnowledgeBaseUnavailableError: If nothing has been loaded yet
        """
        current = self._current
        if current is None:
            raise KnowledgeBaseUnavailableError()
        return current

    @property
    def is_loaded(self) -> bool:
        return self._current is not None

    def load(self, raw_config: Mapping[str, Any]) -> KnowledgeBase:
        """
        Validate raw content and make it the active snapshot.

        Raises:
            InvalidClusterProfileError: The previous snapshot remains active
        """
        knowledge_base = load_profiles(raw_config)
        self.swap(knowledge_base)
        return knowledge_base

    def swap(self, knowledge_base: KnowledgeBase) -> None:
        with self._lock:
            previous = self._current
            self._current = knowledge_base
        logger.info(
            f"Knowledge base swapped: {previous.version if previous else None!r} -> "
            f"{knowledge_base.version!r}"
        )

    async def reload(
        self,
        loader: Callable[[], Awaitable[Mapping[str, Any]]],
        timeout: Optional[float] = None,
    ) -> KnowledgeBase:
        """
        Fetch new content through a collaborator-supplied loader and swap it in.

        The fetch is bounded by `timeout` (default: settings.reload_timeout_seconds).
        On timeout or I/O failure the last-known-good snapshot stays active and is
        returned. Invalid content raises, also leaving the old snapshot active.

        Raises:
            InvalidClusterProfileError: Content failed validation
            KnowledgeBaseUnavailableError: The fetch failed and no snapshot exists
        """
        if timeout is None:
            timeout = get_settings().reload_timeout_seconds

        try:
            raw = await asyncio.wait_for(loader(), timeout=timeout)
        except (asyncio.TimeoutError, OSError) as exc:
            if self._current is None:
                logger.error(f"Knowledge base fetch failed with no snapshot loaded: {exc!r}")
                raise KnowledgeBaseUnavailableError() from exc
            logger.warning(
                f"Knowledge base fetch failed ({exc!r}); keeping version "
                f"{self._current.version!r}"
            )
            return self._current

        try:
            return self.load(raw)
        except InvalidClusterProfileError:
            if self._current is not None:
                logger.warning(
                    f"Reload rejected; keeping knowledge base version {self._current.version!r}"
                )
            raise
