"""
Exception hierarchy for the KPI engine.

Only conditions that abort an operation are exceptions. Conditions the engine
degrades around are reported in data instead:

- Missing cluster profile: resolved by falling back to the general profile
- Incomplete axis: AxisScore.status == "incomplete" with score None
- Insufficient correlation inputs: the insight is omitted
"""

from typing import Iterable, List, Optional


class KPIEngineError(Exception):
    """Base class for all engine errors."""


class InvalidClusterProfileError(KPIEngineError, ValueError):
    """Raised when cluster knowledge base content fails validation at load time."""

    def __init__(self, problems: Iterable[str]):
        self.problems: List[str] = list(problems)
        summary = "; ".join(self.problems[:5])
        if len(self.problems) > 5:
            summary += f"; ... ({len(self.problems) - 5} more)"
        super().__init__(
            f"Invalid cluster knowledge base ({len(self.problems)} problem(s)): {summary}"
        )


class InvalidKPIDefinitionError(KPIEngineError, ValueError):
    """Raised when a KPI definition catalogue fails validation at load time."""

    def __init__(self, problems: Iterable[str]):
        self.problems: List[str] = list(problems)
        super().__init__(
            f"Invalid KPI definitions ({len(self.problems)} problem(s)): "
            + "; ".join(self.problems)
        )


class InvalidKPIScoreError(KPIEngineError, ValueError):
    """Raised when a normalized KPI score falls outside [0, 100]."""

    def __init__(self, kpi_id: str, score: Optional[float], reason: Optional[str] = None):
        self.kpi_id = kpi_id
        self.score = score
        self.reason = reason or "score_out_of_range"
        super().__init__(
            f"KPI '{kpi_id}' has invalid score {score!r} ({self.reason}); "
            "scores must lie within [0, 100]"
        )


class KnowledgeBaseUnavailableError(KPIEngineError, RuntimeError):
    """Raised when the knowledge base store is used before any successful load."""

    def __init__(self) -> None:
        super().__init__("No cluster knowledge base has been loaded yet")
