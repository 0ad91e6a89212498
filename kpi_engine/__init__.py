"""
KPI Engine Package.

Scoring, benchmarking, correlation and risk analysis engine for startup
self-assessment diagnostics. The package is a library: a surrounding application
supplies KPI responses, a KPI definition catalogue and a cluster knowledge base,
and receives one immutable, JSON-serialisable Report per diagnostic snapshot.

Subpackages:
    - core: Configuration, logging setup, and exception hierarchy
    - models: Pydantic schemas and enums
    - services: Knowledge base, matching, scoring, benchmark, correlation,
      risk detection, stage transition, report assembly and the pipeline
    - data: Bundled cluster knowledge base (JSON)
"""

__version__ = "1.0.0"
