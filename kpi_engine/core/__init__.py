"""
Core infrastructure package for the KPI engine.

Provides:
- Configuration management via pydantic-settings
- Logging setup for host applications
- The engine's exception hierarchy

This module re-exports key components from submodules for convenient importing:

    from kpi_engine.core import get_settings, InvalidKPIScoreError

Instead of:

    from kpi_engine.core.config import get_settings
    from kpi_engine.core.exceptions import InvalidKPIScoreError
"""

# =============================================================================
# Re-exports from kpi_engine.core.config
# =============================================================================
from kpi_engine.core.config import Settings, get_settings

# =============================================================================
# Re-exports from kpi_engine.core.exceptions
# =============================================================================
from kpi_engine.core.exceptions import (
    KPIEngineError,
    InvalidClusterProfileError,
    InvalidKPIDefinitionError,
    InvalidKPIScoreError,
    KnowledgeBaseUnavailableError,
)

# =============================================================================
# Re-exports from kpi_engine.core.log_config
# =============================================================================
from kpi_engine.core.log_config import configure_logging

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Errors (from exceptions.py)
    'KPIEngineError',
    'InvalidClusterProfileError',
    'InvalidKPIDefinitionError',
    'InvalidKPIScoreError',
    'KnowledgeBaseUnavailableError',
    # Logging (from log_config.py)
    'configure_logging',
]
