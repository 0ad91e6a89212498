"""
Logging setup for host applications.

The engine itself only creates module loggers via logging.getLogger(__name__);
configuring handlers is left to the surrounding application, which can call
configure_logging() once at startup.
"""

import logging
from typing import Optional

from kpi_engine.core.config import Settings, get_settings


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Apply the engine's log level and format to the root logger.

    Args:
        settings: Settings to read level/format from (defaults to get_settings()).
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
    )
