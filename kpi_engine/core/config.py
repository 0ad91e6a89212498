"""
Settings and environment management module for the KPI engine.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults so the engine runs without any environment set up
- Singleton pattern via @lru_cache for efficient access

Environment Variables (all prefixed with KPI_ENGINE_):
- KPI_ENGINE_KNOWLEDGE_BASE_PATH: JSON file replacing the bundled cluster profiles
- KPI_ENGINE_RELOAD_TIMEOUT_SECONDS: Timeout for a knowledge base reload (default 5.0)
- KPI_ENGINE_LOG_LEVEL: Log level used by configure_logging (default INFO)

Benchmark Confidence Defaults:
- confidence_sample_saturation: 500 (sample size at which the sample score is 100)
- confidence_recency_half_life_months: 12 (age at which the recency score halves)
- confidence_sample_weight / recency_weight / source_weight: 0.4 / 0.3 / 0.3

Usage:
    from kpi_engine.core.config import get_settings

    settings = get_settings()
    saturation = settings.confidence_sample_saturation
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    The class inherits from pydantic-settings BaseSettings which provides:
    - Automatic loading from environment variables (case-insensitive)
    - Support for .env file loading
    - Type validation and coercion
    - Default values for optional settings

    Attributes:
        knowledge_base_path: Optional path to a cluster profile JSON file. When unset,
            the profiles bundled in kpi_engine/data are used.
        reload_timeout_seconds: Upper bound for an asynchronous knowledge base reload.
        parallel_workers: Worker count for the benchmark/correlation/risk stages.
        confidence_sample_saturation: Sample size above which sample confidence saturates.
        confidence_recency_half_life_months: Months after which recency confidence halves.
        confidence_sample_weight: Weight of the sample-size component.
        confidence_recency_weight: Weight of the recency component.
        confidence_source_weight: Weight of the source-trust component.
        missing_sample_size_score: Sample-size score used when a distribution has no
            sample size recorded.
        log_level: Level applied by configure_logging.
        log_format: Format string applied by configure_logging.
    """

    model_config = SettingsConfigDict(
        env_prefix='KPI_ENGINE_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Knowledge Base
    # =========================================================================

    # When None the bundled kpi_engine/data/cluster_profiles.json is loaded
    knowledge_base_path: Optional[str] = None

    # A reload that takes longer than this keeps the last-known-good snapshot
    reload_timeout_seconds: float = Field(default=5.0, gt=0)

    # =========================================================================
    # Pipeline
    # =========================================================================

    # Benchmark, correlation and risk stages are independent; three covers them all
    parallel_workers: int = Field(default=3, ge=1)

    # =========================================================================
    # Benchmark Confidence
    # These values shape advisory metadata only; they never change a percentile
    # or a performance tier.
    # =========================================================================

    confidence_sample_saturation: int = Field(default=500, gt=0)
    confidence_recency_half_life_months: float = Field(default=12.0, gt=0)
    confidence_sample_weight: float = Field(default=0.4, ge=0)
    confidence_recency_weight: float = Field(default=0.3, ge=0)
    confidence_source_weight: float = Field(default=0.3, ge=0)
    missing_sample_size_score: float = Field(default=30.0, ge=0, le=100)

    # =========================================================================
    # Logging
    # =========================================================================

    log_level: str = 'INFO'
    log_format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    @model_validator(mode='after')
    def _check_confidence_weights(self) -> 'Settings':
        total = (
            self.confidence_sample_weight
            + self.confidence_recency_weight
            + self.confidence_source_weight
        )
        if total <= 0:
            raise ValueError('confidence weights must not all be zero')
        return self


@lru_cache()
def get_settings() -> Settings:
    """
    Get the engine settings singleton.

    Returns a cached Settings instance so environment variables are only read once
    during the process lifetime.

    Returns:
        Settings: The engine settings instance.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
