"""
Settings and engine configuration for the CF modeling engine.

This module provides two layers of configuration:

- EngineConfig: an immutable (frozen) pydantic model with the ambient constants
  the calculation engine depends on (risk thresholds, governance flag cutoffs,
  batch chunk size, optimizer grid sizing). Every public engine entry point
  accepts an optional ``config`` argument and falls back to
  DEFAULT_ENGINE_CONFIG, so the engine stays a pure function of its inputs.
- Settings: process-level settings loaded by pydantic-settings from environment
  variables and an optional .env file. Settings can produce an EngineConfig
  so deployments can tune engine constants without code changes.

Environment Variables (prefix CFENGINE_):
- CFENGINE_APP_NAME: Display name for the API (default: CF Modeling Engine)
- CFENGINE_LOG_LEVEL: Root log level (default: INFO)
- CFENGINE_CORS_ORIGINS: JSON list of allowed CORS origins
- CFENGINE_WORKER_EXECUTOR: 'thread' or 'process' (default: thread)
- CFENGINE_WORKER_MAX_WORKERS: Worker pool size (default: 2)
- CFENGINE_JOB_TTL_SECONDS: Lifetime of finished background jobs (default: 3600)
- CFENGINE_JOB_MAX_RETAINED: Finished background jobs kept at most (default: 100)
- CFENGINE_LOW_FTE_RISK, CFENGINE_LOW_WRVU_WARNING, ...: EngineConfig overrides

Usage:
    from cfengine.core.config import get_settings, DEFAULT_ENGINE_CONFIG

    settings = get_settings()
    engine_config = settings.engine_config()
    chunk = engine_config.batch_chunk_size
"""

from functools import lru_cache
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseModel):
    """
    Immutable engine constants shared by the scenario, batch and optimizer services.

    Attributes:
        low_fte_risk: Clinical or total FTE below this is a high-risk note.
        low_wrvu_warning: Total wRVUs below this (and above 0) is a warning.
        underpay_gap: Alignment gap below this sets the underpay-risk flag.
        fmv_gap: Modeled gap above this sets the FMV-check flag.
        fmv_tcc_percentile: Modeled TCC percentile above this sets the FMV-check flag.
        policy_band_low: Lower edge of the modeled in-policy band (inclusive).
        policy_band_high: Upper edge of the modeled in-policy band (inclusive).
        batch_chunk_size: Default number of rows between batch progress events.
        low_sample_threshold: Specialties with this many included providers or
            fewer are flagged low_sample.
        grid_steps_default: Target number of CF candidates per specialty search.
        grid_steps_max: Hard ceiling on CF candidates per specialty search.
        grid_step_pct: Minimum spacing between candidates as a fraction of current CF.
    """
    model_config = ConfigDict(frozen=True)

    low_fte_risk: float = 0.7
    low_wrvu_warning: float = 1000.0
    underpay_gap: float = -15.0
    fmv_gap: float = 15.0
    fmv_tcc_percentile: float = 75.0
    policy_band_low: float = 25.0
    policy_band_high: float = 75.0
    batch_chunk_size: int = Field(default=200, ge=1)
    low_sample_threshold: int = 3
    grid_steps_default: int = Field(default=41, ge=2)
    grid_steps_max: int = Field(default=101, ge=2)
    grid_step_pct: float = Field(default=0.005, gt=0)


DEFAULT_ENGINE_CONFIG = EngineConfig()


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Inherits from pydantic-settings BaseSettings, which provides:
    - Automatic loading from environment variables (case-insensitive)
    - Support for .env file loading
    - Type validation and coercion
    """

    model_config = SettingsConfigDict(
        env_prefix='CFENGINE_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Service
    # =========================================================================

    app_name: str = 'CF Modeling Engine'
    log_level: str = 'INFO'

    # Presentation layer origins allowed to call the API
    cors_origins: List[str] = [
        'http://localhost:5173',
        'http://127.0.0.1:5173',
    ]

    # =========================================================================
    # Worker boundary
    # =========================================================================

    # 'process' isolates CPU-bound optimizer passes from the event loop;
    # 'thread' keeps everything in one interpreter (tests, small datasets)
    worker_executor: Literal['thread', 'process'] = 'thread'
    worker_max_workers: int = 2

    # Finished background jobs are dropped after this many seconds, or oldest
    # first once more than job_max_retained are held
    job_ttl_seconds: float = 3600.0
    job_max_retained: int = 100

    # =========================================================================
    # Engine constants (see EngineConfig)
    # =========================================================================

    low_fte_risk: float = 0.7
    low_wrvu_warning: float = 1000.0
    underpay_gap: float = -15.0
    fmv_gap: float = 15.0
    fmv_tcc_percentile: float = 75.0
    policy_band_low: float = 25.0
    policy_band_high: float = 75.0
    batch_chunk_size: int = 200
    low_sample_threshold: int = 3
    grid_steps_default: int = 41
    grid_steps_max: int = 101
    grid_step_pct: float = 0.005

    def engine_config(self) -> EngineConfig:
        """Build the immutable EngineConfig from the engine fields of these settings."""
        return EngineConfig(
            **{name: getattr(self, name) for name in EngineConfig.model_fields}
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The cached settings instance.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
