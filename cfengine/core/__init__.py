"""
Core infrastructure package for the CF modeling engine.

Provides:
- Configuration management via pydantic-settings (Settings, get_settings)
- The immutable EngineConfig passed into every engine entry point
- FastAPI dependency injection utilities

Usage:
    from cfengine.core import get_settings, DEFAULT_ENGINE_CONFIG, EngineConfigDep
"""

# =============================================================================
# Re-exports from cfengine.core.config
# =============================================================================
from cfengine.core.config import (
    DEFAULT_ENGINE_CONFIG,
    EngineConfig,
    Settings,
    get_settings,
)

# =============================================================================
# Re-exports from cfengine.core.dependencies
# =============================================================================
from cfengine.core.dependencies import (
    EngineConfigDep,
    SettingsDep,
    get_engine_config,
    get_settings_dependency,
)

__all__ = [
    # Configuration (from config.py)
    'DEFAULT_ENGINE_CONFIG',
    'EngineConfig',
    'Settings',
    'get_settings',
    # FastAPI dependency injection (from dependencies.py)
    'EngineConfigDep',
    'SettingsDep',
    'get_engine_config',
    'get_settings_dependency',
]
