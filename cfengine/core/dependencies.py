"""
FastAPI dependency injection helpers.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_engine_config: Returns the EngineConfig derived from settings
- SettingsDep / EngineConfigDep: Type aliases for injecting into endpoints

Usage:
    @router.post("/scenarios/compute")
    async def compute(body: ComputeScenarioRequest, config: EngineConfigDep):
        return compute_scenario(body.provider, body.marketRow, body.scenarioInputs, config)

In tests, override with:
    app.dependency_overrides[get_settings_dependency] = lambda: Settings(...)
"""

from typing import Annotated

from fastapi import Depends

from cfengine.core.config import EngineConfig, Settings, get_settings


def get_settings_dependency() -> Settings:
    """Return the Settings singleton (thin wrapper so tests can override it)."""
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


def get_engine_config(settings: SettingsDep) -> EngineConfig:
    """Return the immutable engine configuration for the current settings."""
    return settings.engine_config()


EngineConfigDep = Annotated[EngineConfig, Depends(get_engine_config)]
