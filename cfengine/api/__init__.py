"""
API package initialization.

This package contains FastAPI router modules for the CF modeling engine:
- specialties: Specialty -> market row resolution and mapping suggestions
- scenarios: Single-provider scenarios and providers x scenarios batches
- optimizer: CF optimizer runs, background jobs, CF sweeps and run comparison
- targets: Group wRVU productivity targets and target run comparison
- imputed: Imputed $/wRVU by specialty vs market, with provider drill-down
"""

from fastapi import APIRouter

# Import router modules
from cfengine.api.specialties import router as specialties_router
from cfengine.api.scenarios import router as scenarios_router
from cfengine.api.optimizer import router as optimizer_router
from cfengine.api.targets import router as targets_router
from cfengine.api.imputed import router as imputed_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(specialties_router, prefix="/specialties", tags=["specialties"])
api_router.include_router(scenarios_router, prefix="/scenarios", tags=["scenarios"])
api_router.include_router(optimizer_router, prefix="/optimizer", tags=["optimizer"])
api_router.include_router(targets_router, prefix="/targets", tags=["targets"])
api_router.include_router(imputed_router, prefix="/imputed", tags=["imputed"])

# Export all routers for selective imports
__all__ = [
    "api_router",
    "specialties_router",
    "scenarios_router",
    "optimizer_router",
    "targets_router",
    "imputed_router",
]
