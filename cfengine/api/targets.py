"""
FastAPI router for productivity targets.

Endpoints:
- POST /targets/run: group wRVU targets and provider evaluations per specialty
- POST /targets/compare: compare 2-4 completed target runs

Both routes are sync so the pure computations run in FastAPI's threadpool.
"""

import logging
from typing import List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from cfengine.models.schemas import (
    ProductivityTargetRunRequest,
    ProductivityTargetRunResult,
    TargetComparisonResult,
    TargetRunWithResult,
)
from cfengine.services.productivity_target import run_productivity_targets
from cfengine.services.target_comparison import compare_target_runs


logger = logging.getLogger(__name__)


class TargetCompareRequest(BaseModel):
    """Request model for comparing completed target runs."""
    runs: List[TargetRunWithResult] = Field(..., description="2-4 runs, each with a result")


router = APIRouter()


@router.post("/run", response_model=ProductivityTargetRunResult)
def run_targets(body: ProductivityTargetRunRequest) -> ProductivityTargetRunResult:
    """Group wRVU target per specialty with each provider's percent to target."""
    try:
        return run_productivity_targets(
            body.providerRows,
            body.marketRows,
            body.settings,
            synonym_map=body.synonymMap,
        )
    except Exception as e:
        logger.error(f"Error running productivity targets: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to run productivity targets: {str(e)}")


@router.post("/compare", response_model=TargetComparisonResult)
def compare_targets(body: TargetCompareRequest) -> TargetComparisonResult:
    """Compare 2-4 completed productivity target runs."""
    try:
        return compare_target_runs(body.runs)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error comparing target runs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to compare target runs: {str(e)}")


__all__ = ['router']
