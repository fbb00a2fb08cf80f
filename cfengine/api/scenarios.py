"""
FastAPI router for scenario modeling.

Implements POST /scenarios/compute (one provider against one market row) and
POST /scenarios/batch (all providers x all scenarios, optionally split into
parallel partitions on the worker executor).
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from cfengine.core.dependencies import EngineConfigDep
from cfengine.jobs.batch_worker import stream_batch_messages
from cfengine.models.schemas import (
    BatchResults,
    BatchRunRequest,
    MarketRow,
    ProviderRecord,
    ScenarioInputs,
    ScenarioResult,
)
from cfengine.services.scenario import compute_scenario


logger = logging.getLogger(__name__)


# =============================================================================
# Local Pydantic Models for API Requests
# =============================================================================

class ComputeScenarioRequest(BaseModel):
    """Request model for a single provider scenario."""
    provider: ProviderRecord = Field(..., description="Provider record")
    marketRow: MarketRow = Field(..., description="Resolved market benchmark row")
    scenarioInputs: Optional[ScenarioInputs] = Field(
        default=None,
        description="Scenario inputs; engine defaults when omitted"
    )


# =============================================================================
# Router Definition
# =============================================================================

router = APIRouter()


@router.post("/compute", response_model=ScenarioResult)
async def compute(body: ComputeScenarioRequest, config: EngineConfigDep) -> ScenarioResult:
    """Compute current vs modeled compensation for one provider."""
    try:
        return compute_scenario(body.provider, body.marketRow, body.scenarioInputs, config)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error computing scenario: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to compute scenario: {str(e)}")


@router.post("/batch", response_model=BatchResults)
async def batch(
    body: BatchRunRequest,
    request: Request,
    config: EngineConfigDep,
    partitions: int = Query(default=1, ge=1, le=32, description="Parallel provider partitions"),
) -> BatchResults:
    """
    Run every provider through every scenario.

    Rows are ordered provider-major, scenario-minor regardless of partitioning.
    """
    executor = getattr(request.app.state, 'executor', None)
    try:
        async for message in stream_batch_messages(body, executor, partitions, config):
            if message.type == 'done':
                return message.result
            if message.type == 'error':
                raise HTTPException(status_code=500, detail=f"Batch run failed: {message.message}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error running batch: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to run batch: {str(e)}")
    raise HTTPException(status_code=500, detail="Batch run ended without a result")


__all__ = ['router']
