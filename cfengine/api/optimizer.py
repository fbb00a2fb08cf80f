"""
FastAPI router for the CF optimizer.

Endpoints:
- POST /optimizer/run: synchronous run (executes on the worker executor)
- POST /optimizer/jobs: submit a background run; returns a job id
- GET /optimizer/jobs/{job_id}: latest progress and terminal message
- DELETE /optimizer/jobs/{job_id}: cancel by discarding the job
- POST /optimizer/sweep: modeled outcomes at fixed CF percentiles
- POST /optimizer/compare: compare 2-4 completed runs

Background jobs live only in this process (see OptimizerJobRegistry).
"""

import logging
from typing import Annotated, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from cfengine.core.dependencies import EngineConfigDep
from cfengine.jobs.optimizer_worker import (
    OptimizerJob,
    OptimizerJobRegistry,
    stream_optimizer_messages,
)
from cfengine.models.enums import JobStatus
from cfengine.models.schemas import (
    CFSweepAllResult,
    ComparisonResult,
    MarketRow,
    OptimizerRunRequest,
    OptimizerRunResult,
    OptimizerSettings,
    ProviderRecord,
    RunWithResult,
    WorkerErrorMessage,
    WorkerProgressMessage,
)
from cfengine.services.comparison import compare_optimizer_runs
from cfengine.services.optimizer import run_cf_sweep


logger = logging.getLogger(__name__)


# =============================================================================
# Dependencies
# =============================================================================


def get_job_registry(request: Request) -> OptimizerJobRegistry:
    """Job registry created in the application lifespan."""
    return request.app.state.optimizer_jobs


JobRegistryDep = Annotated[OptimizerJobRegistry, Depends(get_job_registry)]


# =============================================================================
# Local Pydantic Models for API Requests / Responses
# =============================================================================

class SweepRequest(BaseModel):
    """Request model for a CF percentile sweep."""
    providerRows: List[ProviderRecord] = Field(default_factory=list)
    marketRows: List[MarketRow] = Field(default_factory=list)
    settings: OptimizerSettings = Field(default_factory=OptimizerSettings)
    cfPercentiles: List[float] = Field(
        default_factory=lambda: [25.0, 50.0, 75.0, 90.0],
        description="Market CF percentiles to evaluate"
    )
    synonymMap: Dict[str, str] = Field(default_factory=dict)
    specialtyFilter: Optional[str] = None


class CompareRequest(BaseModel):
    """Request model for comparing completed optimizer runs."""
    runs: List[RunWithResult] = Field(..., description="2-4 runs, each with a result")
    baselineId: Optional[str] = Field(
        default=None,
        description="Run that deltas are measured against; the first run when omitted"
    )


class JobSubmitResponse(BaseModel):
    """Response model for background job submission."""
    jobId: str
    status: JobStatus
    createdAt: str


class JobStatusResponse(BaseModel):
    """Latest known state of a background optimizer job."""
    jobId: str
    scenarioId: str
    scenarioName: str
    status: JobStatus
    createdAt: str
    progress: Optional[WorkerProgressMessage] = None
    result: Optional[OptimizerRunResult] = None
    error: Optional[WorkerErrorMessage] = None


def _job_status(job: OptimizerJob) -> JobStatusResponse:
    terminal = job.terminal
    return JobStatusResponse(
        jobId=job.job_id,
        scenarioId=job.scenario_id,
        scenarioName=job.scenario_name,
        status=job.status,
        createdAt=job.created_at,
        progress=job.progress,
        result=terminal.result if terminal is not None and terminal.type == 'done' else None,
        error=terminal if terminal is not None and terminal.type == 'error' else None,
    )


# =============================================================================
# Router Definition
# =============================================================================

router = APIRouter()


@router.post("/run", response_model=OptimizerRunResult)
async def run(body: OptimizerRunRequest, request: Request, config: EngineConfigDep) -> OptimizerRunResult:
    """
    Run the optimizer and wait for the result.

    The pass runs on the worker executor; a worker failure maps to 500 with
    the worker's error message.
    """
    executor = getattr(request.app.state, 'executor', None)
    async for message in stream_optimizer_messages(body, executor, config):
        if message.type == 'done':
            return message.result
        if message.type == 'error':
            raise HTTPException(status_code=500, detail=f"Optimizer run failed: {message.message}")
    raise HTTPException(status_code=500, detail="Optimizer run ended without a result")


@router.post("/jobs", response_model=JobSubmitResponse, status_code=202)
async def submit_job(body: OptimizerRunRequest, registry: JobRegistryDep) -> JobSubmitResponse:
    """Submit a background optimizer run."""
    job = registry.submit(body)
    return JobSubmitResponse(jobId=job.job_id, status=job.status, createdAt=job.created_at)


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: str, registry: JobRegistryDep) -> JobStatusResponse:
    """Latest progress, or the terminal result / error, for a job."""
    job = registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return _job_status(job)


@router.delete("/jobs/{job_id}", status_code=204)
async def cancel_job(job_id: str, registry: JobRegistryDep) -> None:
    """Cancel a job by discarding it."""
    if not registry.cancel(job_id):
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")


@router.post("/sweep", response_model=CFSweepAllResult)
def sweep(body: SweepRequest, config: EngineConfigDep) -> CFSweepAllResult:
    """
    Modeled outcomes at each requested market CF percentile, per specialty.

    Declared sync so FastAPI runs the CPU-bound sweep in its threadpool.
    """
    try:
        return run_cf_sweep(
            body.providerRows,
            body.marketRows,
            body.settings,
            body.cfPercentiles,
            synonym_map=body.synonymMap,
            specialty_filter=body.specialtyFilter,
            config=config,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error running CF sweep: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to run CF sweep: {str(e)}")


@router.post("/compare", response_model=ComparisonResult)
def compare(body: CompareRequest) -> ComparisonResult:
    """Compare 2-4 completed optimizer runs."""
    try:
        return compare_optimizer_runs(body.runs, body.baselineId)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error comparing optimizer runs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to compare runs: {str(e)}")


__all__ = ['router', 'get_job_registry']
