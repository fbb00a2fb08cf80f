"""
Optimizer Worker

Runs the CF optimizer behind a message boundary so a long, CPU-bound pass
never blocks an interactive caller.

Protocol:
- Request: ``{"type": "run", ...OptimizerRunRequest fields}``
- Progress: ``{"type": "progress", "specialtyIndex", "totalSpecialties", "specialtyName"}``
  once per specialty, before it is optimized
- Terminal: ``{"type": "done", "result"}`` or ``{"type": "error", "message"}``;
  exactly one per request, and an error never carries partial results

OptimizerJobRegistry keeps in-process background jobs for the HTTP layer:
submit, poll the latest progress / terminal message, and cancel by discard.
Finished jobs are evicted after a TTL or above a retention limit. Job state
is not persisted.

Usage:
    from cfengine.jobs.optimizer_worker import stream_optimizer_messages

    async for message in stream_optimizer_messages(request):
        if message.type == 'progress':
            print(f"{message.specialtyIndex}/{message.totalSpecialties}")
"""

import asyncio
import logging
import time
import uuid
from concurrent.futures import Executor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from pydantic import ValidationError

from cfengine.core.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from cfengine.jobs.messaging import MessageSink, stream_task_messages, worker_failure_message
from cfengine.models.enums import JobStatus
from cfengine.models.schemas import (
    OptimizerRunRequest,
    OptimizerWorkerMessage,
    WorkerDoneMessage,
    WorkerErrorMessage,
    WorkerProgressMessage,
)
from cfengine.services.optimizer import run_optimizer


logger = logging.getLogger(__name__)


# =============================================================================
# Worker Task
# =============================================================================


def run_optimizer_task(
    request: OptimizerRunRequest,
    emit: MessageSink,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> None:
    """
    Run one optimizer request, emitting progress and one terminal message.

    Any exception raised by the run becomes a single error message; nothing
    is re-raised to the executor.
    """
    def on_progress(index: int, total: int, name: str) -> None:
        emit(WorkerProgressMessage(specialtyIndex=index, totalSpecialties=total, specialtyName=name))

    try:
        result = run_optimizer(
            request.providerRows,
            request.marketRows,
            request.settings,
            scenario_id=request.scenarioId,
            scenario_name=request.scenarioName,
            synonym_map=request.synonymMap,
            specialty_filter=request.specialtyFilter,
            on_progress=on_progress,
            config=config,
        )
    except Exception as e:
        logger.error(f"Optimizer worker failed for scenario {request.scenarioId!r}: {e}", exc_info=True)
        emit(WorkerErrorMessage(message=str(e) or type(e).__name__))
        return

    emit(WorkerDoneMessage(result=result))


def handle_worker_message(
    payload: Dict[str, Any],
    emit: MessageSink,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> None:
    """
    Entry point for raw ``{type: 'run', ...}`` messages.

    Unknown message types and invalid payloads are answered with an error
    message instead of raising.
    """
    if payload.get('type') != 'run':
        emit(WorkerErrorMessage(message=f"Unknown message type: {payload.get('type')!r}"))
        return
    try:
        request = OptimizerRunRequest.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Rejected optimizer request: {e.error_count()} validation error(s)")
        emit(WorkerErrorMessage(message=f"Invalid optimizer request: {e.error_count()} validation error(s)"))
        return
    run_optimizer_task(request, emit, config)


async def stream_optimizer_messages(
    request: OptimizerRunRequest,
    executor: Optional[Executor] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> AsyncIterator[OptimizerWorkerMessage]:
    """Run an optimizer request on the executor and yield its messages."""
    async for message in stream_task_messages(run_optimizer_task, request, executor, config):
        yield message


# =============================================================================
# Background Jobs
# =============================================================================


@dataclass
class OptimizerJob:
    """In-process background optimizer job."""
    job_id: str
    scenario_id: str
    scenario_name: str
    created_at: str
    status: JobStatus = JobStatus.RUNNING
    progress: Optional[WorkerProgressMessage] = None
    terminal: Optional[OptimizerWorkerMessage] = None
    finished_at: Optional[float] = field(default=None, repr=False)
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class OptimizerJobRegistry:
    """
    Tracks background optimizer jobs for the lifetime of the process.

    Finished jobs are evicted once they are older than ``ttl_seconds`` or when
    more than ``max_retained`` finished jobs are held (oldest first). Running
    jobs are never evicted.

    Must be used from inside a running event loop.
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        config: EngineConfig = DEFAULT_ENGINE_CONFIG,
        ttl_seconds: Optional[float] = 3600.0,
        max_retained: Optional[int] = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._executor = executor
        self._config = config
        self._ttl_seconds = ttl_seconds
        self._max_retained = max_retained
        self._clock = clock
        self._jobs: Dict[str, OptimizerJob] = {}

    def submit(self, request: OptimizerRunRequest) -> OptimizerJob:
        self.evict_finished()
        job = OptimizerJob(
            job_id=str(uuid.uuid4()),
            scenario_id=request.scenarioId,
            scenario_name=request.scenarioName,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self._jobs[job.job_id] = job
        job.task = asyncio.create_task(self._consume(job, request))
        logger.info(f"Submitted optimizer job {job.job_id} ({len(request.providerRows)} providers)")
        return job

    async def _consume(self, job: OptimizerJob, request: OptimizerRunRequest) -> None:
        try:
            async for message in stream_optimizer_messages(request, self._executor, self._config):
                if message.type == 'progress':
                    job.progress = message
                elif message.type == 'done':
                    job.terminal = message
                    job.status = JobStatus.DONE
                else:
                    job.terminal = message
                    job.status = JobStatus.ERROR
        except Exception as e:
            job.terminal = worker_failure_message(e)
            job.status = JobStatus.ERROR
        if job.terminal is None:
            job.terminal = WorkerErrorMessage(message="Worker finished without a result")
            job.status = JobStatus.ERROR
        job.finished_at = self._clock()
        logger.info(f"Optimizer job {job.job_id} finished: {job.status.value}")

    def evict_finished(self) -> int:
        """
        Drop finished jobs past the TTL or beyond the retention limit.

        Returns:
            Number of jobs evicted.
        """
        now = self._clock()
        finished = sorted(
            (job for job in self._jobs.values() if job.finished_at is not None),
            key=lambda job: job.finished_at,
        )
        expired = [
            job for job in finished
            if self._ttl_seconds is not None and now - job.finished_at >= self._ttl_seconds
        ]
        expired_ids = {job.job_id for job in expired}
        kept = [job for job in finished if job.job_id not in expired_ids]
        if self._max_retained is not None and len(kept) > self._max_retained:
            expired.extend(kept[:len(kept) - self._max_retained])

        for job in expired:
            del self._jobs[job.job_id]
        if expired:
            logger.debug(f"Evicted {len(expired)} finished optimizer job(s)")
        return len(expired)

    def get(self, job_id: str) -> Optional[OptimizerJob]:
        self.evict_finished()
        return self._jobs.get(job_id)

    def list_jobs(self) -> List[OptimizerJob]:
        self.evict_finished()
        return list(self._jobs.values())

    def cancel(self, job_id: str) -> bool:
        """
        Discard a job. A pass already running on a worker finishes in the
        background, but its messages are dropped.

        Returns:
            False when the job id is unknown.
        """
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        if job.task is not None and not job.task.done():
            job.task.cancel()
        logger.info(f"Discarded optimizer job {job_id}")
        return True

    async def wait(self, job_id: str) -> Optional[OptimizerJob]:
        """Wait for a job's terminal message (None when unknown or discarded)."""
        job = self._jobs.get(job_id)
        if job is None or job.task is None:
            return job
        await job.task
        return job


__all__ = [
    'run_optimizer_task',
    'handle_worker_message',
    'stream_optimizer_messages',
    'OptimizerJob',
    'OptimizerJobRegistry',
]
