"""
Batch Worker

Runs providers x scenarios batches behind the same message boundary as the
optimizer worker:

- Progress: ``{"type": "progress", "processed", "total", "elapsedMs"}``
- Terminal: ``{"type": "done", "result"}`` or ``{"type": "error", "message"}``

Large batches may be split into contiguous provider partitions that run in
parallel on an executor. Rows are reassembled in partition order, so the
output always matches the single-threaded provider-major, scenario-minor
ordering (including the ``provider-{index}`` fallback ids).
"""

import asyncio
import logging
import math
import time
from concurrent.futures import Executor
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Tuple

from cfengine.core.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from cfengine.jobs.messaging import MessageSink, stream_task_messages
from cfengine.models.schemas import (
    BatchDoneMessage,
    BatchProgressMessage,
    BatchResults,
    BatchRowResult,
    BatchRunRequest,
    BatchScenario,
    BatchWorkerMessage,
    MarketRow,
    ProviderRecord,
    WorkerErrorMessage,
)
from cfengine.services.batch import build_provider_rows, resolve_scenarios, run_batch


logger = logging.getLogger(__name__)


# =============================================================================
# Single-Worker Task
# =============================================================================


def run_batch_task(
    request: BatchRunRequest,
    emit: MessageSink,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> None:
    """Run one batch request, emitting progress and one terminal message."""
    started = time.perf_counter()

    def on_progress(processed: int, total: int) -> None:
        emit(BatchProgressMessage(
            processed=processed,
            total=total,
            elapsedMs=int((time.perf_counter() - started) * 1000),
        ))

    try:
        result = run_batch(
            request.providers,
            request.marketRows,
            request.scenarios,
            synonym_map=request.synonymMap,
            on_progress=on_progress,
            chunk_size=request.chunkSize,
            config=config,
        )
    except Exception as e:
        logger.error(f"Batch worker failed: {e}", exc_info=True)
        emit(WorkerErrorMessage(message=str(e) or type(e).__name__))
        return

    emit(BatchDoneMessage(result=result))


# =============================================================================
# Partitioned Execution
# =============================================================================


def partition_providers(
    providers: List[ProviderRecord],
    partitions: int,
) -> List[Tuple[int, List[ProviderRecord]]]:
    """
    Split providers into contiguous slices.

    Returns:
        (start_index, providers) pairs in input order; empty slices are dropped.

    Example:
        >>> [(start, len(chunk)) for start, chunk in partition_providers(list(range(5)), 2)]
        [(0, 3), (3, 2)]
    """
    if not providers:
        return []
    count = max(1, min(partitions, len(providers)))
    size = math.ceil(len(providers) / count)
    return [(start, providers[start:start + size]) for start in range(0, len(providers), size)]


def run_partition(
    start_index: int,
    providers: List[ProviderRecord],
    market_rows: List[MarketRow],
    scenarios: List[BatchScenario],
    synonym_map: Optional[Dict[str, str]] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> List[BatchRowResult]:
    """Batch rows for one partition; indices stay global for fallback ids."""
    rows: List[BatchRowResult] = []
    for offset, provider in enumerate(providers):
        rows.extend(build_provider_rows(
            provider, start_index + offset, market_rows, scenarios, synonym_map, config
        ))
    return rows


def _assemble(request: BatchRunRequest, scenarios: List[BatchScenario], parts: List[List[BatchRowResult]]) -> BatchResults:
    return BatchResults(
        rows=[row for part in parts for row in part],
        runAt=datetime.now(timezone.utc).isoformat(),
        scenarioCount=len(scenarios),
        providerCount=len(request.providers),
    )


async def stream_batch_messages(
    request: BatchRunRequest,
    executor: Optional[Executor] = None,
    partitions: int = 1,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> AsyncIterator[BatchWorkerMessage]:
    """
    Run a batch request off the event loop and yield its messages.

    With partitions > 1 the provider list is split and each slice runs as its
    own executor job; one progress message is emitted per finished slice.
    A failure in any slice yields a single error message and no result.
    """
    if partitions <= 1 or len(request.providers) <= 1:
        async for message in stream_task_messages(run_batch_task, request, executor, config):
            yield message
        return

    loop = asyncio.get_running_loop()
    scenarios = resolve_scenarios(request.scenarios)
    slices = partition_providers(request.providers, partitions)
    total = len(request.providers) * len(scenarios)
    started = time.perf_counter()
    logger.info(f"Starting partitioned batch: {len(request.providers)} providers in {len(slices)} partitions")

    futures = [
        loop.run_in_executor(
            executor, run_partition, start, chunk, request.marketRows, scenarios,
            request.synonymMap, config,
        )
        for start, chunk in slices
    ]

    processed = 0
    try:
        for completed in asyncio.as_completed(futures):
            rows = await completed
            processed += len(rows)
            yield BatchProgressMessage(
                processed=processed,
                total=total,
                elapsedMs=int((time.perf_counter() - started) * 1000),
            )
    except Exception as e:
        logger.error(f"Partitioned batch failed: {e}", exc_info=True)
        for future in futures:
            future.cancel()
        yield WorkerErrorMessage(message=str(e) or type(e).__name__)
        return

    parts = [future.result() for future in futures]
    yield BatchDoneMessage(result=_assemble(request, scenarios, parts))


__all__ = [
    'run_batch_task',
    'partition_providers',
    'run_partition',
    'stream_batch_messages',
]
