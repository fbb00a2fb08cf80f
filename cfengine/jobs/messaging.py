"""
Worker message plumbing shared by the optimizer and batch workers.

A worker task is a plain function ``task(request, emit, config)`` that calls
``emit`` with zero or more progress messages followed by exactly one terminal
message (done or error). This module runs such a task on an executor and
exposes the messages as an async iterator:

- ThreadPoolExecutor (or the loop's default executor): messages are forwarded
  to the event loop as they are emitted, so progress streams live.
- ProcessPoolExecutor: callbacks cannot cross the process boundary, so the
  task runs to completion in the child and its messages are replayed in order.

Cancellation is by discarding the iterator; no checkpoint is kept.
"""

import asyncio
import logging
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Any, AsyncIterator, Callable, List, Optional

from cfengine.core.config import DEFAULT_ENGINE_CONFIG, EngineConfig, Settings
from cfengine.models.schemas import WorkerErrorMessage


logger = logging.getLogger(__name__)


MessageSink = Callable[[Any], None]
WorkerTask = Callable[[Any, MessageSink, EngineConfig], None]

TERMINAL_MESSAGE_TYPES = ('done', 'error')

_TASK_FINISHED = object()


def is_terminal(message: Any) -> bool:
    return getattr(message, 'type', None) in TERMINAL_MESSAGE_TYPES


def worker_failure_message(error: BaseException) -> WorkerErrorMessage:
    """Terminal error for a worker that failed outside its own task code."""
    logger.error(f"Worker failed: {type(error).__name__}: {error}", exc_info=error)
    detail = str(error) or type(error).__name__
    return WorkerErrorMessage(message=f"Worker failed: {detail}")


def create_executor(settings: Settings) -> Executor:
    """Executor for worker tasks as configured by CFENGINE_WORKER_EXECUTOR."""
    if settings.worker_executor == 'process':
        logger.info(f"Worker executor: process pool ({settings.worker_max_workers} workers)")
        return ProcessPoolExecutor(max_workers=settings.worker_max_workers)
    logger.info(f"Worker executor: thread pool ({settings.worker_max_workers} workers)")
    return ThreadPoolExecutor(
        max_workers=settings.worker_max_workers,
        thread_name_prefix='cfengine-worker',
    )


def collect_messages(task: WorkerTask, request: Any, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> List[Any]:
    """Run a task synchronously and return every message it emitted, in order."""
    messages: List[Any] = []
    task(request, messages.append, config)
    return messages


async def stream_task_messages(
    task: WorkerTask,
    request: Any,
    executor: Optional[Executor] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> AsyncIterator[Any]:
    """
    Run a worker task off the event loop and yield its messages.

    A failure of the executor itself (a worker process that dies, a pool that
    is already shut down) is reported as a single error message, so callers
    always see exactly one terminal message.

    Args:
        task: Worker task function (must be module-level for process pools).
        request: Validated request model passed to the task.
        executor: Executor to run on; the loop's default executor when None.
        config: Engine constants passed to the task.

    Yields:
        Progress messages, then exactly one terminal message.
    """
    loop = asyncio.get_running_loop()

    if isinstance(executor, ProcessPoolExecutor):
        try:
            messages = await loop.run_in_executor(executor, collect_messages, task, request, config)
        except Exception as e:
            yield worker_failure_message(e)
            return
        for message in messages:
            yield message
        if not any(is_terminal(m) for m in messages):
            logger.error("Worker task finished without a terminal message")
            yield WorkerErrorMessage(message="Worker finished without a result")
        return

    queue: asyncio.Queue = asyncio.Queue()

    def emit(message: Any) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, message)

    try:
        future = loop.run_in_executor(executor, task, request, emit, config)
    except Exception as e:
        yield worker_failure_message(e)
        return
    # Queued after every message the task emitted
    future.add_done_callback(lambda _: queue.put_nowait(_TASK_FINISHED))

    terminal_seen = False
    while not terminal_seen:
        message = await queue.get()
        if message is _TASK_FINISHED:
            break
        terminal_seen = is_terminal(message)
        yield message

    try:
        await future
    except Exception as e:
        if not terminal_seen:
            yield worker_failure_message(e)
            return
        logger.warning(f"Worker task raised after its terminal message: {e}")
        return
    if not terminal_seen:
        logger.error("Worker task finished without a terminal message")
        yield WorkerErrorMessage(message="Worker finished without a result")


__all__ = [
    'MessageSink',
    'WorkerTask',
    'is_terminal',
    'worker_failure_message',
    'create_executor',
    'collect_messages',
    'stream_task_messages',
]
