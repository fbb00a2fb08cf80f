"""
Worker boundary for long-running engine calls.

The optimizer pass (and large batches) are CPU-bound, so they run on a
thread or process pool and talk to the caller through messages:

- request: ``{"type": "run", ...payload}``
- zero or more ``{"type": "progress", ...}`` messages
- exactly one terminal ``{"type": "done", "result"}`` or
  ``{"type": "error", "message"}``

Modules:
- messaging: executor selection and message streaming shared by the workers
- optimizer_worker: optimizer task, raw message handler and in-process job registry
- batch_worker: batch task with optional partitioned parallel execution

Usage:
    from cfengine.jobs import OptimizerJobRegistry, create_executor

    registry = OptimizerJobRegistry(create_executor(get_settings()))
    job = registry.submit(request)
    ...
    job = registry.get(job.job_id)
    if job.terminal is not None:
        print(job.terminal.type)
"""

from cfengine.jobs.messaging import (
    collect_messages,
    create_executor,
    is_terminal,
    stream_task_messages,
    worker_failure_message,
)

from cfengine.jobs.optimizer_worker import (
    OptimizerJob,
    OptimizerJobRegistry,
    handle_worker_message,
    run_optimizer_task,
    stream_optimizer_messages,
)

from cfengine.jobs.batch_worker import (
    partition_providers,
    run_batch_task,
    run_partition,
    stream_batch_messages,
)


__all__ = [
    # Messaging
    'collect_messages',
    'create_executor',
    'is_terminal',
    'stream_task_messages',
    'worker_failure_message',
    # Optimizer worker
    'OptimizerJob',
    'OptimizerJobRegistry',
    'handle_worker_message',
    'run_optimizer_task',
    'stream_optimizer_messages',
    # Batch worker
    'partition_providers',
    'run_batch_task',
    'run_partition',
    'stream_batch_messages',
]
