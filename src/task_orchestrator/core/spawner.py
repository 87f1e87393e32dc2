"""Task spawning: submit every ready task to the worker in one fan-out."""

import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import datetime

from task_orchestrator.core.context import MissingResultError, build_execution_input
from task_orchestrator.db.models import Task
from task_orchestrator.db.result_store import ResultStore
from task_orchestrator.workers.base import Worker, WorkerError

logger = logging.getLogger(__name__)


@dataclass
class SpawnOutcome:
    task_id: str
    handle: str | None = None
    error: str | None = None


def spawn_ready(
    ready: list[Task],
    by_id: dict[str, Task],
    results: ResultStore,
    worker: Worker,
    executor: Executor,
    now: datetime,
) -> list[SpawnOutcome]:
    """Submit all ``ready`` tasks concurrently and record the outcome on each.

    Successful submissions move to running with their handle. Tasks whose
    input cannot be built or whose submission is refused move to failed.
    Nothing is persisted here; the caller saves the queue once afterwards.
    """
    if not ready:
        return []

    def _submit(task: Task) -> SpawnOutcome:
        try:
            execution_input = build_execution_input(task, by_id, results)
        except (MissingResultError, OSError) as e:
            return SpawnOutcome(task.id, error=str(e))
        try:
            handle = worker.submit(execution_input, task.worker_type)
        except WorkerError as e:
            return SpawnOutcome(task.id, error=str(e))
        except Exception as e:
            logger.exception("Worker raised while submitting task '%s'", task.id)
            return SpawnOutcome(task.id, error=f"{type(e).__name__}: {e}")
        return SpawnOutcome(task.id, handle=handle)

    outcomes = list(executor.map(_submit, ready))

    for task, outcome in zip(ready, outcomes):
        if outcome.handle is not None:
            task.mark_running(outcome.handle, now)
            logger.info("Spawned task '%s' on %s (handle %s)", task.id, task.worker_type, outcome.handle)
        else:
            task.mark_failed(outcome.error or "spawn failed", now)
            logger.warning("Task '%s' failed to spawn: %s", task.id, outcome.error)
    return outcomes
