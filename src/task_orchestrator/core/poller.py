"""Completion polling: non-blocking status checks on every in-flight task."""

import json
import logging
from collections.abc import Callable
from concurrent.futures import Executor
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from task_orchestrator.db.models import Task
from task_orchestrator.db.result_store import ResultExistsError, ResultStore
from task_orchestrator.workers.base import (
    COMPLETED,
    FAILED,
    PollResult,
    Worker,
    WorkerError,
)

logger = logging.getLogger(__name__)

SUMMARY_LIMIT = 200

TimeoutPolicy = Callable[[Task, datetime], bool]


@dataclass
class PollReport:
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def finished(self) -> int:
        return len(self.completed) + len(self.failed)


def max_runtime(seconds: float) -> TimeoutPolicy:
    """Timeout policy failing tasks that have run longer than ``seconds``."""
    limit = timedelta(seconds=seconds)

    def _expired(task: Task, now: datetime) -> bool:
        return task.started is not None and now - task.started > limit

    return _expired


def summarize_output(output: str) -> str:
    """One short line describing a worker's output."""
    text = output.strip()
    if not text:
        return "(empty output)"
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("result"), str) and data["result"].strip():
        text = data["result"].strip()

    first_line = next(line.strip() for line in text.splitlines() if line.strip())
    if len(first_line) > SUMMARY_LIMIT:
        return first_line[: SUMMARY_LIMIT - 3].rstrip() + "..."
    return first_line


def poll_running(
    running: list[Task],
    results: ResultStore,
    worker: Worker,
    executor: Executor,
    now: datetime,
    timeout_policy: TimeoutPolicy | None = None,
) -> PollReport:
    """Check every running task once, concurrently, and apply what finished."""
    report = PollReport()
    if not running:
        return report

    def _check(task: Task) -> PollResult:
        if results.exists(task.id):
            # Finished in an earlier cycle whose queue save failed
            return PollResult(COMPLETED, output=results.read(task.id) or "")
        if timeout_policy is not None and timeout_policy(task, now):
            try:
                worker.cancel(task.handle)
            except WorkerError as e:
                logger.warning("Could not cancel timed out task '%s': %s", task.id, e)
            return PollResult(FAILED, error="timed out")
        try:
            return worker.poll(task.handle)
        except WorkerError as e:
            return PollResult(FAILED, error=str(e))
        except Exception as e:
            logger.exception("Worker raised while polling task '%s'", task.id)
            return PollResult(FAILED, error=f"{type(e).__name__}: {e}")

    polled = list(executor.map(_check, running))

    for task, result in zip(running, polled):
        if result.status == COMPLETED:
            if _complete(task, result.output or "", results, now):
                report.completed.append(task.id)
        elif result.status == FAILED:
            task.mark_failed(result.error or "worker reported failure", now)
            report.failed.append(task.id)
            logger.warning("Task '%s' failed: %s", task.id, task.error)
    return report


def _complete(task: Task, output: str, results: ResultStore, now: datetime) -> bool:
    try:
        results.write(task.id, output)
    except ResultExistsError:
        # Stored by an earlier cycle whose queue save never landed
        output = results.read(task.id) or ""
        logger.warning("Reusing stored result for task '%s'", task.id)
    except OSError as e:
        logger.error("Could not store result for task '%s': %s", task.id, e)
        return False
    task.mark_complete(summarize_output(output), now)
    logger.info("Task '%s' complete: %s", task.id, task.result_summary)
    return True
