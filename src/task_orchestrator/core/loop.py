"""The orchestration loop: load, categorize, spawn, poll, publish, repeat."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from task_orchestrator.core.poller import TimeoutPolicy, max_runtime, poll_running
from task_orchestrator.core.resolver import PROPAGATE, categorize, validate_tasks
from task_orchestrator.core.spawner import spawn_ready
from task_orchestrator.core.status import StatusSnapshot, build_snapshot, publish_snapshot
from task_orchestrator.db.models import Task, utcnow
from task_orchestrator.db.queue_store import QueueStore, QueueStoreError, open_queue_store
from task_orchestrator.db.result_store import ResultStore
from task_orchestrator.workers.base import Worker, WorkerError, WorkerRegistry
from task_orchestrator.workers.subprocess_worker import SubprocessWorker

logger = logging.getLogger(__name__)

LOADING = "LOADING"
CATEGORIZING = "CATEGORIZING"
SPAWNING = "SPAWNING"
POLLING = "POLLING"
PUBLISHING = "PUBLISHING"
DONE = "DONE"


@dataclass
class CycleReport:
    skipped: bool = False
    error: str | None = None
    spawned: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    snapshot: StatusSnapshot | None = None

    @property
    def progressed(self) -> bool:
        return bool(self.spawned or self.completed or self.failed)


class Orchestrator:
    """Drives tasks in the queue to completion without waiting on any of them.

    One thread of control runs the cycles. Submits and polls inside a cycle
    fan out over a thread pool.
    """

    def __init__(
        self,
        queue: QueueStore,
        results: ResultStore,
        worker: Worker,
        status_path: Path,
        failure_policy: str = PROPAGATE,
        max_parallel: int = 8,
        idle_backoff: float = 5.0,
        timeout_policy: TimeoutPolicy | None = None,
        exit_when_done: bool = True,
        clock=utcnow,
    ):
        self.queue = queue
        self.results = results
        self.worker = worker
        self.status_path = Path(status_path)
        self.failure_policy = failure_policy
        self.idle_backoff = idle_backoff
        self.timeout_policy = timeout_policy
        self.exit_when_done = exit_when_done
        self.clock = clock
        self.state = LOADING
        self.last_snapshot: StatusSnapshot | None = None
        self._executor = ThreadPoolExecutor(
            max_workers=max_parallel, thread_name_prefix="orchestrator"
        )
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_config(cls, config, worker: Worker | None = None, **kwargs) -> "Orchestrator":
        if worker is None:
            runner = SubprocessWorker(config.runs_dir, config.worker_commands, cwd=config.work_dir)
            worker = WorkerRegistry({wt: runner for wt in config.worker_commands})
        if config.task_timeout and "timeout_policy" not in kwargs:
            kwargs["timeout_policy"] = max_runtime(config.task_timeout)
        return cls(
            queue=open_queue_store(config),
            results=ResultStore(config.results_dir),
            worker=worker,
            status_path=config.status_path,
            failure_policy=config.failure_policy,
            max_parallel=config.max_parallel,
            idle_backoff=config.idle_backoff,
            **kwargs,
        )

    # ── One cycle ────────────────────────────────────────────────────────────

    def run_cycle(self) -> CycleReport:
        report = CycleReport()

        self.state = LOADING
        try:
            tasks = self.queue.load()
            validate_tasks(tasks)
        except QueueStoreError as e:
            logger.warning("Skipping cycle: %s", e)
            report.skipped = True
            report.error = str(e)
            return report

        loaded = [t.to_dict() for t in tasks]
        now = self.clock()
        for task in tasks:
            if task.created is None:
                task.created = now

        self.state = CATEGORIZING
        cats = categorize(tasks, self.failure_policy)
        for task, culprit in cats.doomed:
            task.mark_failed(f"dependency '{culprit}' failed", now)
            report.failed.append(task.id)
            logger.warning("Task '%s' failed: dependency '%s' failed", task.id, culprit)
        for task in cats.blocked:
            task.mark_blocked()

        self.state = SPAWNING
        by_id = {t.id: t for t in tasks}
        outcomes = spawn_ready(cats.ready, by_id, self.results, self.worker, self._executor, now)
        for outcome in outcomes:
            if outcome.handle is not None:
                report.spawned.append(outcome.task_id)
            else:
                report.failed.append(outcome.task_id)
        changed = [t.to_dict() for t in tasks] != loaded
        if changed and not self._save(tasks, report):
            # Nothing from this cycle was persisted; the next one spawns again
            self._cancel_unrecorded(outcomes)
            report.spawned, report.failed = [], []
            return report

        # Tasks spawned above are not polled until the next cycle
        self.state = POLLING
        polled = poll_running(
            cats.running,
            self.results,
            self.worker,
            self._executor,
            self.clock(),
            self.timeout_policy,
        )
        report.completed.extend(polled.completed)
        report.failed.extend(polled.failed)

        self.state = PUBLISHING
        if polled.finished and not self._save(tasks, report):
            return report
        snapshot = build_snapshot(tasks, self.clock())
        try:
            publish_snapshot(snapshot, self.status_path)
        except OSError as e:
            logger.error("Could not publish status snapshot: %s", e)
        report.snapshot = self.last_snapshot = snapshot

        if snapshot.is_done:
            self.state = DONE
        return report

    def _cancel_unrecorded(self, outcomes) -> None:
        for outcome in outcomes:
            if outcome.handle is None:
                continue
            try:
                self.worker.cancel(outcome.handle)
            except WorkerError as e:
                logger.warning("Could not cancel unrecorded run of task '%s': %s", outcome.task_id, e)

    def _save(self, tasks: list[Task], report: CycleReport) -> bool:
        try:
            self.queue.save(tasks)
        except QueueStoreError as e:
            logger.error("Could not persist queue, retrying next cycle: %s", e)
            report.error = str(e)
            return False
        return True

    # ── Repeating ────────────────────────────────────────────────────────────

    def run(self, max_cycles: int | None = None) -> StatusSnapshot | None:
        """Run cycles until every task is finished (or stop() is called)."""
        cycles = 0
        while not self._stop_event.is_set():
            try:
                report = self.run_cycle()
            except Exception:
                logger.exception("Error in orchestration cycle")
                report = CycleReport(skipped=True)
            cycles += 1

            if self.state == DONE and self.exit_when_done:
                logger.info("All tasks finished (%s)", self.last_snapshot.state)
                break
            if max_cycles is not None and cycles >= max_cycles:
                break
            if not report.progressed:
                self._stop_event.wait(self.idle_backoff)
        return self.last_snapshot

    def start(self):
        """Run the loop in a background thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="orchestrator", daemon=True)
        self._thread.start()
        logger.info("Orchestrator started")

    def stop(self):
        """Signal the loop to stop and wait for the current cycle to end."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=10)
        logger.info("Orchestrator stopped")

    def close(self):
        self.stop()
        self._executor.shutdown(wait=True)
