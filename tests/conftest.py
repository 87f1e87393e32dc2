"""Shared fixtures: temporary stores and a deterministic fake worker."""

import tempfile
import threading
from pathlib import Path

import pytest

from task_orchestrator.db.queue_store import JsonQueueStore
from task_orchestrator.db.result_store import ResultStore
from task_orchestrator.workers.base import (
    COMPLETED,
    FAILED,
    RUNNING,
    PollResult,
    UnknownHandleError,
    UnknownWorkerTypeError,
)


class ScriptedWorker:
    """Fake worker that finishes each run after a fixed number of polls.

    Runs are identified by the first line of their input, so tests name
    tasks by their description. Every call is appended to ``events``.
    """

    def __init__(
        self,
        outputs: dict[str, str] | None = None,
        failures: dict[str, str] | None = None,
        polls_until_done: int = 1,
        worker_types: tuple[str, ...] = ("agent",),
    ):
        self.outputs = outputs or {}
        self.failures = failures or {}
        self.polls_until_done = polls_until_done
        self.worker_types = worker_types
        self.events: list[tuple[str, str]] = []
        self.inputs: dict[str, str] = {}
        self.cancelled: list[str] = []
        self._remaining: dict[str, int] = {}
        self._count = 0
        self._lock = threading.Lock()

    def submit(self, execution_input: str, worker_type: str) -> str:
        if worker_type not in self.worker_types:
            raise UnknownWorkerTypeError(f"Unknown worker type: {worker_type}")
        name = execution_input.splitlines()[0] if execution_input else ""
        with self._lock:
            self._count += 1
            handle = f"{name}#{self._count}"
            self.inputs[name] = execution_input
            self._remaining[handle] = self.polls_until_done
            self.events.append(("submit", name))
        return handle

    def poll(self, handle: str) -> PollResult:
        if handle not in self._remaining:
            raise UnknownHandleError(f"Unknown handle: {handle}")
        name = handle.split("#")[0]
        self.events.append(("poll", name))
        self._remaining[handle] -= 1
        if self._remaining[handle] > 0:
            return PollResult(RUNNING)
        if name in self.failures:
            return PollResult(FAILED, error=self.failures[name])
        return PollResult(COMPLETED, output=self.outputs.get(name, f"output of {name}\n"))

    def cancel(self, handle: str) -> None:
        self.cancelled.append(handle)

    def submitted(self) -> list[str]:
        return [name for kind, name in self.events if kind == "submit"]


@pytest.fixture
def tmp_home():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def queue(tmp_home):
    return JsonQueueStore(tmp_home / "queue.json")


@pytest.fixture
def results(tmp_home):
    return ResultStore(tmp_home / "results")


@pytest.fixture
def worker():
    return ScriptedWorker()
