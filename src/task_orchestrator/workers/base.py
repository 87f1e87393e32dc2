"""Worker interface: non-blocking submit and poll of opaque task executions."""

from dataclasses import dataclass
from typing import Protocol

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"


class WorkerError(Exception):
    """Raised when a worker cannot submit, poll or cancel an execution."""


class UnknownWorkerTypeError(WorkerError):
    """Raised by submit for a worker type no backend handles."""


class UnknownHandleError(WorkerError):
    """Raised by poll for a handle the worker cannot resolve."""


@dataclass
class PollResult:
    status: str
    output: str | None = None
    error: str | None = None

    @property
    def finished(self) -> bool:
        return self.status in (COMPLETED, FAILED)


class Worker(Protocol):
    """Both calls must return immediately, whatever the execution is doing."""

    def submit(self, execution_input: str, worker_type: str) -> str: ...

    def poll(self, handle: str) -> PollResult: ...

    def cancel(self, handle: str) -> None: ...


class WorkerRegistry:
    """Routes each worker type to the backend that runs it.

    Handles are prefixed with the worker type so a poll finds its backend
    again, even from a fresh process.
    """

    def __init__(self, backends: dict[str, Worker] | None = None):
        self._backends: dict[str, Worker] = dict(backends or {})

    def register(self, worker_type: str, backend: Worker):
        if ":" in worker_type:
            raise ValueError(f"Worker type may not contain ':': {worker_type}")
        self._backends[worker_type] = backend

    @property
    def worker_types(self) -> list[str]:
        return sorted(self._backends)

    def submit(self, execution_input: str, worker_type: str) -> str:
        backend = self._backends.get(worker_type)
        if backend is None:
            raise UnknownWorkerTypeError(f"Unknown worker type: {worker_type}")
        return f"{worker_type}:{backend.submit(execution_input, worker_type)}"

    def poll(self, handle: str) -> PollResult:
        backend, inner = self._route(handle)
        return backend.poll(inner)

    def cancel(self, handle: str) -> None:
        backend, inner = self._route(handle)
        backend.cancel(inner)

    def _route(self, handle: str) -> tuple[Worker, str]:
        worker_type, sep, inner = handle.partition(":")
        backend = self._backends.get(worker_type)
        if not sep or backend is None:
            raise UnknownHandleError(f"No worker for handle: {handle}")
        return backend, inner
