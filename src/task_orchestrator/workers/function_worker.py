"""Worker backend running Python callables on a thread pool."""

import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from task_orchestrator.workers.base import (
    COMPLETED,
    FAILED,
    RUNNING,
    PollResult,
    UnknownHandleError,
    UnknownWorkerTypeError,
)


class FunctionWorker:
    """Each worker type maps to ``fn(execution_input) -> output``.

    Handles only live as long as this object; a restarted orchestrator gets
    UnknownHandleError for them.
    """

    def __init__(
        self,
        functions: dict[str, Callable[[str], str]],
        max_workers: int = 4,
    ):
        self.functions = dict(functions)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="function-worker"
        )
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit(self, execution_input: str, worker_type: str) -> str:
        fn = self.functions.get(worker_type)
        if fn is None:
            raise UnknownWorkerTypeError(f"No function registered for worker type: {worker_type}")
        handle = uuid.uuid4().hex
        future = self._executor.submit(fn, execution_input)
        with self._lock:
            self._futures[handle] = future
        return handle

    def poll(self, handle: str) -> PollResult:
        with self._lock:
            future = self._futures.get(handle)
        if future is None:
            raise UnknownHandleError(f"Unknown handle: {handle}")
        if not future.done():
            return PollResult(RUNNING)
        with self._lock:
            self._futures.pop(handle, None)
        if future.cancelled():
            return PollResult(FAILED, error="cancelled")
        exc = future.exception()
        if exc is not None:
            return PollResult(FAILED, error=f"{type(exc).__name__}: {exc}")
        result = future.result()
        return PollResult(COMPLETED, output="" if result is None else str(result))

    def cancel(self, handle: str) -> None:
        with self._lock:
            future = self._futures.pop(handle, None)
        if future is not None:
            # A call already in progress cannot be interrupted
            future.cancel()

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait, cancel_futures=True)
