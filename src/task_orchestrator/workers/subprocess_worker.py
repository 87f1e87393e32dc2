"""Worker backend that runs each execution as a child process.

Every run leaves its files in ``runs_dir``: ``<run>.in`` (the execution
input), ``<run>.out`` / ``<run>.err`` (captured streams), ``<run>.pid`` and,
once the exit has been observed, ``<run>.exit``. Those files let a restarted
orchestrator re-validate handles it did not spawn itself.
"""

import logging
import os
import signal
import subprocess
import uuid
from datetime import datetime
from pathlib import Path

from task_orchestrator.workers.base import (
    COMPLETED,
    FAILED,
    RUNNING,
    PollResult,
    UnknownHandleError,
    UnknownWorkerTypeError,
    WorkerError,
)

logger = logging.getLogger(__name__)

INPUT_PLACEHOLDER = "{input}"
STDERR_TAIL = 500


class SubprocessWorker:
    def __init__(
        self,
        runs_dir: Path,
        commands: dict[str, list[str]],
        cwd: str | Path | None = None,
    ):
        self.runs_dir = Path(runs_dir)
        self.commands = {k: list(v) for k, v in commands.items()}
        self.cwd = str(cwd) if cwd else None
        # Popen objects for runs started by this process, keyed by run id
        self._active: dict[str, subprocess.Popen] = {}

    def submit(self, execution_input: str, worker_type: str) -> str:
        template = self.commands.get(worker_type)
        if not template:
            raise UnknownWorkerTypeError(f"No command configured for worker type: {worker_type}")

        self.runs_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        run_id = f"{worker_type}-{timestamp}-{uuid.uuid4().hex[:8]}"
        in_path = self._path(run_id, "in")
        in_path.write_text(execution_input, encoding="utf-8")

        if any(INPUT_PLACEHOLDER in arg for arg in template):
            cmd = [arg.replace(INPUT_PLACEHOLDER, execution_input) for arg in template]
            stdin_path = os.devnull
        else:
            cmd = template
            stdin_path = in_path

        try:
            with (
                open(stdin_path, "rb") as stdin,
                open(self._path(run_id, "out"), "wb") as out,
                open(self._path(run_id, "err"), "wb") as err,
            ):
                proc = subprocess.Popen(
                    cmd,
                    cwd=self.cwd,
                    stdin=stdin,
                    stdout=out,
                    stderr=err,
                )
        except OSError as e:
            raise WorkerError(f"Failed to start {cmd[0]}: {e}") from e

        self._path(run_id, "pid").write_text(str(proc.pid))
        self._active[run_id] = proc
        logger.info("Started %s run %s (PID %s)", worker_type, run_id, proc.pid)
        return run_id

    def poll(self, handle: str) -> PollResult:
        proc = self._active.get(handle)
        if proc is not None:
            exit_code = proc.poll()
            if exit_code is None:
                return PollResult(RUNNING)
            self._active.pop(handle, None)
            self._path(handle, "exit").write_text(str(exit_code))
            return self._collect(handle, exit_code)

        # Not started by this process (orchestrator restarted)
        exit_path = self._path(handle, "exit")
        if exit_path.exists():
            return self._collect(handle, int(exit_path.read_text().strip()))

        pid = self._read_pid(handle)
        if pid is None:
            raise UnknownHandleError(f"Unknown run: {handle}")
        if _is_pid_alive(pid):
            return PollResult(RUNNING)
        return self._collect(handle, exit_code=None)

    def cancel(self, handle: str) -> None:
        proc = self._active.get(handle)
        pid = proc.pid if proc is not None else self._read_pid(handle)
        if not pid:
            return
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            pass  # Already exited
        logger.info("Sent SIGTERM to run %s (PID %s)", handle, pid)

    def _collect(self, handle: str, exit_code: int | None) -> PollResult:
        output = _read(self._path(handle, "out"))
        if exit_code is None:
            # Exit status of an orphaned run is lost; judge by its output
            exit_code = 0 if output.strip() else 1
        if exit_code != 0:
            stderr = _read(self._path(handle, "err")).strip()
            detail = stderr[-STDERR_TAIL:] if stderr else "(no stderr)"
            return PollResult(FAILED, output=output, error=f"exit code {exit_code}: {detail}")
        return PollResult(COMPLETED, output=output)

    def _read_pid(self, handle: str) -> int | None:
        try:
            return int(self._path(handle, "pid").read_text().strip())
        except (OSError, ValueError):
            return None

    def _path(self, handle: str, suffix: str) -> Path:
        return self.runs_dir / f"{handle}.{suffix}"


def _is_pid_alive(pid: int) -> bool:
    """Check if a process is still running."""
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # Process exists but we can't signal it


def _read(path: Path) -> str:
    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8", errors="replace")
