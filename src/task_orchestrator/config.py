"""Configuration loading from environment variables."""

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

WORKER_ENV_PREFIX = "ORCH_WORKER_"


def _default_worker_commands() -> dict[str, list[str]]:
    return {
        "claude": ["claude", "-p", "--output-format", "text"],
        "shell": ["sh"],
    }


@dataclass
class Config:
    home: Path = field(default_factory=lambda: Path.cwd() / ".orchestrator")
    store: str = "json"
    queue_path: Path | None = None
    db_path: Path | None = None
    results_dir: Path | None = None
    status_path: Path | None = None
    runs_dir: Path | None = None
    work_dir: Path | None = None
    idle_backoff: float = 5.0
    max_parallel: int = 8
    failure_policy: str = "propagate"
    task_timeout: float | None = None
    log_level: str = "WARNING"
    worker_commands: dict[str, list[str]] = field(default_factory=_default_worker_commands)

    def __post_init__(self):
        self.queue_path = self.queue_path or self.home / "queue.json"
        self.db_path = self.db_path or self.home / "orchestrator.db"
        self.results_dir = self.results_dir or self.home / "results"
        self.status_path = self.status_path or self.home / "status.json"
        self.runs_dir = self.runs_dir or self.home / "runs"

    @classmethod
    def from_env(cls) -> "Config":
        home = os.environ.get("ORCH_HOME")
        config = cls(home=Path(home)) if home else cls()

        if store := os.environ.get("ORCH_STORE"):
            config.store = store

        if queue := os.environ.get("ORCH_QUEUE_PATH"):
            config.queue_path = Path(queue)

        if db := os.environ.get("ORCH_DB_PATH"):
            config.db_path = Path(db)

        if results := os.environ.get("ORCH_RESULTS_DIR"):
            config.results_dir = Path(results)

        if status := os.environ.get("ORCH_STATUS_PATH"):
            config.status_path = Path(status)

        if runs := os.environ.get("ORCH_RUNS_DIR"):
            config.runs_dir = Path(runs)

        if work_dir := os.environ.get("ORCH_WORK_DIR"):
            config.work_dir = Path(work_dir)

        if backoff := os.environ.get("ORCH_IDLE_BACKOFF"):
            config.idle_backoff = float(backoff)

        if parallel := os.environ.get("ORCH_MAX_PARALLEL"):
            config.max_parallel = int(parallel)

        if policy := os.environ.get("ORCH_FAILURE_POLICY"):
            config.failure_policy = policy

        if timeout := os.environ.get("ORCH_TASK_TIMEOUT"):
            config.task_timeout = float(timeout)

        if level := os.environ.get("ORCH_LOG_LEVEL"):
            config.log_level = level.upper()

        for key, value in os.environ.items():
            if key.startswith(WORKER_ENV_PREFIX) and value.strip():
                worker_type = key[len(WORKER_ENV_PREFIX):].lower()
                config.worker_commands[worker_type] = shlex.split(value)

        return config


def get_config() -> Config:
    return Config.from_env()
