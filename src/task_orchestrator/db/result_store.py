"""Write-once text artifacts, one per completed task."""

from pathlib import Path

from task_orchestrator.db.files import atomic_write_text


class ResultExistsError(Exception):
    """Raised when a task's result artifact has already been written."""


class ResultStore:
    def __init__(self, results_dir: Path):
        self.results_dir = Path(results_dir)

    def path_for(self, task_id: str) -> Path:
        return self.results_dir / f"{task_id}.md"

    def exists(self, task_id: str) -> bool:
        return self.path_for(task_id).exists()

    def write(self, task_id: str, text: str) -> Path:
        """Store the output of ``task_id``. Artifacts are never overwritten."""
        path = self.path_for(task_id)
        if path.exists():
            raise ResultExistsError(f"Result already stored for task: {task_id}")
        atomic_write_text(path, text)
        return path

    def read(self, task_id: str) -> str | None:
        path = self.path_for(task_id)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")
