"""Execution input construction, including dependency result injection."""

from task_orchestrator.db.models import Task
from task_orchestrator.db.result_store import ResultStore


class MissingResultError(Exception):
    """Raised when a dependency's result artifact is not in the result store."""


def build_execution_input(
    task: Task,
    by_id: dict[str, Task],
    results: ResultStore,
) -> str:
    """Compose the text handed to the worker for ``task``.

    The task description comes first. With ``inject_results`` set, one block
    per dependency follows, in ``depends_on`` order, carrying the dependency's
    id, description and full result text.
    """
    if not task.inject_results or not task.depends_on:
        return task.description

    parts = [task.description, "\n## Results from dependencies"]
    for dep_id in task.depends_on:
        text = results.read(dep_id)
        if text is None:
            raise MissingResultError(
                f"Task '{task.id}' needs the result of '{dep_id}', but none is stored"
            )
        dep = by_id.get(dep_id)
        parts.append(f"\n### Dependency: {dep_id}")
        if dep and dep.description:
            parts.append(f"Description: {dep.description}")
        parts.append(f"\n{text}")

    return "\n".join(parts)
