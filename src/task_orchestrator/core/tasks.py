"""Task creation and lookup on top of a queue store."""

import re

from task_orchestrator.core.resolver import validate_tasks
from task_orchestrator.db.models import Task, utcnow
from task_orchestrator.db.queue_store import QueueStore


def slugify(title: str) -> str:
    """Convert a title to a slug usable as a task id and file name."""
    slug = title.lower().strip()
    slug = re.sub(r"[^a-z0-9\s_-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:60].strip("-")


def _unique_id(existing: set[str], base_slug: str) -> str:
    """Generate a unique task ID from a slug, appending a number if needed."""
    base_slug = base_slug or "task"
    if base_slug not in existing:
        return base_slug

    i = 2
    while f"{base_slug}-{i}" in existing:
        i += 1
    return f"{base_slug}-{i}"


def create_task(
    store: QueueStore,
    description: str,
    worker_type: str,
    task_id: str | None = None,
    kind: str = "task",
    depends_on: list[str] | None = None,
    inject_results: bool = False,
) -> Task:
    """Append a new pending task to the queue.

    Without an explicit id, one is derived from the first line of the
    description. Raises QueueValidationError if the task would break the
    graph (unknown dependency, cycle, duplicate id).
    """
    tasks = store.load()
    if task_id is None:
        first_line = description.strip().splitlines()[0] if description.strip() else kind
        task_id = _unique_id({t.id for t in tasks}, slugify(first_line))

    task = Task(
        id=task_id,
        worker_type=worker_type,
        description=description,
        kind=kind,
        depends_on=list(dict.fromkeys(depends_on or [])),
        inject_results=inject_results,
        created=utcnow(),
    )
    validate_tasks(tasks + [task])
    store.append(task)
    return task


def get_task(store: QueueStore, task_id: str) -> Task | None:
    """Get a task by ID."""
    return next((t for t in store.load() if t.id == task_id), None)


def list_tasks(store: QueueStore, status: str | None = None) -> list[Task]:
    """List tasks in queue order, optionally filtered by status."""
    tasks = store.load()
    if status:
        tasks = [t for t in tasks if t.status == status]
    return tasks
