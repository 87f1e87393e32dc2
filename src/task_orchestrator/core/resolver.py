"""Dependency resolution: validate the task graph and sort tasks by readiness.

Everything here is a pure function over an in-memory task list.
"""

from dataclasses import dataclass, field

from task_orchestrator.db.models import COMPLETE, FAILED, RUNNING, TASK_ID_RE, Task
from task_orchestrator.db.queue_store import QueueValidationError

# What happens to tasks waiting on a failed dependency
BLOCK = "block"
PROPAGATE = "propagate"
FAILURE_POLICIES = (BLOCK, PROPAGATE)


@dataclass
class Categories:
    ready: list[Task] = field(default_factory=list)
    blocked: list[Task] = field(default_factory=list)
    running: list[Task] = field(default_factory=list)
    done: list[Task] = field(default_factory=list)
    # Waiting tasks downstream of a failure, only filled under PROPAGATE
    doomed: list[tuple[Task, str]] = field(default_factory=list)


def categorize(tasks: list[Task], policy: str = PROPAGATE) -> Categories:
    """Partition tasks into ready, blocked, running, done (and doomed)."""
    if policy not in FAILURE_POLICIES:
        raise ValueError(f"Unknown failure policy: {policy}")

    by_id = {t.id: t for t in tasks}
    failed_memo: dict[str, str | None] = {}
    cats = Categories()

    for task in tasks:
        if task.is_terminal:
            cats.done.append(task)
        elif task.status == RUNNING:
            cats.running.append(task)
        elif is_ready(task, by_id):
            cats.ready.append(task)
        elif policy == PROPAGATE and (
            culprit := failed_ancestor(task, by_id, failed_memo)
        ):
            cats.doomed.append((task, culprit))
        else:
            cats.blocked.append(task)
    return cats


def is_ready(task: Task, by_id: dict[str, Task]) -> bool:
    """A waiting task is ready once every dependency is complete."""
    if not task.is_waiting:
        return False
    return all(
        (dep := by_id.get(dep_id)) is not None and dep.status == COMPLETE
        for dep_id in task.depends_on
    )


def waiting_on(task: Task, by_id: dict[str, Task]) -> list[str]:
    """Dependency ids that are not complete yet, in ``depends_on`` order."""
    return [
        dep_id
        for dep_id in task.depends_on
        if (dep := by_id.get(dep_id)) is None or dep.status != COMPLETE
    ]


def failed_ancestor(
    task: Task,
    by_id: dict[str, Task],
    memo: dict[str, str | None] | None = None,
) -> str | None:
    """Return the id of a failed task anywhere upstream of ``task``, if any."""
    memo = {} if memo is None else memo
    stack = [(task.id, iter(task.depends_on))]
    visiting = {task.id}

    while stack:
        node_id, deps = stack[-1]
        dep_id = next(deps, None)
        if dep_id is None:
            stack.pop()
            memo.setdefault(node_id, None)
            continue
        if dep_id in memo:
            if memo[dep_id] is not None:
                return _record(memo, stack, memo[dep_id])
            continue
        dep = by_id.get(dep_id)
        if dep is None or dep_id in visiting:
            continue
        if dep.status == FAILED:
            return _record(memo, stack, dep_id)
        visiting.add(dep_id)
        stack.append((dep_id, iter(dep.depends_on)))
    return memo.get(task.id)


def _record(memo, stack, culprit: str) -> str:
    for node_id, _ in stack:
        memo[node_id] = culprit
    return culprit


# ── Validation ───────────────────────────────────────────────────────────────


def validate_tasks(tasks: list[Task]) -> None:
    """Check ids, dependency references and acyclicity.

    Raises QueueValidationError describing the first problem found.
    """
    seen: set[str] = set()
    for task in tasks:
        if not TASK_ID_RE.match(task.id):
            raise QueueValidationError(f"Invalid task id: {task.id!r}")
        if task.id in seen:
            raise QueueValidationError(f"Duplicate task id: {task.id}")
        seen.add(task.id)

    for task in tasks:
        for dep_id in task.depends_on:
            if dep_id == task.id:
                raise QueueValidationError(f"Task '{task.id}' depends on itself")
            if dep_id not in seen:
                raise QueueValidationError(
                    f"Task '{task.id}' depends on unknown task '{dep_id}'"
                )

    cycle = find_cycle(tasks)
    if cycle:
        raise QueueValidationError(f"Dependency cycle: {' -> '.join(cycle)}")


def find_cycle(tasks: list[Task]) -> list[str] | None:
    """Return one dependency cycle as a path (first id repeated at the end)."""
    by_id = {t.id: t for t in tasks}
    state: dict[str, int] = {}  # 1 = on the current path, 2 = finished

    for root in tasks:
        if root.id in state:
            continue
        path = [root.id]
        stack = [iter(root.depends_on)]
        state[root.id] = 1
        while stack:
            dep_id = next(stack[-1], None)
            if dep_id is None:
                state[path.pop()] = 2
                stack.pop()
                continue
            if dep_id not in by_id:
                continue
            if state.get(dep_id) == 1:
                return path[path.index(dep_id):] + [dep_id]
            if dep_id in state:
                continue
            state[dep_id] = 1
            path.append(dep_id)
            stack.append(iter(by_id[dep_id].depends_on))
    return None
