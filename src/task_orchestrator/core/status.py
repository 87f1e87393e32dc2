"""Status snapshot: an externally readable summary rebuilt every cycle."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from task_orchestrator.core.resolver import waiting_on
from task_orchestrator.db.files import atomic_write_json
from task_orchestrator.db.models import COMPLETE, FAILED, RUNNING, STATUSES, Task

STATE_RUNNING = "running"
STATE_COMPLETE = "complete"
STATE_FAILED = "failed"

DESCRIPTION_LIMIT = 80


@dataclass
class StatusSnapshot:
    state: str
    updated: datetime
    counts: dict[str, int] = field(default_factory=dict)
    running: list[dict] = field(default_factory=list)
    blocked: list[dict] = field(default_factory=list)
    completed: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def is_done(self) -> bool:
        return self.state != STATE_RUNNING

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "updated": self.updated.isoformat(),
            "counts": dict(self.counts),
            "running": self.running,
            "blocked": self.blocked,
            "completed": self.completed,
            "failed": self.failed,
        }


def short_description(text: str, limit: int = DESCRIPTION_LIMIT) -> str:
    first = next((line.strip() for line in text.splitlines() if line.strip()), "")
    if len(first) > limit:
        return first[: limit - 3].rstrip() + "..."
    return first


def build_snapshot(tasks: list[Task], now: datetime) -> StatusSnapshot:
    """Derive the snapshot from the queue contents alone."""
    by_id = {t.id: t for t in tasks}
    counts = {s: 0 for s in STATUSES}
    running, blocked, completed, failed = [], [], [], []

    for task in tasks:
        counts[task.status] += 1
        entry = {
            "id": task.id,
            "description": short_description(task.description),
            "kind": task.kind,
            "worker_type": task.worker_type,
        }
        if task.status == RUNNING:
            entry["started"] = _iso(task.started)
            running.append(entry)
        elif task.status == COMPLETE:
            entry["completed"] = _iso(task.completed)
            entry["result_summary"] = task.result_summary
            completed.append(entry)
        elif task.status == FAILED:
            entry["completed"] = _iso(task.completed)
            entry["error"] = task.error
            failed.append(entry)
        else:
            entry["created"] = _iso(task.created)
            entry["waiting_on"] = waiting_on(task, by_id)
            blocked.append(entry)

    if all(t.is_terminal for t in tasks):
        state = STATE_FAILED if failed else STATE_COMPLETE
    else:
        state = STATE_RUNNING

    return StatusSnapshot(
        state=state,
        updated=now,
        counts=counts,
        running=running,
        blocked=blocked,
        completed=completed,
        failed=failed,
    )


def publish_snapshot(snapshot: StatusSnapshot, path: Path) -> None:
    """Replace the snapshot file atomically."""
    atomic_write_json(Path(path), snapshot.to_dict())


def read_snapshot(path: Path) -> dict | None:
    path = Path(path)
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def _iso(val: datetime | None) -> str | None:
    return val.isoformat() if val else None
