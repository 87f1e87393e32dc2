"""Data models for the task orchestrator."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

PENDING = "pending"
BLOCKED = "blocked"
RUNNING = "running"
COMPLETE = "complete"
FAILED = "failed"

STATUSES = (PENDING, BLOCKED, RUNNING, COMPLETE, FAILED)
TERMINAL_STATUSES = frozenset({COMPLETE, FAILED})
WAITING_STATUSES = frozenset({PENDING, BLOCKED})

# complete and failed share a rank: neither can follow the other
_STATUS_RANK = {PENDING: 0, BLOCKED: 1, RUNNING: 2, COMPLETE: 3, FAILED: 3}

TASK_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class InvalidTransitionError(ValueError):
    """Raised when a task would move backwards in its lifecycle."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Task:
    id: str
    worker_type: str
    description: str = ""
    kind: str = "task"
    status: str = PENDING
    depends_on: list[str] = field(default_factory=list)
    inject_results: bool = False
    created: datetime | None = None
    started: datetime | None = None
    completed: datetime | None = None
    handle: str | None = None
    result_summary: str | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_waiting(self) -> bool:
        return self.status in WAITING_STATUSES

    def transition(self, status: str) -> None:
        """Move to ``status``, refusing any step backwards.

        Setting the current status again is a no-op. Terminal tasks never
        change.
        """
        if status not in _STATUS_RANK:
            raise InvalidTransitionError(f"Unknown status: {status}")
        if status == self.status:
            return
        if _STATUS_RANK[status] <= _STATUS_RANK[self.status]:
            raise InvalidTransitionError(
                f"Task '{self.id}' cannot move from {self.status} to {status}"
            )
        self.status = status

    def mark_blocked(self) -> None:
        if self.status == PENDING:
            self.transition(BLOCKED)

    def mark_running(self, handle: str, now: datetime) -> None:
        self.transition(RUNNING)
        self.handle = handle
        if self.started is None:
            self.started = now

    def mark_complete(self, result_summary: str, now: datetime) -> None:
        self.transition(COMPLETE)
        self.result_summary = result_summary
        self.handle = None
        if self.completed is None:
            self.completed = now

    def mark_failed(self, error: str, now: datetime) -> None:
        self.transition(FAILED)
        self.error = error
        self.handle = None
        if self.completed is None:
            self.completed = now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "description": self.description,
            "worker_type": self.worker_type,
            "status": self.status,
            "depends_on": list(self.depends_on),
            "inject_results": self.inject_results,
            "created": _format_dt(self.created),
            "started": _format_dt(self.started),
            "completed": _format_dt(self.completed),
            "handle": self.handle,
            "result_summary": self.result_summary,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        """Build a task from its stored record. Raises ValueError if malformed."""
        if not isinstance(data, dict):
            raise ValueError(f"Task record must be an object, got {type(data).__name__}")
        for key in ("id", "worker_type"):
            if not isinstance(data.get(key), str) or not data[key]:
                raise ValueError(f"Task record missing '{key}': {data!r}")

        status = data.get("status") or PENDING
        if status not in STATUSES:
            raise ValueError(f"Task '{data['id']}' has unknown status: {status}")

        depends_on = data.get("depends_on") or []
        if not isinstance(depends_on, list) or not all(
            isinstance(d, str) for d in depends_on
        ):
            raise ValueError(f"Task '{data['id']}' has malformed depends_on")

        inject_results = data.get("inject_results")
        if inject_results is None:
            inject_results = False
        elif not isinstance(inject_results, bool):
            raise ValueError(f"Task '{data['id']}' has non-boolean inject_results: {inject_results!r}")

        return cls(
            id=data["id"],
            worker_type=data["worker_type"],
            description=data.get("description") or "",
            kind=data.get("kind") or "task",
            status=status,
            depends_on=list(dict.fromkeys(depends_on)),
            inject_results=inject_results,
            created=_parse_dt(data.get("created")),
            started=_parse_dt(data.get("started")),
            completed=_parse_dt(data.get("completed")),
            handle=data.get("handle"),
            result_summary=data.get("result_summary"),
            error=data.get("error"),
        )


def _format_dt(val: datetime | None) -> str | None:
    if val is None:
        return None
    return val.isoformat()


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    if not isinstance(val, str):
        raise ValueError(f"Timestamp must be an ISO-8601 string, got {val!r}")
    dt = datetime.fromisoformat(val)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
