"""Durable task queue: a JSON document or a SQLite database.

Both backends hand the loop the whole queue per cycle and take it back
in one atomic write. Records appended by other processes between a load and
the following save are never dropped.
"""

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol

from task_orchestrator.db.engine import get_db
from task_orchestrator.db.files import atomic_write_json
from task_orchestrator.db.models import Task

logger = logging.getLogger(__name__)

# Serializes read-merge-write cycles on JSON queues within one process
_json_lock = threading.Lock()


class QueueStoreError(Exception):
    """Raised when the queue cannot be read or written."""


class QueueValidationError(QueueStoreError):
    """Raised when the queue contents violate the task graph rules."""


@dataclass
class TaskEvent:
    id: int | None = None
    task_id: str = ""
    event_type: str = ""
    old_value: str | None = None
    new_value: str | None = None
    created_at: datetime | None = None


class QueueStore(Protocol):
    def load(self) -> list[Task]: ...

    def save(self, tasks: list[Task]) -> None: ...

    def append(self, task: Task) -> None: ...

    def get_events(self, task_id: str) -> list[TaskEvent]: ...


# ── JSON document ────────────────────────────────────────────────────────────


class JsonQueueStore:
    """Queue kept as ``{"tasks": [...]}`` in a single JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> list[Task]:
        return _parse_records(self._read_records(), self.path)

    def save(self, tasks: list[Task]) -> None:
        known = {t.id for t in tasks}
        records = [t.to_dict() for t in tasks]
        with _json_lock:
            # Keep anything appended externally since our load
            for record in self._read_records():
                if isinstance(record, dict) and record.get("id") not in known:
                    records.append(record)
                    logger.debug("Preserved externally appended task %s", record.get("id"))
            self._write(records)

    def append(self, task: Task) -> None:
        with _json_lock:
            records = self._read_records()
            if any(isinstance(r, dict) and r.get("id") == task.id for r in records):
                raise QueueValidationError(f"Task already exists: {task.id}")
            records.append(task.to_dict())
            self._write(records)

    def get_events(self, task_id: str) -> list[TaskEvent]:
        return []

    def _read_records(self) -> list:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise QueueStoreError(f"Cannot read queue {self.path}: {e}") from e
        if not isinstance(raw, dict) or not isinstance(raw.get("tasks"), list):
            raise QueueStoreError(
                f"Malformed queue {self.path}: expected an object with a 'tasks' list"
            )
        return raw["tasks"]

    def _write(self, records: list) -> None:
        try:
            atomic_write_json(self.path, {"tasks": records})
        except OSError as e:
            raise QueueStoreError(f"Cannot write queue {self.path}: {e}") from e


def _parse_records(records: list, source) -> list[Task]:
    tasks = []
    for record in records:
        try:
            tasks.append(Task.from_dict(record))
        except ValueError as e:
            raise QueueStoreError(f"Malformed task in {source}: {e}") from e
    return tasks


# ── SQLite ───────────────────────────────────────────────────────────────────


class SqliteQueueStore:
    """Queue kept in SQLite; each save is a single transaction."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def load(self) -> list[Task]:
        try:
            with get_db(self.db_path) as db:
                rows = db.execute("SELECT * FROM tasks ORDER BY position").fetchall()
                dep_rows = db.execute(
                    "SELECT task_id, depends_on_task_id FROM task_dependencies "
                    "ORDER BY task_id, position"
                ).fetchall()
        except sqlite3.Error as e:
            raise QueueStoreError(f"Cannot read queue {self.db_path}: {e}") from e

        deps: dict[str, list[str]] = {}
        for d in dep_rows:
            deps.setdefault(d["task_id"], []).append(d["depends_on_task_id"])

        records = []
        for row in rows:
            record = dict(row)
            record.pop("position", None)
            record["inject_results"] = bool(record["inject_results"])
            record["depends_on"] = deps.get(row["id"], [])
            records.append(record)
        return _parse_records(records, self.db_path)

    def save(self, tasks: list[Task]) -> None:
        try:
            with get_db(self.db_path) as db:
                with db:
                    for task in tasks:
                        row = db.execute(
                            "SELECT status FROM tasks WHERE id = ?", (task.id,)
                        ).fetchone()
                        if row is None:
                            _insert_task(db, task)
                            continue
                        db.execute(
                            """UPDATE tasks
                               SET status = ?, started = ?, completed = ?, handle = ?,
                                   result_summary = ?, error = ?, created = ?
                               WHERE id = ?""",
                            (
                                task.status,
                                _iso(task.started),
                                _iso(task.completed),
                                task.handle,
                                task.result_summary,
                                task.error,
                                _iso(task.created),
                                task.id,
                            ),
                        )
                        if row["status"] != task.status:
                            _log_event(db, task.id, "status_changed", row["status"], task.status)
        except sqlite3.Error as e:
            raise QueueStoreError(f"Cannot write queue {self.db_path}: {e}") from e

    def append(self, task: Task) -> None:
        try:
            with get_db(self.db_path) as db:
                with db:
                    exists = db.execute(
                        "SELECT id FROM tasks WHERE id = ?", (task.id,)
                    ).fetchone()
                    if exists:
                        raise QueueValidationError(f"Task already exists: {task.id}")
                    _insert_task(db, task)
        except sqlite3.Error as e:
            raise QueueStoreError(f"Cannot write queue {self.db_path}: {e}") from e

    def get_events(self, task_id: str) -> list[TaskEvent]:
        with get_db(self.db_path) as db:
            rows = db.execute(
                "SELECT * FROM task_events WHERE task_id = ? ORDER BY id",
                (task_id,),
            ).fetchall()
        return [
            TaskEvent(
                id=r["id"],
                task_id=r["task_id"],
                event_type=r["event_type"],
                old_value=r["old_value"],
                new_value=r["new_value"],
                created_at=datetime.fromisoformat(r["created_at"]),
            )
            for r in rows
        ]


def _insert_task(db: sqlite3.Connection, task: Task):
    position = db.execute("SELECT COALESCE(MAX(position), -1) + 1 FROM tasks").fetchone()[0]
    db.execute(
        """INSERT INTO tasks
           (id, position, kind, description, worker_type, status, inject_results,
            created, started, completed, handle, result_summary, error)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            task.id,
            position,
            task.kind,
            task.description,
            task.worker_type,
            task.status,
            int(task.inject_results),
            _iso(task.created),
            _iso(task.started),
            _iso(task.completed),
            task.handle,
            task.result_summary,
            task.error,
        ),
    )
    for i, dep_id in enumerate(task.depends_on):
        db.execute(
            "INSERT INTO task_dependencies (task_id, depends_on_task_id, position) "
            "VALUES (?, ?, ?)",
            (task.id, dep_id, i),
        )
    _log_event(db, task.id, "created", None, task.status)


def _log_event(
    db: sqlite3.Connection,
    task_id: str,
    event_type: str,
    old_value: str | None,
    new_value: str | None,
):
    db.execute(
        "INSERT INTO task_events (task_id, event_type, old_value, new_value) VALUES (?, ?, ?, ?)",
        (task_id, event_type, old_value, new_value),
    )


def _iso(val: datetime | None) -> str | None:
    return val.isoformat() if val else None


def open_queue_store(config) -> QueueStore:
    """Build the queue backend selected by ``config.store``."""
    if config.store == "sqlite":
        return SqliteQueueStore(config.db_path)
    if config.store == "json":
        return JsonQueueStore(config.queue_path)
    raise ValueError(f"Unknown queue store: {config.store}")
