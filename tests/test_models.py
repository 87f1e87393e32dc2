"""Tests for the task model and its lifecycle rules."""

from datetime import datetime, timezone

import pytest

from task_orchestrator.db.models import InvalidTransitionError, Task

NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class TestTransitions:
    def test_forward_path(self):
        task = Task(id="a", worker_type="agent")
        task.mark_blocked()
        assert task.status == "blocked"
        task.mark_running("h1", NOW)
        assert task.status == "running"
        assert task.started == NOW
        assert task.handle == "h1"
        task.mark_complete("done", NOW)
        assert task.status == "complete"
        assert task.handle is None
        assert task.completed == NOW
        assert task.result_summary == "done"

    def test_pending_straight_to_running(self):
        task = Task(id="a", worker_type="agent")
        task.mark_running("h1", NOW)
        assert task.status == "running"

    def test_no_regression_from_running(self):
        task = Task(id="a", worker_type="agent", status="running", handle="h")
        with pytest.raises(InvalidTransitionError):
            task.transition("pending")
        with pytest.raises(InvalidTransitionError):
            task.transition("blocked")

    def test_terminal_is_final(self):
        task = Task(id="a", worker_type="agent", status="complete")
        with pytest.raises(InvalidTransitionError):
            task.transition("failed")
        failed = Task(id="b", worker_type="agent", status="failed")
        with pytest.raises(InvalidTransitionError):
            failed.mark_running("h", NOW)

    def test_same_status_is_noop(self):
        task = Task(id="a", worker_type="agent", status="blocked")
        task.transition("blocked")
        assert task.status == "blocked"

    def test_mark_blocked_only_from_pending(self):
        task = Task(id="a", worker_type="agent", status="running", handle="h")
        task.mark_blocked()
        assert task.status == "running"

    def test_failed_records_error(self):
        task = Task(id="a", worker_type="agent", status="running", handle="h")
        task.mark_failed("boom", NOW)
        assert task.error == "boom"
        assert task.handle is None
        assert task.completed == NOW

    def test_unknown_status(self):
        task = Task(id="a", worker_type="agent")
        with pytest.raises(InvalidTransitionError, match="Unknown status"):
            task.transition("paused")


class TestSerialization:
    def test_round_trip(self):
        task = Task(
            id="b",
            worker_type="agent",
            description="Write docs",
            kind="implement",
            depends_on=["a"],
            inject_results=True,
            created=NOW,
        )
        restored = Task.from_dict(task.to_dict())
        assert restored == task

    def test_defaults_for_minimal_record(self):
        task = Task.from_dict({"id": "x", "worker_type": "agent"})
        assert task.status == "pending"
        assert task.kind == "task"
        assert task.description == ""
        assert task.depends_on == []
        assert task.inject_results is False

    def test_duplicate_dependencies_collapsed(self):
        task = Task.from_dict({"id": "x", "worker_type": "agent", "depends_on": ["a", "b", "a"]})
        assert task.depends_on == ["a", "b"]

    def test_naive_timestamps_read_as_utc(self):
        task = Task.from_dict({"id": "x", "worker_type": "agent", "created": "2026-01-02T03:04:05"})
        assert task.created == NOW

    @pytest.mark.parametrize(
        "record",
        [
            {"worker_type": "agent"},
            {"id": "x"},
            {"id": "x", "worker_type": "agent", "status": "paused"},
            {"id": "x", "worker_type": "agent", "depends_on": "a"},
            {"id": "x", "worker_type": "agent", "created": "yesterday"},
            {"id": "x", "worker_type": "agent", "inject_results": "false"},
            ["not", "an", "object"],
        ],
    )
    def test_malformed_records(self, record):
        with pytest.raises(ValueError):
            Task.from_dict(record)
