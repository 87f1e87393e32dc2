"""Tests for the JSON and SQLite queue stores."""

import json

import pytest

from task_orchestrator.config import Config
from task_orchestrator.db.models import Task
from task_orchestrator.db.queue_store import (
    JsonQueueStore,
    QueueStoreError,
    QueueValidationError,
    SqliteQueueStore,
    open_queue_store,
)


@pytest.fixture(params=["json", "sqlite"])
def store(request, tmp_home):
    if request.param == "json":
        return JsonQueueStore(tmp_home / "queue.json")
    return SqliteQueueStore(tmp_home / "orchestrator.db")


class TestBothStores:
    def test_empty_queue(self, store):
        assert store.load() == []

    def test_append_keeps_order(self, store):
        store.append(Task(id="b", worker_type="agent"))
        store.append(Task(id="a", worker_type="agent", depends_on=["b"], inject_results=True))
        tasks = store.load()
        assert [t.id for t in tasks] == ["b", "a"]
        assert tasks[1].depends_on == ["b"]
        assert tasks[1].inject_results is True

    def test_append_duplicate_rejected(self, store):
        store.append(Task(id="a", worker_type="agent"))
        with pytest.raises(QueueValidationError, match="already exists"):
            store.append(Task(id="a", worker_type="agent"))

    def test_save_updates_orchestrator_fields(self, store):
        store.append(Task(id="a", worker_type="agent"))
        tasks = store.load()
        tasks[0].status = "running"
        tasks[0].handle = "agent:123"
        store.save(tasks)
        reloaded = store.load()[0]
        assert reloaded.status == "running"
        assert reloaded.handle == "agent:123"

    def test_save_keeps_tasks_appended_after_load(self, store):
        store.append(Task(id="a", worker_type="agent"))
        tasks = store.load()
        store.append(Task(id="late", worker_type="agent"))
        tasks[0].status = "blocked"
        store.save(tasks)
        reloaded = {t.id: t for t in store.load()}
        assert set(reloaded) == {"a", "late"}
        assert reloaded["a"].status == "blocked"


class TestJsonQueueStore:
    def test_document_format(self, queue):
        queue.append(Task(id="a", worker_type="agent", description="Research"))
        raw = json.loads(queue.path.read_text())
        assert raw["tasks"][0]["id"] == "a"
        assert raw["tasks"][0]["description"] == "Research"

    def test_invalid_json(self, queue):
        queue.path.write_text("{not json")
        with pytest.raises(QueueStoreError, match="Cannot read"):
            queue.load()

    def test_wrong_shape(self, queue):
        queue.path.write_text(json.dumps([{"id": "a"}]))
        with pytest.raises(QueueStoreError, match="Malformed"):
            queue.load()

    def test_malformed_task_record(self, queue):
        queue.path.write_text(json.dumps({"tasks": [{"id": "a"}]}))
        with pytest.raises(QueueStoreError, match="worker_type"):
            queue.load()

    def test_no_temp_files_left(self, queue):
        queue.append(Task(id="a", worker_type="agent"))
        queue.save(queue.load())
        assert [p.name for p in queue.path.parent.iterdir()] == ["queue.json"]

    def test_no_events(self, queue):
        queue.append(Task(id="a", worker_type="agent"))
        assert queue.get_events("a") == []


class TestSqliteQueueStore:
    def test_status_changes_logged(self, tmp_home):
        store = SqliteQueueStore(tmp_home / "orchestrator.db")
        store.append(Task(id="a", worker_type="agent"))
        tasks = store.load()
        tasks[0].status = "running"
        store.save(tasks)
        store.save(tasks)
        events = store.get_events("a")
        assert [e.event_type for e in events] == ["created", "status_changed"]
        assert events[1].old_value == "pending"
        assert events[1].new_value == "running"

    def test_save_inserts_unknown_tasks(self, tmp_home):
        store = SqliteQueueStore(tmp_home / "orchestrator.db")
        store.save([Task(id="a", worker_type="agent", depends_on=[])])
        assert [t.id for t in store.load()] == ["a"]


class TestOpenQueueStore:
    def test_json_default(self, tmp_home):
        store = open_queue_store(Config(home=tmp_home))
        assert isinstance(store, JsonQueueStore)
        assert store.path == tmp_home / "queue.json"

    def test_sqlite(self, tmp_home):
        store = open_queue_store(Config(home=tmp_home, store="sqlite"))
        assert isinstance(store, SqliteQueueStore)

    def test_unknown(self, tmp_home):
        with pytest.raises(ValueError):
            open_queue_store(Config(home=tmp_home, store="redis"))
