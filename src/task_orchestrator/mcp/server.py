"""MCP server letting agents queue tasks and follow their progress."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mcp.server.fastmcp import Context, FastMCP

from task_orchestrator.config import Config, get_config
from task_orchestrator.core import tasks as tasks_mod
from task_orchestrator.core.loop import Orchestrator
from task_orchestrator.core.status import read_snapshot
from task_orchestrator.db.queue_store import QueueStore, QueueStoreError, open_queue_store
from task_orchestrator.db.result_store import ResultStore


@dataclass
class AppContext:
    store: QueueStore
    results: ResultStore
    config: Config
    orchestrator: Orchestrator | None = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Run the orchestrator in the background for the server's lifetime."""
    config = get_config()
    orchestrator = Orchestrator.from_config(config, exit_when_done=False)
    orchestrator.start()

    try:
        yield AppContext(
            store=open_queue_store(config),
            results=ResultStore(config.results_dir),
            config=config,
            orchestrator=orchestrator,
        )
    finally:
        orchestrator.close()


mcp = FastMCP("task-orchestrator", lifespan=app_lifespan)


def _ctx(ctx: Context) -> AppContext:
    """Extract AppContext from MCP Context."""
    return ctx.request_context.lifespan_context


# ── Task Tools ────────────────────────────────────────────────────────────────


@mcp.tool()
def create_task(
    ctx: Context,
    description: str,
    worker_type: str,
    task_id: str | None = None,
    kind: str = "task",
    depends_on: list[str] | None = None,
    inject_results: bool = False,
) -> dict:
    """Queue a new task. It starts once every task in depends_on is complete.

    With inject_results, the full output of each dependency is appended to
    the task's input.
    """
    app = _ctx(ctx)
    try:
        task = tasks_mod.create_task(
            app.store,
            description,
            worker_type,
            task_id=task_id,
            kind=kind,
            depends_on=depends_on,
            inject_results=inject_results,
        )
    except QueueStoreError as e:
        return {"error": str(e)}
    return task.to_dict()


@mcp.tool()
def list_tasks(ctx: Context, status: str | None = None) -> list[dict]:
    """List queued tasks, optionally filtered by status."""
    app = _ctx(ctx)
    return [t.to_dict() for t in tasks_mod.list_tasks(app.store, status=status)]


@mcp.tool()
def get_task(ctx: Context, task_id: str) -> dict:
    """Get the full record of a task."""
    app = _ctx(ctx)
    task = tasks_mod.get_task(app.store, task_id)
    if not task:
        return {"error": f"Task not found: {task_id}"}
    return task.to_dict()


@mcp.tool()
def get_status(ctx: Context) -> dict:
    """Get the latest orchestration snapshot (running, blocked, completed, failed)."""
    app = _ctx(ctx)
    try:
        snapshot = read_snapshot(app.config.status_path)
    except ValueError as e:
        return {"error": f"Snapshot unreadable: {e}"}
    if snapshot is None:
        return {"error": "No snapshot published yet"}
    return snapshot


@mcp.tool()
def get_result(ctx: Context, task_id: str) -> dict:
    """Get the full output of a completed task."""
    app = _ctx(ctx)
    text = app.results.read(task_id)
    if text is None:
        return {"error": f"No result for task: {task_id}"}
    return {"task_id": task_id, "result": text}
