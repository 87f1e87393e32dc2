"""Read-only web dashboard API for the task orchestrator."""

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, PlainTextResponse
from starlette.routing import Route

from task_orchestrator.config import get_config
from task_orchestrator.core import tasks as tasks_mod
from task_orchestrator.core.status import read_snapshot
from task_orchestrator.db.queue_store import QueueStoreError, open_queue_store
from task_orchestrator.db.result_store import ResultStore
from task_orchestrator.web.dashboard import get_dashboard_html


# ── Handlers ──────────────────────────────────────────────────────────────────


async def index(request: Request):
    return HTMLResponse(get_dashboard_html())


async def api_status(request: Request):
    config = get_config()
    try:
        snapshot = read_snapshot(config.status_path)
    except ValueError:
        return JSONResponse({"error": "Snapshot unreadable"}, status_code=503)
    if snapshot is None:
        return JSONResponse({"error": "No snapshot published yet"}, status_code=404)
    return JSONResponse(snapshot)


async def api_list_tasks(request: Request):
    status_filter = request.query_params.get("status")
    store = open_queue_store(get_config())
    try:
        tasks = tasks_mod.list_tasks(store, status=status_filter)
    except QueueStoreError as e:
        return JSONResponse({"error": str(e)}, status_code=503)
    return JSONResponse([t.to_dict() for t in tasks])


async def api_get_task(request: Request):
    task_id = request.path_params["task_id"]
    config = get_config()
    store = open_queue_store(config)
    try:
        task = tasks_mod.get_task(store, task_id)
    except QueueStoreError as e:
        return JSONResponse({"error": str(e)}, status_code=503)
    if not task:
        return JSONResponse({"error": "Task not found"}, status_code=404)
    td = task.to_dict()
    td["has_result"] = ResultStore(config.results_dir).exists(task_id)
    return JSONResponse(td)


async def api_get_result(request: Request):
    task_id = request.path_params["task_id"]
    text = ResultStore(get_config().results_dir).read(task_id)
    if text is None:
        return JSONResponse({"error": "Result not found"}, status_code=404)
    return PlainTextResponse(text)


# ── App ───────────────────────────────────────────────────────────────────────


def create_app() -> Starlette:
    routes = [
        Route("/", index),
        Route("/api/status", api_status),
        Route("/api/tasks", api_list_tasks),
        Route("/api/tasks/{task_id}", api_get_task),
        Route("/api/tasks/{task_id}/result", api_get_result),
    ]
    return Starlette(routes=routes)


def run_server(host: str = "127.0.0.1", port: int = 8787):
    app = create_app()
    uvicorn.run(app, host=host, port=port)
