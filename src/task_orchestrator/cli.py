"""CLI entry point for the task orchestrator."""

import json
import logging
import sys

import click

from task_orchestrator.config import get_config
from task_orchestrator.core import tasks as tasks_mod
from task_orchestrator.core.loop import Orchestrator
from task_orchestrator.core.resolver import FAILURE_POLICIES
from task_orchestrator.core.status import read_snapshot
from task_orchestrator.db.models import STATUSES
from task_orchestrator.db.queue_store import QueueStoreError, open_queue_store
from task_orchestrator.db.result_store import ResultStore

STATUS_ICONS = {
    "pending": "○",
    "blocked": "◌",
    "running": "●",
    "complete": "✓",
    "failed": "✗",
}


def _get_store():
    return open_queue_store(get_config())


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log orchestration events")
def main(verbose):
    """orch - Task Orchestrator CLI"""
    level = "INFO" if verbose else get_config().log_level
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.command("add")
@click.argument("description")
@click.option("--worker-type", "-w", required=True, help="Executor category for this task")
@click.option("--id", "task_id", default=None, help="Task ID (derived from the description if omitted)")
@click.option("--kind", "-k", default="task", help="Task kind, e.g. research, implement, review")
@click.option("--depends-on", default=None, help="Comma-separated task IDs this depends on")
@click.option("--inject/--no-inject", default=False, help="Append dependency results to the input")
def task_add(description, worker_type, task_id, kind, depends_on, inject):
    """Queue a new task."""
    deps = [d.strip() for d in depends_on.split(",") if d.strip()] if depends_on else None
    try:
        task = tasks_mod.create_task(
            _get_store(),
            description,
            worker_type,
            task_id=task_id,
            kind=kind,
            depends_on=deps,
            inject_results=inject,
        )
    except QueueStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Created task: {task.id}")
    click.echo(f"  Kind: {task.kind}")
    click.echo(f"  Worker: {task.worker_type}")
    if task.depends_on:
        click.echo(f"  Depends on: {', '.join(task.depends_on)}")
    if task.inject_results:
        click.echo("  Injects dependency results")


@main.command("list")
@click.option("--status", default=None, type=click.Choice(STATUSES), help="Filter by status")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def task_list(status, json_output):
    """List tasks."""
    try:
        tasks = tasks_mod.list_tasks(_get_store(), status=status)
    except QueueStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if json_output:
        click.echo(json.dumps([t.to_dict() for t in tasks], indent=2))
        return

    if not tasks:
        click.echo("No tasks found.")
        return

    for task in tasks:
        icon = STATUS_ICONS.get(task.status, "?")
        deps = f" [depends: {', '.join(task.depends_on)}]" if task.depends_on else ""
        summary = task.description.strip().splitlines()[0] if task.description.strip() else ""
        click.echo(f"  {icon} {task.id} ({task.status}, {task.worker_type}): {summary}{deps}")


@main.command("show")
@click.argument("task_id")
def task_show(task_id):
    """Show task details."""
    store = _get_store()
    try:
        task = tasks_mod.get_task(store, task_id)
    except QueueStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if not task:
        click.echo(f"Task not found: {task_id}", err=True)
        sys.exit(1)

    click.echo(f"Task: {task.id}")
    click.echo(f"  Kind: {task.kind}")
    click.echo(f"  Worker: {task.worker_type}")
    click.echo(f"  Status: {task.status}")
    if task.description:
        click.echo(f"  Description: {task.description}")
    if task.depends_on:
        click.echo(f"  Depends on: {', '.join(task.depends_on)}")
    if task.inject_results:
        click.echo("  Injects dependency results")
    if task.created:
        click.echo(f"  Created: {task.created}")
    if task.started:
        click.echo(f"  Started: {task.started}")
    if task.completed:
        click.echo(f"  Completed: {task.completed}")
    if task.handle:
        click.echo(f"  Handle: {task.handle}")
    if task.result_summary:
        click.echo(f"  Summary: {task.result_summary}")
    if task.error:
        click.echo(f"  Error: {task.error}")

    events = store.get_events(task_id)
    if events:
        click.echo("  History:")
        for e in events:
            click.echo(f"    [{e.created_at}] {e.event_type}: {e.old_value} -> {e.new_value}")


# ── Orchestration Commands ───────────────────────────────────────────────────


@main.command("run")
@click.option("--once", is_flag=True, help="Run a single cycle and exit")
@click.option("--watch", is_flag=True, help="Keep running after every task finished")
@click.option("--idle-backoff", type=float, default=None, help="Seconds to wait after an idle cycle")
@click.option("--failure-policy", type=click.Choice(FAILURE_POLICIES), default=None,
              help="What happens to tasks waiting on a failed dependency")
def run_command(once, watch, idle_backoff, failure_policy):
    """Run the orchestration loop until every task is finished."""
    config = get_config()
    if idle_backoff is not None:
        config.idle_backoff = idle_backoff
    if failure_policy:
        config.failure_policy = failure_policy

    orchestrator = Orchestrator.from_config(config, exit_when_done=not watch)
    try:
        snapshot = orchestrator.run(max_cycles=1 if once else None)
    except KeyboardInterrupt:
        click.echo("Interrupted.", err=True)
        snapshot = orchestrator.last_snapshot
    finally:
        orchestrator.close()

    if snapshot is None:
        click.echo("No snapshot published (queue unreadable?).", err=True)
        sys.exit(1)
    _echo_counts(snapshot.to_dict())
    if snapshot.state == "failed":
        sys.exit(2)


@main.command("status")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def status_command(json_output):
    """Show the latest published status snapshot."""
    config = get_config()
    try:
        snapshot = read_snapshot(config.status_path)
    except ValueError as e:
        click.echo(f"Error: unreadable snapshot: {e}", err=True)
        sys.exit(1)
    if snapshot is None:
        click.echo("No snapshot published yet. Run 'orch run' first.")
        return

    if json_output:
        click.echo(json.dumps(snapshot, indent=2))
        return

    _echo_counts(snapshot)
    for section in ("running", "blocked", "completed", "failed"):
        for entry in snapshot.get(section, []):
            icon = STATUS_ICONS.get("complete" if section == "completed" else section, "?")
            detail = entry.get("result_summary") or entry.get("error") or ""
            waiting = entry.get("waiting_on")
            if waiting:
                detail = f"waiting on {', '.join(waiting)}"
            click.echo(f"  {icon} {entry['id']}: {entry['description']}" + (f" ({detail})" if detail else ""))


@main.command("result")
@click.argument("task_id")
def result_command(task_id):
    """Print the stored output of a completed task."""
    text = ResultStore(get_config().results_dir).read(task_id)
    if text is None:
        click.echo(f"No result found for task: {task_id}", err=True)
        sys.exit(1)
    click.echo(text, nl=not text.endswith("\n"))


def _echo_counts(snapshot: dict):
    counts = snapshot.get("counts", {})
    parts = ", ".join(f"{counts.get(s, 0)} {s}" for s in STATUSES)
    click.echo(f"State: {snapshot['state']} ({parts})")


# ── Dashboard Command ────────────────────────────────────────────────────────


@main.command("ui")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8787, type=int, help="Port to listen on")
@click.option("--open/--no-open", default=True, help="Open browser automatically")
def ui_command(host, port, open):
    """Launch the web dashboard."""
    import webbrowser

    from task_orchestrator.web.app import run_server

    url = f"http://{host}:{port}"
    click.echo(f"Starting dashboard at {url}")
    if open:
        webbrowser.open(url)
    run_server(host=host, port=port)


# ── MCP Server Command ───────────────────────────────────────────────────────


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport) with the loop in the background."""
    from task_orchestrator.mcp.server import mcp
    from task_orchestrator.mcp import prompts  # noqa: F401 - registers prompts

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
