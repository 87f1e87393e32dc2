"""MCP prompt templates for common workflows."""

from task_orchestrator.mcp.server import mcp


@mcp.prompt()
def plan_work(goal: str) -> str:
    """Generate a prompt to break a goal into a dependency graph of tasks."""
    return (
        f"I need to accomplish the following goal:\n\n"
        f"{goal}\n\n"
        f"Break this down into concrete tasks for worker agents. For each task:\n"
        f"1. Give it a short, stable task_id\n"
        f"2. Write a self-contained description of the work\n"
        f"3. Pick a kind (research, implement, review) and a worker_type\n"
        f"4. List the task_ids it depends on; independent tasks run in parallel\n"
        f"5. Set inject_results when the task needs its dependencies' full output\n\n"
        f"Create dependencies before the tasks that use them, using the create_task tool. "
        f"Then follow progress with get_status and read outputs with get_result."
    )


@mcp.prompt()
def status_report() -> str:
    """Generate a prompt for an orchestration status report."""
    return (
        "Please generate a status report for the task queue.\n\n"
        "Use the get_status tool, then provide:\n"
        "1. Overall progress summary\n"
        "2. Tasks currently running\n"
        "3. Tasks that are blocked and what they wait on\n"
        "4. Failed tasks and their errors\n"
    )
