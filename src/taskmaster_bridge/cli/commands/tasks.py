"""Task commands for the taskmaster-bridge CLI.

Provides commands for listing, inspecting and mutating tasks of the current
(or given) tag.
"""

from typing import Any, Dict, List, Optional

import click

from taskmaster_bridge.cli.logging import cli_command
from taskmaster_bridge.cli.output import emit_error, emit_success
from taskmaster_bridge.cli.registry import get_context
from taskmaster_bridge.cli.resilience import (
    command_budget,
    handle_keyboard_interrupt,
    slow_budget,
    with_sync_timeout,
)
from taskmaster_bridge.core.models import TaskPriority
from taskmaster_bridge.core.progress import (
    filter_by_category,
    filter_by_priority,
    filter_by_status,
)
from taskmaster_bridge.core.status import STATUS_SYNONYMS, normalize

STATUS_CHOICE = click.Choice(sorted(STATUS_SYNONYMS), case_sensitive=False)
PRIORITY_CHOICE = click.Choice([p.value for p in TaskPriority], case_sensitive=False)

tag_option = click.option("--tag", default=None, help="Tag to use (default: current tag)")


def _split_ids(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


@click.group("tasks")
def tasks() -> None:
    """Task management commands."""
    pass


@tasks.command("list")
@tag_option
@click.option("--status", type=STATUS_CHOICE, default=None, help="Only tasks with this status")
@click.option("--priority", type=PRIORITY_CHOICE, default=None, help="Only tasks with this priority")
@click.option("--category", default=None, help="Only tasks in this category")
@click.pass_context
@cli_command("tasks-list")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Task listing timed out")
def list_tasks(
    ctx: click.Context,
    tag: Optional[str],
    status: Optional[str],
    priority: Optional[str],
    category: Optional[str],
) -> None:
    """List root tasks with their subtasks."""
    client = get_context(ctx).client
    effective_tag = tag or client.tags.current_tag()
    items = client.get_tasks(effective_tag)
    if status:
        items = filter_by_status(items, normalize(status))
    if priority:
        items = filter_by_priority(items, TaskPriority.parse(priority))
    if category:
        items = filter_by_category(items, category)

    emit_success(
        {
            "tag": effective_tag,
            "tasks": [task.to_dict() for task in items],
            "count": len(items),
        }
    )


@tasks.command("show")
@click.argument("task_id")
@click.argument("subtask_id", required=False)
@tag_option
@click.pass_context
@cli_command("tasks-show")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Task lookup timed out")
def show_task(
    ctx: click.Context, task_id: str, subtask_id: Optional[str], tag: Optional[str]
) -> None:
    """Show one task or subtask.

    TASK_ID may be dotted ("3.2"); SUBTASK_ID narrows the lookup to a
    subtask of TASK_ID.
    """
    client = get_context(ctx).client
    task = client.get_task_details(task_id, subtask_id, tag=tag)
    if task is None:
        shown = f"{task_id}.{subtask_id}" if subtask_id else task_id
        emit_error(
            f"Task {shown} not found",
            code="TASK_NOT_FOUND",
            error_type="not_found",
            remediation="Run 'taskmaster-bridge tasks list' to see valid ids",
            details={"task_id": shown},
        )
    emit_success({"task": task.to_dict()})


@tasks.command("set-status")
@click.argument("task_id")
@click.argument("status", type=STATUS_CHOICE)
@tag_option
@click.pass_context
@cli_command("tasks-set-status")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Status update timed out")
def set_status(ctx: click.Context, task_id: str, status: str, tag: Optional[str]) -> None:
    """Set the status of a task or (dotted id) subtask."""
    client = get_context(ctx).client
    client.set_task_status(task_id, status, tag=tag)
    emit_success({"task_id": task_id, "status": normalize(status).value})


@tasks.command("update")
@click.argument("task_id")
@click.option("--parent", "parent_id", default=None, help="Treat TASK_ID as a subtask of this task")
@click.option("--title", default=None)
@click.option("--description", default=None)
@click.option("--details", default=None)
@click.option("--test-strategy", default=None)
@click.option("--priority", type=PRIORITY_CHOICE, default=None)
@click.option("--category", default=None)
@click.option("--dependencies", default=None, help="Comma-separated task ids")
@tag_option
@click.pass_context
@cli_command("tasks-update")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Task update timed out")
def update_task(
    ctx: click.Context,
    task_id: str,
    parent_id: Optional[str],
    title: Optional[str],
    description: Optional[str],
    details: Optional[str],
    test_strategy: Optional[str],
    priority: Optional[str],
    category: Optional[str],
    dependencies: Optional[str],
    tag: Optional[str],
) -> None:
    """Overwrite fields of a task in tasks.json."""
    updates: Dict[str, Any] = {
        key: value
        for key, value in {
            "title": title,
            "description": description,
            "details": details,
            "testStrategy": test_strategy,
            "priority": priority,
            "category": category,
        }.items()
        if value is not None
    }
    if dependencies is not None:
        updates["dependencies"] = _split_ids(dependencies)
    if not updates:
        emit_error(
            "No fields to update",
            code="VALIDATION_ERROR",
            error_type="validation",
            remediation="Pass at least one of --title, --description, --details, "
            "--test-strategy, --priority, --category or --dependencies",
        )

    client = get_context(ctx).client
    if parent_id:
        client.update_subtask(parent_id, task_id, updates, tag=tag)
    else:
        client.update_task(task_id, updates, tag=tag)
    emit_success(
        {
            "task_id": task_id,
            "parent_id": parent_id,
            "updated_fields": sorted(updates),
        }
    )


@tasks.command("add")
@click.argument("title")
@click.option("--description", default="")
@click.option("--details", default="")
@click.option("--test-strategy", default="")
@click.option("--priority", type=PRIORITY_CHOICE, default=TaskPriority.MEDIUM.value)
@click.option("--category", default=None)
@click.option("--dependencies", default=None, help="Comma-separated task ids")
@tag_option
@click.pass_context
@cli_command("tasks-add")
@handle_keyboard_interrupt()
@with_sync_timeout(slow_budget, "Task creation timed out")
def add_task(
    ctx: click.Context,
    title: str,
    description: str,
    details: str,
    test_strategy: str,
    priority: str,
    category: Optional[str],
    dependencies: Optional[str],
    tag: Optional[str],
) -> None:
    """Create a root task."""
    client = get_context(ctx).client
    new_id = client.add_task(
        title,
        description,
        details=details,
        test_strategy=test_strategy,
        priority=priority,
        category=category,
        dependencies=_split_ids(dependencies),
        tag=tag,
    )
    emit_success({"task_id": new_id, "title": title.strip()})


@tasks.command("add-subtask")
@click.argument("parent_id")
@click.argument("title")
@click.option("--description", default="")
@click.option("--details", default="")
@click.option("--status", type=STATUS_CHOICE, default="pending")
@click.option("--priority", type=PRIORITY_CHOICE, default=None)
@click.option("--dependencies", default=None, help="Comma-separated task ids")
@tag_option
@click.pass_context
@cli_command("tasks-add-subtask")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Subtask creation timed out")
def add_subtask(
    ctx: click.Context,
    parent_id: str,
    title: str,
    description: str,
    details: str,
    status: str,
    priority: Optional[str],
    dependencies: Optional[str],
    tag: Optional[str],
) -> None:
    """Append a subtask to PARENT_ID."""
    client = get_context(ctx).client
    new_id = client.add_subtask(
        parent_id,
        title,
        description,
        details=details,
        status=status,
        priority=priority,
        dependencies=_split_ids(dependencies),
        tag=tag,
    )
    emit_success({"parent_id": parent_id, "subtask_id": new_id, "title": title.strip()})


@tasks.command("remove-subtask")
@click.argument("parent_id")
@click.argument("subtask_id")
@tag_option
@click.pass_context
@cli_command("tasks-remove-subtask")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Subtask removal timed out")
def remove_subtask(
    ctx: click.Context, parent_id: str, subtask_id: str, tag: Optional[str]
) -> None:
    """Remove SUBTASK_ID (suffix or dotted id) from PARENT_ID."""
    get_context(ctx).client.remove_subtask(parent_id, subtask_id, tag=tag)
    emit_success({"parent_id": parent_id, "subtask_id": subtask_id, "removed": True})


@tasks.command("delete")
@click.argument("task_id")
@tag_option
@click.pass_context
@cli_command("tasks-delete")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Task deletion timed out")
def delete_task(ctx: click.Context, task_id: str, tag: Optional[str]) -> None:
    """Delete a task and its subtasks."""
    get_context(ctx).client.delete_task(task_id, tag=tag)
    emit_success({"task_id": task_id, "deleted": True})


@tasks.command("expand")
@click.argument("task_id")
@click.option("--force", is_flag=True, help="Replace existing subtasks")
@tag_option
@click.pass_context
@cli_command("tasks-expand")
@handle_keyboard_interrupt()
@with_sync_timeout(slow_budget, "Task expansion timed out")
def expand_task(ctx: click.Context, task_id: str, force: bool, tag: Optional[str]) -> None:
    """Have Task Master generate subtasks for TASK_ID."""
    get_context(ctx).client.expand_task(task_id, force=force, tag=tag)
    emit_success({"task_id": task_id, "force": force, "expanded": True})


@tasks.command("next")
@tag_option
@click.pass_context
@cli_command("tasks-next")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Task discovery timed out")
def next_task(ctx: click.Context, tag: Optional[str]) -> None:
    """Find the next task that is ready to start."""
    task = get_context(ctx).client.get_next_task(tag=tag)
    if task is None:
        emit_success(
            {
                "found": False,
                "task": None,
                "message": "No actionable tasks (all completed or waiting on dependencies)",
            }
        )
        return
    emit_success({"found": True, "task": task.to_dict()})


@tasks.command("progress")
@tag_option
@click.pass_context
@cli_command("tasks-progress")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Progress calculation timed out")
def progress(ctx: click.Context, tag: Optional[str]) -> None:
    """Show completion counts for root tasks and all items."""
    emit_success(get_context(ctx).client.get_task_progress(tag=tag).to_dict())
