"""Tag commands for the taskmaster-bridge CLI."""

import click

from taskmaster_bridge.cli.logging import cli_command
from taskmaster_bridge.cli.output import emit_success
from taskmaster_bridge.cli.registry import get_context
from taskmaster_bridge.cli.resilience import (
    command_budget,
    handle_keyboard_interrupt,
    with_sync_timeout,
)
from taskmaster_bridge.core.tags import validate_tag_context


@click.group("tags")
def tags() -> None:
    """Tag (task list context) commands."""
    pass


@tags.command("list")
@click.pass_context
@cli_command("tags-list")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Tag listing timed out")
def list_tags(ctx: click.Context) -> None:
    """Show the current tag and the tags tasks.json holds."""
    info = get_context(ctx).client.get_tag_context()
    problem = validate_tag_context(info)
    emit_success(info.to_dict(), warnings=[problem] if problem else None)


@tags.command("switch")
@click.argument("name")
@click.pass_context
@cli_command("tags-switch")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Tag switch timed out")
def switch_tag(ctx: click.Context, name: str) -> None:
    """Make NAME the current tag."""
    client = get_context(ctx).client
    client.switch_tag(name)
    emit_success({"current_tag": client.tags.current_tag()})


@tags.command("create")
@click.argument("name")
@click.option("--description", default="", help="Description stored in the tag metadata")
@click.pass_context
@cli_command("tags-create")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Tag creation timed out")
def create_tag(ctx: click.Context, name: str, description: str) -> None:
    """Create an empty tag NAME."""
    get_context(ctx).client.create_tag(name, description)
    emit_success({"tag": name, "created": True})


@tags.command("delete")
@click.argument("name")
@click.pass_context
@cli_command("tags-delete")
@handle_keyboard_interrupt()
@with_sync_timeout(command_budget, "Tag deletion timed out")
def delete_tag(ctx: click.Context, name: str) -> None:
    """Delete tag NAME and its tasks (master cannot be deleted)."""
    client = get_context(ctx).client
    client.delete_tag(name)
    emit_success({"tag": name, "deleted": True, "current_tag": client.tags.current_tag()})
