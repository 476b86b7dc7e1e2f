"""Version compatibility commands for the taskmaster-bridge CLI."""

import click

from taskmaster_bridge.cli.logging import cli_command
from taskmaster_bridge.cli.output import emit_success
from taskmaster_bridge.cli.registry import get_context
from taskmaster_bridge.cli.resilience import (
    handle_keyboard_interrupt,
    version_budget,
    with_sync_timeout,
)


@click.group("versions")
def versions() -> None:
    """Channel version commands."""
    pass


@versions.command("check")
@click.option("--refresh", is_flag=True, help="Ignore the cached result and probe again")
@click.pass_context
@cli_command("versions-check")
@handle_keyboard_interrupt()
@with_sync_timeout(version_budget, "Version check timed out")
def check(ctx: click.Context, refresh: bool) -> None:
    """Compare the Task Master CLI and MCP server versions."""
    client = get_context(ctx).client
    if refresh:
        client.version_gate.invalidate()
    result = client.check_version_compatibility()
    emit_success(
        result.to_dict(),
        warnings=[result.warning] if result.warning else None,
    )
