"""Command registry for the taskmaster-bridge CLI.

Commands are organized by domain (tasks, tags, versions).
"""

from typing import Optional

import click

from taskmaster_bridge.cli.config import CLIContext

# Module-level storage for CLI context (for testing)
_cli_context: Optional[CLIContext] = None


def set_context(ctx: Optional[CLIContext]) -> None:
    """Set the CLI context at module level.

    Primarily used for testing when not using Click's context.
    """
    global _cli_context
    _cli_context = ctx


def get_context(ctx: Optional[click.Context] = None) -> CLIContext:
    """Get CLI context from Click context or module-level storage.

    Raises:
        RuntimeError: If no context is available.
    """
    if ctx is not None:
        return ctx.obj["cli_context"]

    if _cli_context is not None:
        return _cli_context

    raise RuntimeError("No CLI context available. Call set_context() first.")


def register_all_commands(cli: click.Group) -> None:
    """Register all command groups with the CLI.

    Command groups are imported lazily to avoid circular imports.
    """
    from taskmaster_bridge.cli.commands import tags, tasks, versions

    cli.add_command(tasks)
    cli.add_command(tags)
    cli.add_command(versions)

    @cli.command("version")
    @click.pass_context
    def version(ctx: click.Context) -> None:
        """Show CLI version information."""
        from taskmaster_bridge import __version__
        from taskmaster_bridge.cli.output import emit_success

        cli_ctx = get_context(ctx)
        emit_success(
            {
                "version": __version__,
                "name": "taskmaster-bridge",
                "json_only": True,
                "project_root": str(cli_ctx.project_root),
            }
        )
