"""taskmaster-bridge CLI entry point.

JSON-only output for editors and AI assistants.
"""

import logging

import click

from taskmaster_bridge.cli.config import create_context
from taskmaster_bridge.cli.registry import register_all_commands


@click.group()
@click.option(
    "--project-root",
    envvar="TASKMASTER_BRIDGE_PROJECT_ROOT",
    type=click.Path(file_okay=False),
    help="Project directory containing .taskmaster/",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    help="TOML config file (default: ./taskmaster-bridge.toml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log channel attempts to stderr at this level",
)
@click.pass_context
def cli(
    ctx: click.Context,
    project_root: str | None,
    config_file: str | None,
    log_level: str | None,
) -> None:
    """taskmaster-bridge - Task Master access over MCP, CLI or tasks.json.

    All commands output JSON for reliable parsing.
    """
    ctx.ensure_object(dict)
    if "cli_context" not in ctx.obj:
        ctx.obj["cli_context"] = create_context(
            project_root=project_root, config_file=config_file
        )
    if log_level:
        cli_ctx = ctx.obj["cli_context"]
        cli_ctx.config.log_level = log_level.upper()
        cli_ctx.config.setup_logging()
    else:
        # Keep stderr clean for error envelopes
        root_logger = logging.getLogger("taskmaster_bridge")
        if not root_logger.handlers:
            root_logger.addHandler(logging.NullHandler())


# Register all command groups
register_all_commands(cli)


if __name__ == "__main__":
    cli()
