"""Command groups for the taskmaster-bridge CLI."""

from taskmaster_bridge.cli.commands.tags import tags
from taskmaster_bridge.cli.commands.tasks import tasks
from taskmaster_bridge.cli.commands.versions import versions

__all__ = ["tags", "tasks", "versions"]
