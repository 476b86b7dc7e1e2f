"""Channels for talking to Task Master (MCP server and CLI)."""

from taskmaster_bridge.core.channels.base import (
    COMMAND_TIMEOUT,
    VERSION_TIMEOUT,
    ChannelName,
    ChannelOperation,
    TaskChannel,
)
from taskmaster_bridge.core.channels.cli import CLIChannel
from taskmaster_bridge.core.channels.mcp import ProtocolChannel

__all__ = [
    "COMMAND_TIMEOUT",
    "VERSION_TIMEOUT",
    "ChannelName",
    "ChannelOperation",
    "TaskChannel",
    "CLIChannel",
    "ProtocolChannel",
]
