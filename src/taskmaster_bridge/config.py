"""
Configuration for taskmaster-bridge.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (taskmaster-bridge.toml)
3. Default values (lowest priority)

Environment variables:
- TASKMASTER_BRIDGE_PROJECT_ROOT: Project directory holding .taskmaster/
- TASKMASTER_BRIDGE_TASKMASTER_DIR: Name of the Task Master directory (default: .taskmaster)
- TASKMASTER_BRIDGE_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- TASKMASTER_BRIDGE_STRUCTURED_LOGGING: JSON log lines (true/false)
- TASKMASTER_BRIDGE_DISABLE_MCP: Skip the MCP channel entirely (true/false)
- TASKMASTER_BRIDGE_MCP_COMMAND: Command that starts the MCP server (default: npx)
- TASKMASTER_BRIDGE_MCP_ARGS: Space-separated arguments for the MCP server command
- TASKMASTER_BRIDGE_CLI_BINARY: Task Master CLI binary (default: task-master)
- TASKMASTER_BRIDGE_NPX_PACKAGE: npm package used when the binary is missing
- TASKMASTER_BRIDGE_COMMAND_TIMEOUT: Seconds before a channel call is abandoned
- TASKMASTER_BRIDGE_VERSION_TIMEOUT: Seconds before a version probe is abandoned
- TASKMASTER_BRIDGE_VERSION_CHECK_INTERVAL: Seconds a version check stays cached
- TASKMASTER_BRIDGE_MINOR_TOLERANCE: Allowed minor-version drift between channels
- TASKMASTER_BRIDGE_PREFER_CLI_ON_MISMATCH: Skip MCP when versions disagree (true/false)
- TASKMASTER_BRIDGE_DEBOUNCE_MS: Refresh debounce window in milliseconds
- TASKMASTER_BRIDGE_CONFIG_FILE: Path to TOML config file
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from taskmaster_bridge.core.channels.base import COMMAND_TIMEOUT, VERSION_TIMEOUT
from taskmaster_bridge.core.channels.cli import DEFAULT_BINARY, DEFAULT_NPX_PACKAGE
from taskmaster_bridge.core.channels.mcp import DEFAULT_SERVER_ARGS, DEFAULT_SERVER_COMMAND
from taskmaster_bridge.core.logging_config import configure_logging
from taskmaster_bridge.core.refresh import DEFAULT_DEBOUNCE_MS
from taskmaster_bridge.core.versions import DEFAULT_CHECK_INTERVAL, DEFAULT_MINOR_TOLERANCE

logger = logging.getLogger(__name__)

DEFAULT_TASKMASTER_DIR = ".taskmaster"
ENV_PREFIX = "TASKMASTER_BRIDGE_"


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _parse_args(value: Any) -> List[str]:
    # Accept either a TOML array or a whitespace-separated string
    if isinstance(value, str):
        return value.split()
    return [str(item) for item in value]


@dataclass
class ChannelSettings:
    """How the MCP and CLI channels are launched.

    Attributes:
        disable_mcp: Never attempt the MCP channel
        mcp_command: Executable that starts the MCP server
        mcp_args: Arguments passed to ``mcp_command``
        cli_binary: Task Master CLI executable
        npx_package: Package run through ``npx`` when ``cli_binary`` is missing
        command_timeout: Hard timeout for commands, in seconds
        version_timeout: Hard timeout for version probes, in seconds
    """

    disable_mcp: bool = False
    mcp_command: str = DEFAULT_SERVER_COMMAND
    mcp_args: List[str] = field(default_factory=lambda: list(DEFAULT_SERVER_ARGS))
    cli_binary: str = DEFAULT_BINARY
    npx_package: Optional[str] = DEFAULT_NPX_PACKAGE
    command_timeout: float = COMMAND_TIMEOUT
    version_timeout: float = VERSION_TIMEOUT

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ChannelSettings":
        settings = cls()
        if "disable_mcp" in data:
            settings.disable_mcp = _parse_bool(data["disable_mcp"])
        if "mcp_command" in data:
            settings.mcp_command = str(data["mcp_command"])
        if "mcp_args" in data:
            settings.mcp_args = _parse_args(data["mcp_args"])
        if "cli_binary" in data:
            settings.cli_binary = str(data["cli_binary"])
        if "npx_package" in data:
            settings.npx_package = str(data["npx_package"]) or None
        if "command_timeout" in data:
            settings.command_timeout = float(data["command_timeout"])
        if "version_timeout" in data:
            settings.version_timeout = float(data["version_timeout"])
        return settings


@dataclass
class VersionSettings:
    """Version compatibility policy between the two channels."""

    check_interval: float = DEFAULT_CHECK_INTERVAL
    minor_tolerance: int = DEFAULT_MINOR_TOLERANCE
    prefer_cli_on_mismatch: bool = True

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "VersionSettings":
        return cls(
            check_interval=float(data.get("check_interval", DEFAULT_CHECK_INTERVAL)),
            minor_tolerance=int(data.get("minor_tolerance", DEFAULT_MINOR_TOLERANCE)),
            prefer_cli_on_mismatch=_parse_bool(data.get("prefer_cli_on_mismatch", True)),
        )


@dataclass
class RefreshSettings:
    debounce_ms: int = DEFAULT_DEBOUNCE_MS

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RefreshSettings":
        return cls(debounce_ms=int(data.get("debounce_ms", DEFAULT_DEBOUNCE_MS)))


@dataclass
class BridgeConfig:
    """Bridge configuration with support for env vars and TOML overrides."""

    # Project layout
    project_root: Optional[Path] = None
    taskmaster_dir: str = DEFAULT_TASKMASTER_DIR

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = True

    channels: ChannelSettings = field(default_factory=ChannelSettings)
    versions: VersionSettings = field(default_factory=VersionSettings)
    refresh: RefreshSettings = field(default_factory=RefreshSettings)

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "BridgeConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            for default_path in ["taskmaster-bridge.toml", ".taskmaster-bridge.toml"]:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        config._load_env()
        return config

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning("Config file not found: %s", path)
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "project_root" in data:
                self.project_root = Path(data["project_root"])
            if "taskmaster_dir" in data:
                self.taskmaster_dir = str(data["taskmaster_dir"])
            if "log_level" in data:
                self.log_level = str(data["log_level"]).upper()
            if "structured_logging" in data:
                self.structured_logging = _parse_bool(data["structured_logging"])

            if "channels" in data:
                self.channels = ChannelSettings.from_toml_dict(data["channels"])
            if "versions" in data:
                self.versions = VersionSettings.from_toml_dict(data["versions"])
            if "refresh" in data:
                self.refresh = RefreshSettings.from_toml_dict(data["refresh"])

        except Exception as e:
            logger.error("Error loading config file %s: %s", path, e)

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        env = os.environ

        if root := env.get(f"{ENV_PREFIX}PROJECT_ROOT"):
            self.project_root = Path(root)
        if tm_dir := env.get(f"{ENV_PREFIX}TASKMASTER_DIR"):
            self.taskmaster_dir = tm_dir
        if level := env.get(f"{ENV_PREFIX}LOG_LEVEL"):
            self.log_level = level.upper()
        if structured := env.get(f"{ENV_PREFIX}STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)

        # Channel settings
        if disable := env.get(f"{ENV_PREFIX}DISABLE_MCP"):
            self.channels.disable_mcp = _parse_bool(disable)
        if command := env.get(f"{ENV_PREFIX}MCP_COMMAND"):
            self.channels.mcp_command = command
        if args := env.get(f"{ENV_PREFIX}MCP_ARGS"):
            self.channels.mcp_args = _parse_args(args)
        if binary := env.get(f"{ENV_PREFIX}CLI_BINARY"):
            self.channels.cli_binary = binary
        if package := env.get(f"{ENV_PREFIX}NPX_PACKAGE"):
            self.channels.npx_package = package
        if timeout := env.get(f"{ENV_PREFIX}COMMAND_TIMEOUT"):
            try:
                self.channels.command_timeout = float(timeout)
            except ValueError:
                logger.warning("Ignoring invalid %sCOMMAND_TIMEOUT: %s", ENV_PREFIX, timeout)
        if timeout := env.get(f"{ENV_PREFIX}VERSION_TIMEOUT"):
            try:
                self.channels.version_timeout = float(timeout)
            except ValueError:
                logger.warning("Ignoring invalid %sVERSION_TIMEOUT: %s", ENV_PREFIX, timeout)

        # Version policy
        if interval := env.get(f"{ENV_PREFIX}VERSION_CHECK_INTERVAL"):
            try:
                self.versions.check_interval = float(interval)
            except ValueError:
                logger.warning("Ignoring invalid %sVERSION_CHECK_INTERVAL: %s", ENV_PREFIX, interval)
        if tolerance := env.get(f"{ENV_PREFIX}MINOR_TOLERANCE"):
            try:
                self.versions.minor_tolerance = int(tolerance)
            except ValueError:
                logger.warning("Ignoring invalid %sMINOR_TOLERANCE: %s", ENV_PREFIX, tolerance)
        if prefer := env.get(f"{ENV_PREFIX}PREFER_CLI_ON_MISMATCH"):
            self.versions.prefer_cli_on_mismatch = _parse_bool(prefer)

        # Refresh
        if debounce := env.get(f"{ENV_PREFIX}DEBOUNCE_MS"):
            try:
                self.refresh.debounce_ms = int(debounce)
            except ValueError:
                logger.warning("Ignoring invalid %sDEBOUNCE_MS: %s", ENV_PREFIX, debounce)

    def resolve_project_root(self) -> Path:
        """Configured project root, or the current directory."""
        return (self.project_root or Path.cwd()).resolve()

    @property
    def taskmaster_path(self) -> Path:
        return self.resolve_project_root() / self.taskmaster_dir

    @property
    def tasks_path(self) -> Path:
        return self.taskmaster_path / "tasks" / "tasks.json"

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        configure_logging(
            level=getattr(logging, self.log_level, logging.INFO),
            format="structured" if self.structured_logging else "human",
        )


# Global configuration instance
_config: Optional[BridgeConfig] = None


def get_config() -> BridgeConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = BridgeConfig.from_env()
    return _config


def set_config(config: Optional[BridgeConfig]) -> None:
    """Set (or with None, reset) the global configuration instance."""
    global _config
    _config = config
