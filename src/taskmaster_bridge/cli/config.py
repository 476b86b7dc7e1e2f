"""CLI configuration and client construction.

Provides configuration handling for the taskmaster-bridge CLI on top of the
shared ``taskmaster_bridge.config`` module.
"""

from dataclasses import replace
from pathlib import Path
from typing import Optional

from taskmaster_bridge.config import BridgeConfig, get_config
from taskmaster_bridge.core.client import TaskMasterClient, create_client


class CLIContext:
    """CLI execution context with resolved configuration.

    Holds the effective configuration for a CLI command, including any
    overrides from command-line options, and the client built from it.
    """

    def __init__(
        self,
        project_root: Optional[str] = None,
        config: Optional[BridgeConfig] = None,
        client: Optional[TaskMasterClient] = None,
    ):
        """Initialize CLI context.

        Args:
            project_root: Explicit project root override from --project-root.
            config: Optional bridge config (uses global if not provided).
            client: Prebuilt client; created lazily from the config otherwise.
        """
        config = config or get_config()
        if project_root:
            config = replace(config, project_root=Path(project_root))
        self._config = config
        self._client = client

    @property
    def config(self) -> BridgeConfig:
        return self._config

    @property
    def project_root(self) -> Path:
        if self._client is not None:
            return self._client.project_root
        return self._config.resolve_project_root()

    @property
    def client(self) -> TaskMasterClient:
        """The client, created on first use."""
        if self._client is None:
            self._client = create_client(self._config)
        return self._client


def create_context(
    project_root: Optional[str] = None,
    config_file: Optional[str] = None,
) -> CLIContext:
    """Create a CLI context with optional overrides.

    Args:
        project_root: Optional project root override.
        config_file: Optional TOML file replacing the default lookup.
    """
    config = BridgeConfig.from_env(config_file) if config_file else None
    return CLIContext(project_root=project_root, config=config)
