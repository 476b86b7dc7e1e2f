"""
Tests for configuration loading.

Tests cover:
- Defaults
- TOML file sections ([channels], [versions], [refresh])
- Environment variable overrides and their precedence over TOML
- Invalid numeric values being ignored
- The global get_config/set_config pair
"""

import os

import pytest

from taskmaster_bridge.config import (
    ENV_PREFIX,
    BridgeConfig,
    get_config,
    set_config,
)
from taskmaster_bridge.core.channels.cli import DEFAULT_BINARY
from taskmaster_bridge.core.channels.mcp import DEFAULT_SERVER_ARGS, DEFAULT_SERVER_COMMAND
from taskmaster_bridge.core.refresh import DEFAULT_DEBOUNCE_MS


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate each test from the caller's environment and working directory."""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    yield
    set_config(None)


def _write_toml(path, text):
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self, tmp_path):
        config = BridgeConfig.from_env()
        assert config.project_root is None
        assert config.taskmaster_dir == ".taskmaster"
        assert config.channels.cli_binary == DEFAULT_BINARY
        assert config.channels.mcp_command == DEFAULT_SERVER_COMMAND
        assert config.channels.mcp_args == list(DEFAULT_SERVER_ARGS)
        assert config.channels.disable_mcp is False
        assert config.versions.prefer_cli_on_mismatch is True
        assert config.refresh.debounce_ms == DEFAULT_DEBOUNCE_MS

    def test_paths(self, tmp_path):
        config = BridgeConfig(project_root=tmp_path)
        assert config.resolve_project_root() == tmp_path.resolve()
        assert config.tasks_path == tmp_path.resolve() / ".taskmaster" / "tasks" / "tasks.json"

    def test_project_root_defaults_to_cwd(self, tmp_path):
        assert BridgeConfig().resolve_project_root() == tmp_path.resolve()


class TestTomlLoading:
    """Tests for TOML configuration files."""

    def test_default_file_in_cwd(self, tmp_path):
        _write_toml(
            tmp_path / "taskmaster-bridge.toml",
            """
log_level = "debug"
structured_logging = false

[channels]
disable_mcp = true
cli_binary = "tm"
mcp_args = ["-y", "task-master-ai@0.20.0"]
command_timeout = 12

[versions]
minor_tolerance = 2
prefer_cli_on_mismatch = false

[refresh]
debounce_ms = 250
""",
        )
        config = BridgeConfig.from_env()
        assert config.log_level == "DEBUG"
        assert config.structured_logging is False
        assert config.channels.disable_mcp is True
        assert config.channels.cli_binary == "tm"
        assert config.channels.mcp_args == ["-y", "task-master-ai@0.20.0"]
        assert config.channels.command_timeout == 12.0
        assert config.versions.minor_tolerance == 2
        assert config.versions.prefer_cli_on_mismatch is False
        assert config.refresh.debounce_ms == 250

    def test_hidden_default_file(self, tmp_path):
        _write_toml(tmp_path / ".taskmaster-bridge.toml", 'taskmaster_dir = ".tm"\n')
        assert BridgeConfig.from_env().taskmaster_dir == ".tm"

    def test_explicit_file(self, tmp_path):
        path = _write_toml(tmp_path / "custom.toml", 'project_root = "/srv/project"\n')
        assert str(BridgeConfig.from_env(str(path)).project_root) == "/srv/project"

    def test_config_file_env_var(self, tmp_path, monkeypatch):
        path = _write_toml(tmp_path / "other.toml", "[channels]\nnpx_package = \"\"\n")
        monkeypatch.setenv(f"{ENV_PREFIX}CONFIG_FILE", str(path))
        assert BridgeConfig.from_env().channels.npx_package is None

    def test_missing_file_warns(self, tmp_path, caplog):
        config = BridgeConfig.from_env(str(tmp_path / "absent.toml"))
        assert config.taskmaster_dir == ".taskmaster"
        assert "Config file not found" in caplog.text

    def test_invalid_toml_logged(self, tmp_path, caplog):
        path = _write_toml(tmp_path / "broken.toml", "[channels\n")
        config = BridgeConfig.from_env(str(path))
        assert config.channels.cli_binary == DEFAULT_BINARY
        assert "Error loading config file" in caplog.text


class TestEnvOverrides:
    """Tests for TASKMASTER_BRIDGE_* environment variables."""

    def test_env_values(self, monkeypatch, tmp_path):
        monkeypatch.setenv(f"{ENV_PREFIX}PROJECT_ROOT", str(tmp_path))
        monkeypatch.setenv(f"{ENV_PREFIX}LOG_LEVEL", "warning")
        monkeypatch.setenv(f"{ENV_PREFIX}DISABLE_MCP", "yes")
        monkeypatch.setenv(f"{ENV_PREFIX}MCP_ARGS", "-y task-master-ai")
        monkeypatch.setenv(f"{ENV_PREFIX}VERSION_TIMEOUT", "2.5")
        monkeypatch.setenv(f"{ENV_PREFIX}MINOR_TOLERANCE", "3")
        monkeypatch.setenv(f"{ENV_PREFIX}PREFER_CLI_ON_MISMATCH", "false")
        monkeypatch.setenv(f"{ENV_PREFIX}DEBOUNCE_MS", "10")

        config = BridgeConfig.from_env()
        assert config.project_root == tmp_path
        assert config.log_level == "WARNING"
        assert config.channels.disable_mcp is True
        assert config.channels.mcp_args == ["-y", "task-master-ai"]
        assert config.channels.version_timeout == 2.5
        assert config.versions.minor_tolerance == 3
        assert config.versions.prefer_cli_on_mismatch is False
        assert config.refresh.debounce_ms == 10

    def test_env_beats_toml(self, monkeypatch, tmp_path):
        _write_toml(tmp_path / "taskmaster-bridge.toml", '[channels]\ncli_binary = "from-toml"\n')
        monkeypatch.setenv(f"{ENV_PREFIX}CLI_BINARY", "from-env")
        assert BridgeConfig.from_env().channels.cli_binary == "from-env"

    @pytest.mark.parametrize(
        "name",
        ["COMMAND_TIMEOUT", "VERSION_TIMEOUT", "VERSION_CHECK_INTERVAL", "MINOR_TOLERANCE", "DEBOUNCE_MS"],
    )
    def test_invalid_numbers_ignored(self, monkeypatch, caplog, name):
        monkeypatch.setenv(f"{ENV_PREFIX}{name}", "soon")
        defaults = BridgeConfig()
        config = BridgeConfig.from_env()
        assert config.channels == defaults.channels
        assert config.versions == defaults.versions
        assert config.refresh == defaults.refresh
        assert f"Ignoring invalid {ENV_PREFIX}{name}" in caplog.text


class TestGlobalConfig:
    """Tests for get_config() and set_config()."""

    def test_get_config_cached(self):
        assert get_config() is get_config()

    def test_set_config(self):
        config = BridgeConfig(taskmaster_dir=".custom")
        set_config(config)
        assert get_config() is config
        set_config(None)
        assert get_config() is not config
