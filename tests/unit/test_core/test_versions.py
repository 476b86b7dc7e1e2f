"""
Tests for CLI/MCP version compatibility.

Tests cover:
- Version string parsing
- Compatibility rules (unknown, major split, minor drift)
- Cached checks with a TTL and explicit invalidation
- Probe failures treated as unknown versions
"""

import pytest

from taskmaster_bridge.core.errors import ChannelError, CommandTimeoutError
from taskmaster_bridge.core.versions import (
    ACTIONABLE,
    ADVISORY,
    BLOCKING,
    VersionGate,
    compare_versions,
    parse_version,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingProbe:
    def __init__(self, version):
        self.version = version
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if isinstance(self.version, Exception):
            raise self.version
        return self.version


class TestParseVersion:
    """Tests for parse_version()."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("0.20.0", (0, 20, 0)),
            ("v1.2.3", (1, 2, 3)),
            ("task-master-ai 0.18.4\n", (0, 18, 4)),
        ],
    )
    def test_parses(self, raw, expected):
        assert parse_version(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "unknown", "1.2"])
    def test_unparseable(self, raw):
        assert parse_version(raw) is None


class TestCompareVersions:
    """Tests for compare_versions()."""

    def test_same_major_small_drift_is_compatible(self):
        result = compare_versions("0.20.0", "0.18.3")
        assert result.compatible
        assert result.warning is None

    def test_major_mismatch_blocks(self):
        result = compare_versions("1.0.0", "0.20.0")
        assert not result.compatible
        assert result.severity == BLOCKING
        assert "Major version mismatch" in result.warning

    def test_minor_drift_over_tolerance(self):
        result = compare_versions("0.30.0", "0.5.0")
        assert not result.compatible
        assert result.severity == ACTIONABLE

    def test_minor_drift_at_tolerance_is_fine(self):
        assert compare_versions("0.25.0", "0.5.0").compatible

    def test_custom_tolerance(self):
        assert not compare_versions("0.10.0", "0.5.0", minor_tolerance=2).compatible

    @pytest.mark.parametrize(
        "cli,mcp,fragment",
        [
            (None, None, "both CLI and MCP unavailable"),
            (None, "0.20.0", "CLI not available"),
            ("0.20.0", None, "MCP not available"),
            ("garbage", "0.20.0", "CLI not available"),
        ],
    )
    def test_unknown_versions_are_advisory(self, cli, mcp, fragment):
        result = compare_versions(cli, mcp)
        assert result.compatible
        assert result.severity == ADVISORY
        assert fragment in result.warning

    def test_to_dict(self):
        assert compare_versions("1.0.0", "0.9.0").to_dict() == {
            "compatible": False,
            "cliVersion": "1.0.0",
            "mcpVersion": "0.9.0",
            "warning": "Major version mismatch: CLI v1.0.0 vs MCP v0.9.0. "
            "This may cause data inconsistencies.",
            "severity": BLOCKING,
        }

    def test_to_dict_without_warning(self):
        assert "warning" not in compare_versions("0.20.0", "0.20.1").to_dict()


class TestVersionGate:
    """Tests for VersionGate caching."""

    def test_result_cached_within_interval(self):
        cli, mcp, clock = CountingProbe("0.20.0"), CountingProbe("0.20.0"), FakeClock()
        gate = VersionGate(cli_probe=cli, mcp_probe=mcp, check_interval=300, clock=clock)
        first = gate.check()
        clock.now += 299
        assert gate.check() is first
        assert cli.calls == mcp.calls == 1

    def test_reprobes_after_interval(self):
        cli, mcp, clock = CountingProbe("0.20.0"), CountingProbe("0.20.0"), FakeClock()
        gate = VersionGate(cli_probe=cli, mcp_probe=mcp, check_interval=300, clock=clock)
        gate.check()
        clock.now += 300
        cli.version = "1.0.0"
        result = gate.check()
        assert cli.calls == 2
        assert not result.compatible

    def test_invalidate_forces_probe(self):
        cli, mcp = CountingProbe("0.20.0"), CountingProbe("0.20.0")
        gate = VersionGate(cli_probe=cli, mcp_probe=mcp, clock=FakeClock())
        gate.check()
        gate.invalidate()
        gate.check()
        assert mcp.calls == 2

    def test_failing_probe_is_unknown(self):
        cli = CountingProbe(ChannelError("boom", channel="cli"))
        gate = VersionGate(cli_probe=cli, mcp_probe=CountingProbe("0.20.0"), clock=FakeClock())
        result = gate.check()
        assert result.compatible
        assert result.cli_version is None
        assert result.mcp_version == "0.20.0"

    def test_os_error_from_version_call_is_unknown(self):
        cli = CountingProbe(PermissionError(13, "Permission denied"))
        gate = VersionGate(cli_probe=cli, mcp_probe=CountingProbe("1.0.0"), clock=FakeClock())
        result = gate.check()
        assert result.cli_version is None
        assert result.compatible
        assert cli.calls == 1

    def test_command_timeout_propagates(self):
        cli = CountingProbe(CommandTimeoutError("over budget", timeout_seconds=1.0))
        gate = VersionGate(cli_probe=cli, mcp_probe=CountingProbe("0.20.0"), clock=FakeClock())
        with pytest.raises(CommandTimeoutError):
            gate.check()

    def test_blank_version_is_unknown(self):
        gate = VersionGate(
            cli_probe=CountingProbe("  "), mcp_probe=CountingProbe(None), clock=FakeClock()
        )
        assert gate.check().cli_version is None
