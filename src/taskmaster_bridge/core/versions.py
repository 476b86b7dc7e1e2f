"""Version compatibility between the CLI and the MCP server.

The two channels ship independently, so only a major-version split (or a
very large minor drift) is treated as a reason to distrust the protocol
channel. Unknown versions never block anything.

Usage:
    gate = VersionGate(cli_probe=cli.get_version, mcp_probe=mcp.get_version)
    result = gate.check()
    if not result.compatible:
        ...
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from taskmaster_bridge.core.errors import BridgeError, CommandTimeoutError

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_CHECK_INTERVAL",
    "DEFAULT_MINOR_TOLERANCE",
    "VersionCheck",
    "VersionGate",
    "compare_versions",
    "parse_version",
]

DEFAULT_CHECK_INTERVAL = 300.0
DEFAULT_MINOR_TOLERANCE = 20

# Warning severities
ADVISORY = "advisory"
ACTIONABLE = "actionable"
BLOCKING = "blocking"

_VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)\.(\d+)")

VersionProbe = Callable[[], Optional[str]]


def parse_version(raw: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """Extract ``(major, minor, patch)`` from a version string, if present."""
    if not raw:
        return None
    match = _VERSION_PATTERN.search(raw)
    if not match:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch)


@dataclass(frozen=True)
class VersionCheck:
    """Outcome of comparing the two channel versions."""

    compatible: bool
    cli_version: Optional[str] = None
    mcp_version: Optional[str] = None
    warning: Optional[str] = None
    severity: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "compatible": self.compatible,
            "cliVersion": self.cli_version,
            "mcpVersion": self.mcp_version,
        }
        if self.warning:
            result["warning"] = self.warning
            result["severity"] = self.severity
        return result


def compare_versions(
    cli_version: Optional[str],
    mcp_version: Optional[str],
    *,
    minor_tolerance: int = DEFAULT_MINOR_TOLERANCE,
) -> VersionCheck:
    """Apply the compatibility policy to two (possibly unknown) versions."""
    cli = parse_version(cli_version)
    mcp = parse_version(mcp_version)

    if cli is None and mcp is None:
        return VersionCheck(
            True,
            cli_version,
            mcp_version,
            "Unable to determine version compatibility - both CLI and MCP unavailable",
            ADVISORY,
        )
    if cli is None:
        return VersionCheck(
            True, cli_version, mcp_version, "CLI not available, using MCP only", ADVISORY
        )
    if mcp is None:
        return VersionCheck(
            True, cli_version, mcp_version, "MCP not available, using CLI only", ADVISORY
        )

    if cli[0] != mcp[0]:
        return VersionCheck(
            False,
            cli_version,
            mcp_version,
            f"Major version mismatch: CLI v{cli_version} vs MCP v{mcp_version}. "
            "This may cause data inconsistencies.",
            BLOCKING,
        )
    if abs(cli[1] - mcp[1]) > minor_tolerance:
        return VersionCheck(
            False,
            cli_version,
            mcp_version,
            f"Significant version difference: CLI v{cli_version} vs MCP v{mcp_version}. "
            "Consider updating both to the same version.",
            ACTIONABLE,
        )
    return VersionCheck(True, cli_version, mcp_version)


class VersionGate:
    """Memoized version comparison.

    Probes run lazily: the first ``check()`` after the TTL expires re-probes
    both channels, nothing runs in the background.
    """

    def __init__(
        self,
        *,
        cli_probe: VersionProbe,
        mcp_probe: VersionProbe,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        minor_tolerance: int = DEFAULT_MINOR_TOLERANCE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cli_probe = cli_probe
        self._mcp_probe = mcp_probe
        self.check_interval = check_interval
        self.minor_tolerance = minor_tolerance
        self._clock = clock
        self._cached: Optional[VersionCheck] = None
        self._checked_at = 0.0

    def _probe(self, name: str, probe: VersionProbe) -> Optional[str]:
        try:
            version = probe()
        except CommandTimeoutError:
            raise
        except (BridgeError, OSError) as exc:
            logger.debug("%s version probe failed: %s", name, exc)
            return None
        return version.strip() if isinstance(version, str) and version.strip() else None

    def check(self) -> VersionCheck:
        """Return the cached comparison, re-probing once the TTL has lapsed."""
        now = self._clock()
        if self._cached is not None and now - self._checked_at < self.check_interval:
            return self._cached

        cli_version = self._probe("CLI", self._cli_probe)
        mcp_version = self._probe("MCP", self._mcp_probe)
        self._cached = compare_versions(
            cli_version, mcp_version, minor_tolerance=self.minor_tolerance
        )
        self._checked_at = now
        logger.debug(
            "Version check: compatible=%s cli=%s mcp=%s",
            self._cached.compatible,
            cli_version or "unavailable",
            mcp_version or "unavailable",
        )
        return self._cached

    def invalidate(self) -> None:
        """Drop the cached result so the next ``check()`` probes again."""
        self._cached = None
