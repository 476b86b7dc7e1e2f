"""taskmaster-bridge - channel-aware task resolution for Task Master projects."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("taskmaster-bridge")
except PackageNotFoundError:
    # Package not installed (development mode without editable install)
    __version__ = "0.4.0"

from taskmaster_bridge.core.client import TaskMasterClient, create_client

__all__ = ["__version__", "TaskMasterClient", "create_client"]
