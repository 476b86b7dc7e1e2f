"""CLI module entry point.

Enables running the CLI via: python -m taskmaster_bridge.cli
"""

from taskmaster_bridge.cli.main import cli

if __name__ == "__main__":
    cli()
