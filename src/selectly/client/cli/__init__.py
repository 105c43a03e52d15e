"""Command-line interface for Selectly.

This module provides the main CLI entry point and assembles all commands.

Commands:
- login: Store server URL and credentials
- logout: Reset sync progress and forget credentials
- sync: Synchronize collected items, dictionary and highlights
- status: Show sync progress
- watch: Sync periodically until interrupted
- server: Server administration commands
"""

from __future__ import annotations

import logging

import click

from selectly.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_data_dir,
    load_config,
    save_config,
)
from selectly.client.cli.server import server
from selectly.client.cli.sync import login, logout, status, sync, watch


def setup_logging(verbose: bool) -> None:
    """Send selectly logs to stderr (DEBUG with --verbose, else WARNING)."""
    selectly_logger = logging.getLogger("selectly")
    if not selectly_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        selectly_logger.addHandler(handler)
    selectly_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(package_name="selectly")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs.")
def cli(verbose: bool) -> None:
    """Selectly - offline-first sync for collected items, dictionary and highlights."""
    setup_logging(verbose)


# Account commands
cli.add_command(login)
cli.add_command(logout)

# Sync commands
cli.add_command(sync)
cli.add_command(status)
cli.add_command(watch)

# Server admin commands
cli.add_command(server)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_data_dir",
    "load_config",
    "save_config",
]
