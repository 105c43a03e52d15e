"""Configuration utilities for the Selectly CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from selectly.core.config import DEFAULT_SYNC_INTERVAL, ServerConfig, SyncSettings
from selectly.core.types import SyncResource


def get_config_dir() -> Path:
    """Get the configuration directory for Selectly.

    Returns:
        Path to ~/.selectly or equivalent.
    """
    return Path.home() / ".selectly"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_data_dir() -> Path:
    """Get the directory holding the local databases.

    Returns:
        Path to the data directory (configured or default <config dir>/data).
    """
    config = load_config()
    if config.get("data_dir"):
        return Path(config["data_dir"]).expanduser().resolve()
    return get_config_dir() / "data"


def get_server_config(config: dict[str, Any] | None = None) -> ServerConfig | None:
    """Build the server connection settings from the config file.

    Returns:
        ServerConfig, or None if not logged in.
    """
    config = load_config() if config is None else config
    if not config.get("server_url") or not config.get("auth_token"):
        return None
    return ServerConfig(server_url=config["server_url"], token=config["auth_token"])


def get_sync_settings(
    config: dict[str, Any] | None = None,
    domains: list[str] | None = None,
) -> SyncSettings:
    """Build the sync settings from the config file.

    Args:
        config: Loaded config (default: read the config file).
        domains: Restrict sync to these resources.
    """
    config = load_config() if config is None else config
    selected = domains or config.get("domains") or [r.value for r in SyncResource]
    return SyncSettings(
        data_dir=get_data_dir(),
        interval_seconds=float(config.get("interval_seconds", DEFAULT_SYNC_INTERVAL)),
        domains=frozenset(SyncResource(d) for d in selected),
    )
