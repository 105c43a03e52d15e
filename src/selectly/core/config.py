"""Shared configuration classes for selectly.

This module defines configuration classes used by both client and server components.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from selectly.core.types import SyncResource

DEFAULT_SYNC_INTERVAL = 60.0  # seconds


@dataclass
class ServerConfig:
    """Configuration for connecting to a selectly backend.

    Attributes:
        server_url: Base URL of the server (e.g., "https://api.example.com").
        token: Bearer token for the signed-in user (empty when signed out).
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str = ""
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def api_url(self) -> str:
        """Get the base URL of the REST API."""
        return f"{self.server_url}/api"

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")


@dataclass
class SyncSettings:
    """Client-side sync settings.

    Attributes:
        data_dir: Directory holding the local SQLite databases.
        interval_seconds: Delay between periodic sync cycles.
        domains: Resources that take part in sync.
    """

    data_dir: Path
    interval_seconds: float = DEFAULT_SYNC_INTERVAL
    domains: frozenset[SyncResource] = field(
        default_factory=lambda: frozenset(SyncResource)
    )

    def __post_init__(self) -> None:
        """Validate settings."""
        self.data_dir = Path(self.data_dir)
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

    @property
    def items_db_path(self) -> Path:
        """SQLite file for collected items, dictionary entries and highlights."""
        return self.data_dir / "items.db"

    @property
    def queue_db_path(self) -> Path:
        """SQLite file for the mutation queues."""
        return self.data_dir / "queue.db"

    @property
    def state_db_path(self) -> Path:
        """SQLite file for persisted sync progress."""
        return self.data_dir / "state.db"

    def is_enabled(self, resource: SyncResource) -> bool:
        """Check if a resource takes part in sync."""
        return resource in self.domains
