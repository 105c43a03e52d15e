"""Tests for core configuration classes."""

from __future__ import annotations

from pathlib import Path

import pytest

from selectly.core.config import DEFAULT_SYNC_INTERVAL, ServerConfig, SyncSettings
from selectly.core.types import SyncOperation, SyncResource, now_ms


class TestServerConfig:
    """Tests for ServerConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with required fields."""
        config = ServerConfig(server_url="https://example.com", token="test-token")
        assert config.server_url == "https://example.com"
        assert config.token == "test-token"
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_token_defaults_to_empty(self) -> None:
        """A signed-out config has no token."""
        config = ServerConfig(server_url="https://example.com")
        assert config.token == ""

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slash from server URL."""
        config = ServerConfig(server_url="https://example.com/", token="test-token")
        assert config.server_url == "https://example.com"

    def test_api_url(self) -> None:
        """API URL should be the server URL plus /api."""
        config = ServerConfig(server_url="http://localhost:8472/")
        assert config.api_url == "http://localhost:8472/api"

    def test_is_secure(self) -> None:
        """Only https URLs are secure."""
        assert ServerConfig(server_url="https://example.com").is_secure
        assert not ServerConfig(server_url="http://example.com").is_secure


class TestSyncSettings:
    """Tests for SyncSettings class."""

    def test_defaults(self, tmp_path: Path) -> None:
        """Every domain is enabled at the default interval."""
        settings = SyncSettings(data_dir=tmp_path)
        assert settings.interval_seconds == DEFAULT_SYNC_INTERVAL == 60.0
        for resource in SyncResource:
            assert settings.is_enabled(resource)

    def test_paths_inside_data_dir(self, tmp_path: Path) -> None:
        """Database files live in the data directory."""
        settings = SyncSettings(data_dir=str(tmp_path))  # type: ignore[arg-type]
        assert settings.data_dir == tmp_path
        assert settings.items_db_path == tmp_path / "items.db"
        assert settings.queue_db_path == tmp_path / "queue.db"
        assert settings.state_db_path == tmp_path / "state.db"

    def test_restricted_domains(self, tmp_path: Path) -> None:
        """Only listed domains are enabled."""
        settings = SyncSettings(data_dir=tmp_path, domains=frozenset({SyncResource.COLLECT}))
        assert settings.is_enabled(SyncResource.COLLECT)
        assert not settings.is_enabled(SyncResource.HIGHLIGHTS)

    @pytest.mark.parametrize("interval", [0, -1.0])
    def test_rejects_non_positive_interval(self, tmp_path: Path, interval: float) -> None:
        """Interval must be positive."""
        with pytest.raises(ValueError):
            SyncSettings(data_dir=tmp_path, interval_seconds=interval)


class TestCoreTypes:
    """Tests for shared enums and helpers."""

    def test_operation_values(self) -> None:
        """Operations serialize as lowercase names."""
        assert [op.value for op in SyncOperation] == ["create", "update", "delete"]
        assert SyncOperation("delete") is SyncOperation.DELETE

    def test_now_ms_is_milliseconds(self) -> None:
        """now_ms returns epoch milliseconds."""
        # 2020-01-01 in milliseconds
        assert now_ms() > 1_577_836_800_000
