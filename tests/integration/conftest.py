"""Pytest fixtures for integration tests.

This module provides fixtures for end-to-end testing with a real server
running in a background thread and clients talking to it over HTTP.
"""

from __future__ import annotations

import socket
import threading
import time
from collections.abc import AsyncIterator, Callable, Generator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import pytest
import uvicorn

from selectly.client.services import Services, build_services
from selectly.core.config import ServerConfig, SyncSettings
from selectly.server.app import create_app
from selectly.server.database import Database

DeviceFactory = Callable[..., AbstractAsyncContextManager[Services]]


@dataclass
class TestServer:
    """Container for test server resources."""

    db: Database
    url: str

    def create_account(self, user_id: str, subscribed: bool = True) -> str:
        """Create a user and return a bearer token for it."""
        if self.db.get_user(user_id) is None:
            self.db.create_user(user_id, user_id=user_id, subscription_active=subscribed)
        raw_token, _ = self.db.create_token(user_id)
        return raw_token


class UvicornTestServer:
    """Uvicorn server running in a background thread for testing."""

    def __init__(self, app: Any, host: str = "127.0.0.1") -> None:
        self.app = app
        self.host = host
        self.port = 0
        self.server: uvicorn.Server | None = None
        self.thread: threading.Thread | None = None

    def start(self) -> int:
        """Start the server and return the port."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((self.host, 0))
            self.port = s.getsockname()[1]

        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="warning")
        self.server = uvicorn.Server(config)

        self.thread = threading.Thread(target=self.server.run, daemon=True)
        self.thread.start()

        self._wait_for_ready()
        return self.port

    def _wait_for_ready(self, timeout: float = 5.0) -> None:
        """Wait for the server to be ready to accept connections."""
        start = time.time()
        while time.time() - start < timeout:
            try:
                response = httpx.get(f"http://{self.host}:{self.port}/health")
                if response.status_code == 200:
                    return
            except httpx.HTTPError:
                pass
            time.sleep(0.1)
        raise RuntimeError("Server failed to start in time")

    def stop(self) -> None:
        """Stop the server and wait for the thread to exit."""
        if self.server:
            self.server.should_exit = True
        if self.thread:
            self.thread.join(timeout=5.0)


@pytest.fixture
def test_server(tmp_path: Path) -> Generator[TestServer, None, None]:
    """Create and start a test server with its own database."""
    db = Database(tmp_path / "server" / "test.db")
    server = UvicornTestServer(create_app(db))
    port = server.start()

    yield TestServer(db=db, url=f"http://127.0.0.1:{port}")

    server.stop()
    db.close()


@pytest.fixture
def device_factory(tmp_path: Path, test_server: TestServer) -> DeviceFactory:
    """Factory of client devices, each with its own data directory.

    Usage:
        async with device_factory("laptop", token) as laptop:
            ...
    """

    @asynccontextmanager
    async def _open(
        name: str,
        token: str = "",
        user_id: str | None = None,
        server_url: str | None = None,
        interval: float = 60.0,
    ) -> AsyncIterator[Services]:
        services = build_services(
            ServerConfig(server_url=server_url or test_server.url, token=token, timeout=5.0),
            SyncSettings(data_dir=tmp_path / "clients" / name, interval_seconds=interval),
            user_id=user_id,
        )
        await services.initialize()
        try:
            yield services
        finally:
            await services.close()

    return _open
