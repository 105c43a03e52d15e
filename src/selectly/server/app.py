"""FastAPI application for the Selectly sync server.

This module creates and configures the FastAPI application with:
- Batch upload and incremental fetch for collect, dictionary and highlights
- Highlight aggregates across users
- Subscription status and health check

Usage:
    uvicorn selectly.server.app:app_factory --factory --host 0.0.0.0 --port 8472
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from selectly.server.api.router import router as api_router
from selectly.server.database import Database

# Configuration from environment variables with defaults
DB_PATH = Path(os.environ.get("SELECTLY_DB_PATH", "selectly.db"))
LOG_PATH = os.environ.get("SELECTLY_LOG_PATH")

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path | None = None) -> None:
    """Configure logging to output to stdout and optionally a file.

    Args:
        log_path: Path to the log file (None logs to stdout only).
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for selectly
    root_logger = logging.getLogger("selectly")
    root_logger.setLevel(logging.INFO)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_path is None:
        return

    # File handler
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(uvicorn_name).addHandler(file_handler)


def create_app(db: Database) -> FastAPI:
    """Create FastAPI application with a custom database.

    This is primarily used for testing with isolated databases.

    Args:
        db: Database instance.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        logger.info("=" * 60)
        logger.info("Selectly Sync Server Starting")
        logger.info("=" * 60)
        logger.info("  Database: %s", db.path)
        logger.info("  Logs:     %s", Path(LOG_PATH).absolute() if LOG_PATH else "stdout")
        logger.info("=" * 60)

        yield

        logger.info("Selectly Sync Server shutting down")

    application = FastAPI(
        title="Selectly Sync Server",
        description="Offline-first sync backend for collected items, dictionary and highlights",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.state.db = db
    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    setup_logging(Path(LOG_PATH) if LOG_PATH else None)
    return create_app(db=Database(DB_PATH))
