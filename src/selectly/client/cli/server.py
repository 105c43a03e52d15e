"""Server administration commands for the Selectly CLI.

Commands:
- server serve: Run the sync server
- server create-user: Create an account and issue a token
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click

DB_PATH_HELP = "Path to database file (default: SELECTLY_DB_PATH or ./selectly.db)."


def _resolve_db_path(db_path: str | None) -> Path:
    return Path(db_path or os.environ.get("SELECTLY_DB_PATH", "selectly.db"))


@click.group()
def server() -> None:
    """Server management commands.

    These commands are for server administrators to run the Selectly sync server.
    """


@server.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", "-p", type=int, default=8472, show_default=True, help="Bind port.")
@click.option("--db-path", type=click.Path(), default=None, help=DB_PATH_HELP)
@click.option(
    "--log-path",
    type=click.Path(),
    default=None,
    help="Also write logs to this file (default: SELECTLY_LOG_PATH).",
)
def serve_cmd(host: str, port: int, db_path: str | None, log_path: str | None) -> None:
    """Run the sync server with uvicorn."""
    import uvicorn

    # Read by selectly.server.app at import time
    os.environ["SELECTLY_DB_PATH"] = str(_resolve_db_path(db_path))
    if log_path:
        os.environ["SELECTLY_LOG_PATH"] = log_path

    uvicorn.run("selectly.server.app:app_factory", factory=True, host=host, port=port)


@server.command("create-user")
@click.option("--name", "-n", required=True, help="Display name.")
@click.option("--user-id", default=None, help="Explicit user id (default: random UUID).")
@click.option(
    "--inactive",
    is_flag=True,
    help="Create the account without a cloud sync subscription.",
)
@click.option(
    "--period-end",
    type=int,
    default=None,
    help="End of the subscription period (epoch milliseconds).",
)
@click.option("--db-path", type=click.Path(), default=None, help=DB_PATH_HELP)
def create_user_cmd(
    name: str,
    user_id: str | None,
    inactive: bool,
    period_end: int | None,
    db_path: str | None,
) -> None:
    """Create an account and print its bearer token.

    Examples:

        # Create a subscribed user
        selectly server create-user --name alice

        # Create a user with an explicit id and no subscription
        selectly server create-user --name bob --user-id bob --inactive
    """
    from sqlalchemy.exc import IntegrityError

    from selectly.server.database import Database

    db = Database(_resolve_db_path(db_path))
    try:
        try:
            user = db.create_user(
                name=name,
                user_id=user_id,
                subscription_active=not inactive,
                period_end=period_end,
            )
        except IntegrityError:
            click.echo(f"Error: User already exists: {user_id}", err=True)
            sys.exit(1)
        raw_token, _ = db.create_token(user.id)
    finally:
        db.close()

    click.echo(f"User:  {user.id}")
    click.echo(f"Token: {raw_token}")
    click.echo("Store the token now, it cannot be shown again.")
