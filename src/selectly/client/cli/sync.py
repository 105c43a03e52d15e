"""Account and sync commands for the Selectly CLI.

Commands:
- login: Store server URL and credentials
- logout: Reset sync progress and forget credentials
- sync: Run one sync cycle (or a full sync)
- status: Show sync progress of each domain
- watch: Sync periodically until interrupted
"""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime
from typing import TYPE_CHECKING

import click

from selectly.client.cli.config import (
    get_server_config,
    get_sync_settings,
    load_config,
    save_config,
)
from selectly.client.services import Services, build_services
from selectly.core.types import SyncResource

if TYPE_CHECKING:
    from selectly.client.sync import SyncReport

DOMAIN_CHOICE = click.Choice([r.value for r in SyncResource])


def _open_services(
    domains: list[str] | None = None,
    interval: float | None = None,
) -> Services:
    """Build services from the config file, exiting if not logged in."""
    config = load_config()
    if interval is not None:
        config["interval_seconds"] = interval
    server_config = get_server_config(config)
    if server_config is None:
        click.echo("Error: Not logged in. Run 'selectly login' first.", err=True)
        sys.exit(1)
    return build_services(
        server_config,
        get_sync_settings(config, domains),
        user_id=config.get("user_id"),
    )


def _format_time(ms: int) -> str:
    if not ms:
        return "never"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _format_report(report: SyncReport) -> str:
    parts = [f"{report.uploaded} uploaded", f"{report.downloaded} downloaded"]
    if report.requeued:
        parts.append(f"{report.requeued} requeued")
    if report.failed:
        parts.append(f"{report.failed} rejected")
    return ", ".join(parts)


@click.command()
@click.option("--server", "server_url", required=True, help="Server URL.")
@click.option("--token", required=True, help="Bearer token issued by the server.")
@click.option("--user-id", required=True, help="Id of the account owning the token.")
def login(server_url: str, token: str, user_id: str) -> None:
    """Store server URL and credentials."""
    config = load_config()
    if config.get("user_id") and config.get("user_id") != user_id:
        click.echo(
            "Error: Another account is logged in. Run 'selectly logout' first.", err=True
        )
        sys.exit(1)

    config.update(
        {
            "server_url": server_url.rstrip("/"),
            "auth_token": token,
            "user_id": user_id,
        }
    )
    save_config(config)
    click.echo(f"Logged in to {server_url} as {user_id}")


@click.command()
def logout() -> None:
    """Reset sync progress and forget credentials.

    Queued changes are discarded so nothing leaks into the next account.
    """
    config = load_config()
    server_config = get_server_config(config)
    if server_config is None:
        click.echo("Not logged in.")
        return

    services = build_services(
        server_config, get_sync_settings(config), user_id=config.get("user_id")
    )

    async def _reset() -> None:
        try:
            await services.clear_sync_state()
        finally:
            await services.close()

    asyncio.run(_reset())

    for key in ("auth_token", "user_id"):
        config.pop(key, None)
    save_config(config)
    click.echo("Logged out. Sync state cleared.")


@click.command()
@click.option("--full", is_flag=True, help="Pull everything from the server first.")
@click.option(
    "--domain",
    "-d",
    "domains",
    type=DOMAIN_CHOICE,
    multiple=True,
    help="Sync only this domain (repeatable).",
)
def sync(full: bool, domains: tuple[str, ...]) -> None:
    """Upload local changes and download remote changes."""
    services = _open_services(list(domains) or None)

    async def _run() -> bool:
        try:
            await services.initialize()
            if not await services.account.is_sync_enabled():
                click.echo("Error: Cloud sync is not enabled for this account.", err=True)
                return False

            ok = True
            for service in services.enabled():
                try:
                    report = await (service.full_sync() if full else service.sync())
                except Exception as e:
                    click.echo(f"  {service.name}: failed ({e})", err=True)
                    ok = False
                    continue
                if report is None:
                    click.echo(f"  {service.name}: skipped")
                else:
                    click.echo(f"  {service.name}: {_format_report(report)}")
            return ok
        finally:
            await services.close()

    click.echo("Full sync..." if full else "Syncing...")
    if not asyncio.run(_run()):
        sys.exit(1)


@click.command()
def status() -> None:
    """Show sync progress of each domain."""
    services = _open_services()
    config = load_config()

    async def _show() -> None:
        try:
            await services.initialize()
            click.echo(f"Server: {config['server_url']}")
            click.echo(f"User:   {config.get('user_id') or '-'}")
            for service in services.enabled():
                state = service.get_sync_status()
                pending = await service.get_pending_sync_count()
                click.echo(f"\n{service.name}")
                click.echo(f"  Last sync: {_format_time(state.last_sync_time)}")
                click.echo(f"  Pending:   {pending}")
                if state.last_error:
                    click.echo(f"  Error:     {state.last_error}")
        finally:
            await services.close()

    asyncio.run(_show())


@click.command()
@click.option(
    "--interval",
    "-i",
    type=float,
    default=None,
    help="Seconds between cycles (default: from config, 60).",
)
def watch(interval: float | None) -> None:
    """Sync periodically until interrupted (Ctrl+C)."""
    if interval is not None and interval <= 0:
        click.echo("Error: --interval must be positive.", err=True)
        sys.exit(1)
    services = _open_services(interval=interval)

    async def _watch() -> None:
        try:
            await services.initialize()
            services.start_periodic_sync()
            await asyncio.Event().wait()
        finally:
            await services.close()

    click.echo("Watching for changes. Press Ctrl+C to stop.")
    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        click.echo("\nStopped.")
