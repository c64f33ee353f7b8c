"""CLI for repo-sync."""

import asyncio
import json
import signal
import sys

import click
import structlog

from repo_sync.config.logging import configure_logging
from repo_sync.core.exceptions import ConfigError

logger = structlog.get_logger(__name__)


def run_async(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


def _create_service(config_path: str | None):
    """Create the sync service for ``config_path`` (or the configured default)."""
    from repo_sync.config.settings import get_settings
    from repo_sync.services.sync import SyncService

    settings = get_settings()
    path = config_path or settings.config_path
    try:
        return SyncService.from_config_file(settings, path)
    except ConfigError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)


config_option = click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    help="Sources config file (default: REPO_SYNC_CONFIG_PATH or repo-sync.json)",
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool) -> None:
    """repo-sync: mirror and index repositories from code hosts and local disk."""
    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(log_level=log_level)


@cli.command()
@config_option
def discover(config_path: str | None) -> None:
    """List every repository the configured sources resolve to, as JSON."""
    service = _create_service(config_path)

    async def _discover():
        try:
            repos = await service.discover()
        finally:
            await service.aclose()
        click.echo(json.dumps([repo.model_dump(mode="json") for repo in repos], indent=2))

    run_async(_discover())


@cli.command()
@config_option
def sync(config_path: str | None) -> None:
    """Mirror and index every repository once."""
    service = _create_service(config_path)

    async def _sync():
        try:
            repos = await service.discover()
            click.echo(f"Syncing {len(repos)} repositories...")
            summary = await service.sync_all(repos)
        finally:
            await service.aclose()
        return summary

    summary = run_async(_sync())
    click.echo(
        f"Sync complete: {summary['synced']} synced, {summary['skipped']} skipped, "
        f"{summary['failed']} failed"
    )
    if summary["failed"]:
        sys.exit(1)


@cli.command()
@config_option
def watch(config_path: str | None) -> None:
    """Sync everything, then keep local repositories and remotes up to date.

    Runs until interrupted.
    """
    service = _create_service(config_path)

    async def _watch():
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        try:
            await service.run(stop_event)
        finally:
            await service.aclose()

    run_async(_watch())


if __name__ == "__main__":
    cli()
