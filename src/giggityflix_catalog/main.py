import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional

import typer
from rich import print
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from giggityflix_catalog import __version__
from giggityflix_catalog.catalog_app import CatalogApp
from giggityflix_catalog.config import config
from giggityflix_catalog.errors import CatalogError
from giggityflix_catalog.models.media import CatalogConfig
from giggityflix_catalog.utils.logging import setup_logging

# Create CLI app
app = typer.Typer(
    name="giggityflix-catalog",
    help="Media catalog with byte-range streaming and thumbnails",
    add_completion=False
)

console = Console()
logger = logging.getLogger(__name__)


def print_welcome_message():
    """Print a welcome message."""
    message = """
[bold cyan]Giggityflix Catalog Service[/bold cyan]

[italic]Catalog your local media files and stream them over HTTP[/italic]

Version: {version}
    """.format(version=__version__)

    console.print(Panel(message, title="Welcome", expand=False))


def apply_overrides(data_dir: Optional[Path] = None, catalog_config: Optional[Path] = None,
                    port: Optional[int] = None, scan_interval: Optional[int] = None) -> None:
    """Override process settings with command line arguments."""
    if data_dir:
        config.data_dir = str(data_dir)

    if catalog_config:
        config.scanner.catalog_config_path = str(catalog_config)

    if port:
        config.server.port = port

    if scan_interval:
        config.scanner.scan_interval_minutes = scan_interval


@app.callback()
def callback():
    """Giggityflix Catalog Service."""
    setup_logging()


@app.command()
def start(
    media_dirs: Optional[List[str]] = typer.Option(
        None, "--media-dir", "-m", help="Directory to add to the catalog configuration (repeatable)"
    ),
    catalog_config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path of the catalog configuration file"
    ),
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", "-d", help="Directory for catalog data"
    ),
    port: Optional[int] = typer.Option(
        None, "--port", "-p", help="HTTP port"
    ),
    scan_interval: Optional[int] = typer.Option(
        None, "--scan-interval", "-s", help="Interval between media scans in minutes"
    ),
):
    """Start the catalog service."""
    apply_overrides(data_dir, catalog_config, port, scan_interval)

    print_welcome_message()

    print("[bold]Configuration:[/bold]")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Catalog config: {config.resolve(config.scanner.catalog_config_path)}")
    print(f"  HTTP port: {config.server.port}")
    print(f"  Scan interval: {config.scanner.scan_interval_minutes} minutes")
    print("")

    try:
        asyncio.run(_run_catalog_app(media_dirs or []))
    except KeyboardInterrupt:
        print("\nShutting down...")
    except Exception as e:
        logger.error(f"Error running catalog application: {e}", exc_info=True)
        print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command()
def scan(
    catalog_config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path of the catalog configuration file"
    ),
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", "-d", help="Directory for catalog data"
    ),
):
    """Run one scan and reconciliation cycle."""
    apply_overrides(data_dir, catalog_config)

    print("Scanning media directories...")
    try:
        result = asyncio.run(_scan_media())
    except CatalogError as e:
        print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    table = Table(title="Reconciliation")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key, value in result.to_dict().items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


@app.command(name="list")
def list_media(
    page: int = typer.Option(1, "--page", help="Page number"),
    count: int = typer.Option(20, "--count", help="Items per page"),
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", "-d", help="Directory for catalog data"
    ),
):
    """List catalogued media."""
    apply_overrides(data_dir)

    try:
        result = asyncio.run(_list_media(page, count))
    except CatalogError as e:
        print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    table = Table(title=f"Media (page {result.page} of {result.pages})")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Path")
    for item in result.items:
        table.add_row(item.id, item.name, item.path)
    console.print(table)


@app.command(name="config")
def show_config(
    catalog_config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path of the catalog configuration file"
    ),
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", "-d", help="Directory for catalog data"
    ),
):
    """Show the catalog configuration."""
    apply_overrides(data_dir, catalog_config)

    try:
        catalog = asyncio.run(_load_catalog_config())
    except CatalogError as e:
        print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    print("[bold]Catalog configuration:[/bold]")
    print(f"  Media directories: {', '.join(catalog.media_dirs) or 'None'}")
    print(f"  Extensions: {', '.join(catalog.supported_extensions)}")
    print(f"  Thumbnails on demand: {catalog.on_demand}")
    print(f"  Allowed origins: {', '.join(catalog.allowed_origins) or 'None'}")


@app.command(name="import")
def import_media(
    directory: Path = typer.Argument(..., help="Media directory to register and import"),
    catalog_config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path of the catalog configuration file"
    ),
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", "-d", help="Directory for catalog data"
    ),
):
    """Register a media directory and import its files."""
    apply_overrides(data_dir, catalog_config)

    try:
        inserted = asyncio.run(_import_media(str(directory)))
    except CatalogError as e:
        print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    print(f"Imported {inserted} new media files from {directory}")


@app.command()
def backup(
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", "-d", help="Directory for catalog data"
    ),
):
    """Back up the catalog database."""
    apply_overrides(data_dir)

    try:
        backup_path = asyncio.run(_backup_database())
    except CatalogError as e:
        print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    print(f"Database backed up to {backup_path}")


async def _run_catalog_app(media_dirs: List[str]):
    """Run the catalog application."""
    catalog_app = CatalogApp(config)
    await catalog_app.config_store.ensure_exists()

    existing = (await catalog_app.config_store.load()).media_dirs
    for media_dir in media_dirs:
        if os.path.normpath(media_dir) not in existing:
            await catalog_app.config_store.add_media_dir(media_dir)

    await catalog_app.start()
    await catalog_app.wait_for_stop()


async def _scan_media():
    """Run a single reconciliation cycle."""
    catalog_app = CatalogApp(config)
    await catalog_app.initialize()
    try:
        return await catalog_app.reconcile()
    finally:
        await catalog_app.store.close()


async def _list_media(page: int, count: int):
    catalog_app = CatalogApp(config)
    await catalog_app.store.initialize()
    try:
        return await catalog_app.store.list_paginated(page, count)
    finally:
        await catalog_app.store.close()


async def _import_media(directory: str) -> int:
    catalog_app = CatalogApp(config)
    await catalog_app.initialize()
    try:
        return await catalog_app.import_directory(directory)
    finally:
        await catalog_app.store.close()


async def _backup_database() -> str:
    catalog_app = CatalogApp(config)
    await catalog_app.store.initialize()
    try:
        return await catalog_app.db.backup()
    finally:
        await catalog_app.store.close()


async def _load_catalog_config() -> CatalogConfig:
    catalog_app = CatalogApp(config)
    return await catalog_app.config_store.ensure_exists()


if __name__ == "__main__":
    app()
