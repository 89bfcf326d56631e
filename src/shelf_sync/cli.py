"""Main CLI application."""

import asyncio
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape

from shelf_sync.cache.manager import JsonCatalogStore
from shelf_sync.commands.check import execute_check, execute_import
from shelf_sync.commands.status import execute_status
from shelf_sync.commands.sync import execute_link, execute_pull, execute_push, execute_unlink
from shelf_sync.config import SyncSettings
from shelf_sync.core.backup import LocalBackupService
from shelf_sync.core.file_access import LocalFileAccess
from shelf_sync.core.reconciler import Reconciler
from shelf_sync.errors import SyncError
from shelf_sync.logging_setup import setup_logging

app = typer.Typer(
    name="shelf-sync",
    help="Keep a cached book catalog in step with a hand-editable HTML page.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def build_reconciler(settings: SyncSettings | None = None) -> Reconciler:
    """Wire the engine to the on-disk store, the filesystem and local backups."""
    settings = settings or SyncSettings.from_env()
    return Reconciler(
        store=JsonCatalogStore(settings.config_dir),
        files=LocalFileAccess(),
        backups=LocalBackupService(),
        settings=settings,
    )


def _fail(error: SyncError) -> NoReturn:
    console.print(f"[red]{escape(error.classification)}:[/] {escape(error.message)}")
    console.print(f"[dim]{escape(error.remediation)}[/]")
    raise typer.Exit(1)


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show progress logging"),
    ] = False,
    log_file: Annotated[
        Optional[Path],
        typer.Option("--log-file", help="Also write logs to this file"),
    ] = None,
) -> None:
    """Keep a cached book catalog in step with a hand-editable HTML page."""
    setup_logging(
        level="INFO" if verbose else "WARNING",
        log_file=str(log_file) if log_file else None,
    )


@app.command()
def link(
    path: Annotated[
        Path,
        typer.Argument(help="Catalog page to keep in sync (e.g. source/books/index.md)"),
    ],
) -> None:
    """Link the cache to an external catalog file."""
    reconciler = build_reconciler()
    try:
        asyncio.run(execute_link(reconciler, path, console))
    except SyncError as e:
        _fail(e)
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1)


@app.command()
def unlink() -> None:
    """Forget the linked external file. The cache is kept."""
    execute_unlink(build_reconciler(), console)


@app.command()
def status() -> None:
    """Show the link, the last sync and the cache fingerprint."""
    execute_status(build_reconciler(), console)


@app.command()
def check() -> None:
    """Compare the cache with the external file.

    Exits with code 2 when they conflict.
    """
    reconciler = build_reconciler()
    try:
        result = asyncio.run(execute_check(reconciler, console))
    except SyncError as e:
        _fail(e)
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if result is not None and result.has_conflict:
        raise typer.Exit(2)


@app.command()
def pull(
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation"),
    ] = False,
) -> None:
    """Replace the cache with the books in the external file."""
    reconciler = build_reconciler()
    if reconciler.get_sync_config() is None:
        console.print("[red]No external file is linked.[/] Run [cyan]shelf-sync link <file>[/] first.")
        raise typer.Exit(1)

    if not yes:
        typer.confirm("Replace the cache with the books in the external file?", abort=True)

    try:
        ok = asyncio.run(execute_pull(reconciler, console))
    except SyncError as e:
        _fail(e)
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if not ok:
        raise typer.Exit(1)


@app.command()
def push(
    backup: Annotated[
        bool,
        typer.Option("--backup/--no-backup", help="Back up the external file before writing"),
    ] = True,
) -> None:
    """Write the cache to the external file."""
    reconciler = build_reconciler()
    try:
        ok = asyncio.run(execute_push(reconciler, console, backup=backup))
    except SyncError as e:
        _fail(e)
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if not ok:
        raise typer.Exit(1)


@app.command("import")
def import_catalog(
    path: Annotated[
        Path,
        typer.Argument(
            help="Catalog page to inspect",
            exists=True,
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
) -> None:
    """Parse a catalog page and list the books found, without touching the cache."""
    try:
        execute_import(path, console)
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Error reading file: {escape(str(e))}[/]")
        raise typer.Exit(1)


@app.command()
def watch() -> None:
    """Watch the external file and resolve conflicts interactively."""
    from shelf_sync.tui import CatalogWatchApp

    settings = SyncSettings.from_env()
    reconciler = build_reconciler(settings)
    if reconciler.get_sync_config() is None:
        console.print("[red]No external file is linked.[/] Run [cyan]shelf-sync link <file>[/] first.")
        raise typer.Exit(1)

    CatalogWatchApp(reconciler, settings=settings).run()


if __name__ == "__main__":
    app()
