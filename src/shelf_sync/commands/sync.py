"""Link, unlink, pull and push command implementations."""

from pathlib import Path

from rich.console import Console
from rich.markup import escape

from shelf_sync.core.reconciler import Reconciler
from shelf_sync.models.sync import ConflictResolution, ResolutionAction, SyncConfig


async def execute_link(reconciler: Reconciler, path: Path, console: Console) -> SyncConfig:
    config = await reconciler.link_external_file(str(path.resolve()))
    console.print(f"[green]Linked[/] {escape(config.external_file_path)}")
    console.print(f"[dim]Cache fingerprint:[/] {config.cache_version}")
    return config


def execute_unlink(reconciler: Reconciler, console: Console) -> None:
    if reconciler.get_sync_config() is None:
        console.print("[dim]No external file was linked.[/]")
        return
    reconciler.unlink()
    console.print("[green]Unlinked.[/] The cache is kept as it is.")


async def execute_pull(reconciler: Reconciler, console: Console) -> bool:
    """Adopt the external file's records as the new cache."""
    ok = await reconciler.resolve_conflict(
        ConflictResolution(action=ResolutionAction.USE_FILE)
    )
    record_count = len(reconciler.store.get_records().books)

    if ok:
        console.print(f"[green]Pulled {record_count} book(s) from the external file.[/]")
    else:
        console.print("[yellow]The external file has no books; the cache was left unchanged.[/]")
    return ok


async def execute_push(reconciler: Reconciler, console: Console, backup: bool = True) -> bool:
    """Write the cache to the external file."""
    ok = await reconciler.resolve_conflict(
        ConflictResolution(action=ResolutionAction.USE_CACHE, create_backup=backup)
    )

    if ok:
        config = reconciler.get_sync_config()
        console.print(f"[green]Wrote the cache to[/] {escape(config.external_file_path) if config else ''}")
    else:
        console.print("[yellow]Nothing was written.[/] [dim]Run with --verbose for details.[/]")
    return ok
