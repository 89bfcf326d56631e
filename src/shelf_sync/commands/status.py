"""Status command implementation."""

from dataclasses import dataclass
from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from shelf_sync.core.reconciler import Reconciler


@dataclass
class LinkStatus:
    """What the cache knows about its link to the external file."""

    external_file_path: str | None
    last_sync_time: datetime | None
    stored_fingerprint: str
    current_fingerprint: str
    record_count: int
    cache_saved_at: datetime | None
    auto_version_check: bool

    @property
    def cache_changed_since_sync(self) -> bool:
        return bool(self.stored_fingerprint) and self.stored_fingerprint != self.current_fingerprint


def get_link_status(reconciler: Reconciler) -> LinkStatus:
    config = reconciler.get_sync_config()
    record_set = reconciler.store.get_records()

    return LinkStatus(
        external_file_path=config.external_file_path if config else None,
        last_sync_time=config.last_sync_time if config else None,
        stored_fingerprint=config.cache_version if config else "",
        current_fingerprint=reconciler.current_cache_fingerprint(),
        record_count=len(record_set.books),
        cache_saved_at=record_set.saved_at,
        auto_version_check=config.auto_version_check if config else False,
    )


def _format_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "Never"


def display_status(status: LinkStatus, console: Console) -> None:
    """Display status in a formatted way."""
    console.print()

    if status.external_file_path is None:
        linked = "[dim]Not linked[/]"
    else:
        linked = f"[cyan]{escape(status.external_file_path)}[/]"

    if status.external_file_path is None:
        state = "[dim]Nothing to compare[/]"
    elif status.cache_changed_since_sync:
        state = "[yellow]Cache changed since last sync[/]"
    else:
        state = "[green]Cache unchanged since last sync[/]"

    console.print(
        Panel(
            f"[dim]External file:[/] {linked}\n"
            f"[dim]Last sync:[/] {_format_time(status.last_sync_time)}\n"
            f"[dim]Auto check:[/] {'on' if status.auto_version_check else 'off'}\n\n"
            f"[dim]Books in cache:[/] {status.record_count}\n"
            f"[dim]Cache saved:[/] {_format_time(status.cache_saved_at)}\n"
            f"[dim]Stored fingerprint:[/] {status.stored_fingerprint or '—'}\n"
            f"[dim]Current fingerprint:[/] {status.current_fingerprint}\n\n"
            f"[dim]State:[/] {state}",
            title="Catalog Sync",
            border_style="green",
        )
    )

    console.print()
    if status.external_file_path is None:
        console.print("[dim]Next step:[/] Run [cyan]shelf-sync link <file>[/] to link a catalog page")
    else:
        console.print("[dim]Next step:[/] Run [cyan]shelf-sync check[/] to compare with the file")
    console.print()


def execute_status(reconciler: Reconciler, console: Console) -> LinkStatus:
    """Execute the status command."""
    status = get_link_status(reconciler)
    display_status(status, console)
    return status
