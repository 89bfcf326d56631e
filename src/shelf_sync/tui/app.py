"""Textual application that watches the external file for drift."""

from __future__ import annotations

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.widgets import DataTable, Footer, Header, Static

from shelf_sync.commands.check import short_value
from shelf_sync.config import SyncSettings
from shelf_sync.core.reconciler import Reconciler
from shelf_sync.core.status import VersionStatus, VersionStatusController
from shelf_sync.errors import SyncError
from shelf_sync.models.sync import (
    ConflictResolution,
    ResolutionAction,
    VersionCompareResult,
)
from shelf_sync.tui.widgets import ErrorDialog


class CatalogWatchApp(App):
    """Live status of the cache against the linked file."""

    CSS_PATH = "styles.tcss"
    TITLE = "shelf-sync watch"

    BINDINGS = [
        Binding("c", "check", "Check now", show=True),
        Binding("k", "keep_cache", "Keep cache", show=True),
        Binding("f", "use_file", "Use file", show=True),
        Binding("q", "quit", "Quit", show=True),
    ]

    def __init__(
        self,
        reconciler: Reconciler,
        settings: SyncSettings | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.theme = "monokai"
        self.controller = VersionStatusController(
            reconciler,
            settings=settings,
            on_status_change=self._on_status_change,
        )

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="main"):
            yield Static(id="status-line")
            yield Static(id="summary")
            yield DataTable(id="differences", zebra_stripes=True)
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#differences", DataTable)
        table.add_columns("Kind", "Book", "Field", "File", "Cache")

        config = self.controller.reconciler.get_sync_config()
        self.sub_title = config.external_file_path if config else "not linked"
        self._refresh_status()

        self.set_interval(self.controller.settings.auto_check_interval, self._auto_check)
        self.run_worker(self._auto_check(), group="check")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _on_status_change(self, status: VersionStatus) -> None:
        self._refresh_status()

    def _refresh_status(self) -> None:
        text, style = self.controller.display()
        self.query_one("#status-line", Static).update(f"[{style}]{text}[/]")

    def _show_result(self, result: VersionCompareResult | None) -> None:
        summary = self.query_one("#summary", Static)
        table = self.query_one("#differences", DataTable)
        table.clear()

        if result is None:
            summary.update("Nothing to compare: no linked file, or it is missing or blank.")
            self._refresh_status()
            return

        summary.update(
            f"{result.cache_count} book(s) in cache, {result.file_count} in file, "
            f"{len(result.warnings)} warning(s)"
        )
        for diff in result.differences:
            table.add_row(
                diff.kind.value,
                Text(diff.record_title or ""),
                diff.field,
                Text(short_value(diff.old_value)),
                Text(short_value(diff.new_value)),
            )
        self._refresh_status()

    # ------------------------------------------------------------------
    # Checks and resolution
    # ------------------------------------------------------------------

    async def _auto_check(self) -> None:
        result = await self.controller.check_versions()
        if result is not None:
            self._show_result(result)

    async def _manual_check(self) -> None:
        try:
            result = await self.controller.manual_check()
        except SyncError as e:
            self.push_screen(ErrorDialog(e))
            return
        self._show_result(result)

    async def _resolve(self, action: ResolutionAction) -> None:
        if self.controller.status != VersionStatus.CONFLICT:
            self.notify("No conflict to resolve", severity="warning")
            return

        try:
            ok = await self.controller.resolve(ConflictResolution(action=action))
        except SyncError as e:
            self.push_screen(ErrorDialog(e))
            return

        if ok:
            self.notify("Cache and file are in sync")
            await self._manual_check()
        else:
            self.notify("Nothing changed", severity="warning")

    def action_check(self) -> None:
        self.run_worker(self._manual_check(), group="check")

    def action_keep_cache(self) -> None:
        self.run_worker(self._resolve(ResolutionAction.USE_CACHE), group="resolve", exclusive=True)

    def action_use_file(self) -> None:
        self.run_worker(self._resolve(ResolutionAction.USE_FILE), group="resolve", exclusive=True)

    def action_quit(self) -> None:
        """Quit the application."""
        self.controller.close()
        self.exit(0)
