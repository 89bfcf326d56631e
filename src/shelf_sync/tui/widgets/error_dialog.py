"""Error dialog modal screen."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Static

from shelf_sync.errors import SyncError


class ErrorDialog(ModalScreen[str]):
    """Shows a sync error with its classification and what to do about it."""

    BINDINGS = [
        Binding("escape", "dismiss", "Close", show=False),
        Binding("o", "dismiss", "OK", show=False),
    ]

    def __init__(
        self,
        error: SyncError,
        options: list[tuple[str, str]] | None = None,
        **kwargs,
    ) -> None:
        """Initialize the error dialog.

        Args:
            error: The failure to present
            options: List of (key, label) tuples for action buttons
        """
        super().__init__(**kwargs)
        self.error = error
        self.options = options or [("o", "OK")]

    def compose(self) -> ComposeResult:
        with Container(id="error-dialog"):
            yield Static(f"[bold red]{self.error.classification}[/]", id="error-title")
            yield Static(self.error.message, id="error-message", markup=False)
            yield Static(f"[dim]{self.error.remediation}[/]", id="error-hint")
            with Horizontal(id="error-actions"):
                for key, label in self.options:
                    yield Button(f"[{key.upper()}] {label}", id=f"btn-{key}")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id and button_id.startswith("btn-"):
            self.dismiss(button_id[len("btn-"):])

    def action_dismiss(self) -> None:
        self.dismiss("dismiss")
