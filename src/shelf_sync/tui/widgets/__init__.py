"""Custom widgets for the watch TUI."""

from shelf_sync.tui.widgets.error_dialog import ErrorDialog

__all__ = ["ErrorDialog"]
