"""Textual TUI for watching the catalog and resolving conflicts."""

from shelf_sync.tui.app import CatalogWatchApp

__all__ = ["CatalogWatchApp"]
