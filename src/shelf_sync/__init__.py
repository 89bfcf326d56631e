"""Keep a cached book catalog in step with a hand-editable HTML page."""

__version__ = "0.3.0"
