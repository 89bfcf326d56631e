"""Logging configuration with rich console output."""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

# Log records go to stderr so command output on stdout stays clean
console = Console(stderr=True)


def setup_logging(level: str = "WARNING", log_file: str | None = None) -> None:
    """Configure the root logger once, at the CLI entry point.

    Args:
        level: Default logging level; LOG_LEVEL in the environment overrides it
        log_file: Optional file path to also log to a file
    """
    level = os.getenv("LOG_LEVEL", level).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    rich_handler = RichHandler(
        console=console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)
