"""Runtime settings for shelf-sync."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

log = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".shelf_sync"


def _env_number(name: str, default, cast):
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return cast(value.strip())
    except ValueError:
        log.warning(f"Ignoring {name}={value!r}: not a number, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    return _env_number(name, default, float)


def _env_int(name: str, default: int) -> int:
    return _env_number(name, default, int)


@dataclass
class SyncSettings:
    """Timeouts, windows and locations used by the engine and the controller."""

    config_dir: Path = field(default_factory=lambda: DEFAULT_CONFIG_DIR)
    backup_dir: Path | None = None  # None = next to the external file
    max_backups: int = 10
    read_timeout: float = 5.0
    manual_check_timeout: float = 15.0
    modification_grace: float = 3.0  # auto checks skipped this long after an edit
    conflict_lock: float = 30.0  # a surfaced conflict survives auto checks this long
    auto_check_interval: float = 60.0

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Build settings from SHELF_SYNC_* environment variables.

        A `.env` file in the working directory is loaded first; variables
        already set in the environment win.
        """
        load_dotenv(find_dotenv(usecwd=True))
        home = os.getenv("SHELF_SYNC_HOME")
        backup_dir = os.getenv("SHELF_SYNC_BACKUP_DIR")
        return cls(
            config_dir=Path(home).expanduser() if home else DEFAULT_CONFIG_DIR,
            backup_dir=Path(backup_dir).expanduser() if backup_dir else None,
            max_backups=_env_int("SHELF_SYNC_MAX_BACKUPS", 10),
            read_timeout=_env_float("SHELF_SYNC_READ_TIMEOUT", 5.0),
            manual_check_timeout=_env_float("SHELF_SYNC_CHECK_TIMEOUT", 15.0),
            modification_grace=_env_float("SHELF_SYNC_MODIFICATION_GRACE", 3.0),
            conflict_lock=_env_float("SHELF_SYNC_CONFLICT_LOCK", 30.0),
            auto_check_interval=_env_float("SHELF_SYNC_AUTO_CHECK_INTERVAL", 60.0),
        )
