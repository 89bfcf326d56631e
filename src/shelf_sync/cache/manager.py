"""Persistence for cached records and the sync configuration."""

import logging
import shutil
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from shelf_sync.cache.models import RecordSet
from shelf_sync.models.sync import SyncConfig

log = logging.getLogger(__name__)


class CatalogStore(ABC):
    """Key-value persistence for the record cache and the sync link."""

    @abstractmethod
    def get_records(self) -> RecordSet:
        """Load the cache; an empty RecordSet when nothing was saved yet."""

    @abstractmethod
    def save_records(self, record_set: RecordSet) -> None:
        """Persist the cache, stamping `saved_at`."""

    @abstractmethod
    def get_sync_config(self) -> SyncConfig | None: ...

    @abstractmethod
    def save_sync_config(self, config: SyncConfig) -> None: ...

    @abstractmethod
    def clear_sync_config(self) -> None: ...

    @abstractmethod
    def backup_records(self) -> Path | None:
        """Snapshot the current cache before it is replaced."""


class JsonCatalogStore(CatalogStore):
    """Stores the cache as JSON files in a config directory."""

    BOOKS_FILE = "books.json"
    SYNC_FILE = "sync.json"
    BACKUP_DIR = "backups"
    MAX_RECORD_BACKUPS = 20

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self.books_path = self.config_dir / self.BOOKS_FILE
        self.sync_path = self.config_dir / self.SYNC_FILE
        self.backup_root = self.config_dir / self.BACKUP_DIR

    def _ensure_config_dir(self) -> None:
        """Create config directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def get_records(self) -> RecordSet:
        if not self.books_path.exists():
            return RecordSet()

        try:
            return RecordSet.model_validate_json(self.books_path.read_text(encoding="utf-8"))
        except ValueError as e:
            log.warning(f"Cache file {self.books_path} is unreadable, starting empty: {e}")
            return RecordSet()

    def save_records(self, record_set: RecordSet) -> None:
        self._ensure_config_dir()
        record_set.saved_at = datetime.now()
        self.books_path.write_text(record_set.model_dump_json(indent=2), encoding="utf-8")
        log.debug(f"Saved {len(record_set.books)} book(s) to {self.books_path}")

    def get_sync_config(self) -> SyncConfig | None:
        if not self.sync_path.exists():
            return None

        try:
            return SyncConfig.model_validate_json(self.sync_path.read_text(encoding="utf-8"))
        except ValueError as e:
            log.warning(f"Sync config {self.sync_path} is unreadable, ignoring it: {e}")
            return None

    def save_sync_config(self, config: SyncConfig) -> None:
        self._ensure_config_dir()
        self.sync_path.write_text(config.model_dump_json(indent=2), encoding="utf-8")

    def clear_sync_config(self) -> None:
        if self.sync_path.exists():
            self.sync_path.unlink()

    def backup_records(self) -> Path | None:
        if not self.books_path.exists():
            return None

        self.backup_root.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        target = self.backup_root / f"books_{timestamp}.json"
        shutil.copy2(self.books_path, target)

        backups = sorted(self.backup_root.glob("books_*.json"))
        for old in backups[: max(0, len(backups) - self.MAX_RECORD_BACKUPS)]:
            old.unlink()

        log.info(f"Backed up cache to {target}")
        return target


class InMemoryCatalogStore(CatalogStore):
    """Keeps everything in memory. Backups are kept as record-set copies."""

    def __init__(self, record_set: RecordSet | None = None, config: SyncConfig | None = None):
        self.record_set = record_set or RecordSet()
        self.config = config
        self.backups: list[RecordSet] = []

    def get_records(self) -> RecordSet:
        return self.record_set.model_copy(deep=True)

    def save_records(self, record_set: RecordSet) -> None:
        record_set.saved_at = datetime.now()
        self.record_set = record_set.model_copy(deep=True)

    def get_sync_config(self) -> SyncConfig | None:
        return self.config.model_copy() if self.config else None

    def save_sync_config(self, config: SyncConfig) -> None:
        self.config = config.model_copy()

    def clear_sync_config(self) -> None:
        self.config = None

    def backup_records(self) -> Path | None:
        self.backups.append(self.record_set.model_copy(deep=True))
        return None
