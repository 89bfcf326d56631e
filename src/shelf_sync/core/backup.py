"""Backups of the external file before it is overwritten."""

import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from shelf_sync.errors import classify_os_error

log = logging.getLogger(__name__)


@dataclass
class BackupInfo:
    path: Path
    size: int


class BackupService(ABC):
    @abstractmethod
    def create_backup(
        self, path: str, dest_dir: str | Path | None = None, max_count: int = 10
    ) -> BackupInfo:
        """Copy `path` aside and prune old copies beyond `max_count`."""


class LocalBackupService(BackupService):
    """Timestamped copies of the file, next to it unless a directory is given."""

    def create_backup(
        self, path: str, dest_dir: str | Path | None = None, max_count: int = 10
    ) -> BackupInfo:
        source = Path(path)
        target_dir = Path(dest_dir) if dest_dir else source.parent
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        target = target_dir / f"{source.stem}.backup.{timestamp}{source.suffix}"

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
        except OSError as e:
            raise classify_os_error(e, str(target)) from e

        log.info(f"Backed up {source} to {target}")
        self._prune(source, target_dir, max_count)
        return BackupInfo(path=target, size=target.stat().st_size)

    def _prune(self, source: Path, target_dir: Path, max_count: int) -> None:
        backups = sorted(
            target_dir.glob(f"{source.stem}.backup.*{source.suffix}"),
            key=lambda p: p.name,
        )
        for old in backups[: max(0, len(backups) - max_count)]:
            try:
                old.unlink()
                log.debug(f"Removed old backup {old}")
            except OSError as e:
                log.warning(f"Could not remove old backup {old}: {e}")
