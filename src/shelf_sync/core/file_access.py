"""File access capability for the external file.

Two implementations are selected at construction time: one backed by the
local filesystem and one held in memory (tests, environments without disk
access).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from shelf_sync.errors import (
    CapabilityUnavailableError,
    ExternalFileNotFoundError,
    FileEncodingError,
    PermissionDeniedError,
    classify_os_error,
)

log = logging.getLogger(__name__)


@dataclass
class FileStat:
    exists: bool
    size: int = 0
    mtime: datetime | None = None


class FileAccess(ABC):
    """Async read/write/stat over a single path namespace."""

    @abstractmethod
    async def read_text(self, path: str) -> str:
        """Read a whole file as UTF-8 text."""

    @abstractmethod
    async def write_text(self, path: str, content: str) -> None:
        """Replace a file's content."""

    @abstractmethod
    async def stat(self, path: str) -> FileStat:
        """Return existence, size and modification time. Never raises for a missing file."""


class LocalFileAccess(FileAccess):
    """Filesystem access; blocking calls run in a worker thread."""

    async def read_text(self, path: str) -> str:
        try:
            return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        except OSError as e:
            raise classify_os_error(e, path) from e
        except UnicodeDecodeError as e:
            raise FileEncodingError(
                f"{path} is not valid UTF-8 (byte {e.start}: {e.reason})", path=path
            ) from e

    async def write_text(self, path: str, content: str) -> None:
        try:
            await asyncio.to_thread(Path(path).write_text, content, encoding="utf-8")
        except OSError as e:
            raise classify_os_error(e, path) from e
        log.debug(f"Wrote {len(content)} chars to {path}")

    async def stat(self, path: str) -> FileStat:
        file_path = Path(path)
        try:
            info = await asyncio.to_thread(file_path.stat)
        except FileNotFoundError:
            return FileStat(exists=False)
        except OSError as e:
            raise classify_os_error(e, path) from e

        if not file_path.is_file():
            return FileStat(exists=False)
        return FileStat(
            exists=True,
            size=info.st_size,
            mtime=datetime.fromtimestamp(info.st_mtime),
        )


class InMemoryFileAccess(FileAccess):
    """Dict-backed files.

    `deny(path)` makes every access to that path fail with a permission
    error; `available=False` simulates an environment with no file API.
    """

    def __init__(self, files: dict[str, str] | None = None, available: bool = True):
        self.files: dict[str, str] = dict(files or {})
        self.mtimes: dict[str, datetime] = {path: datetime.now() for path in self.files}
        self.available = available
        self._denied: set[str] = set()

    def deny(self, path: str) -> None:
        self._denied.add(path)

    def allow(self, path: str) -> None:
        self._denied.discard(path)

    def _check(self, path: str) -> None:
        if not self.available:
            raise CapabilityUnavailableError("No file API in this environment", path=path)
        if path in self._denied:
            raise PermissionDeniedError(f"{path}: access denied", path=path)

    async def read_text(self, path: str) -> str:
        self._check(path)
        if path not in self.files:
            raise ExternalFileNotFoundError(f"{path}: no such file", path=path)
        return self.files[path]

    async def write_text(self, path: str, content: str) -> None:
        self._check(path)
        self.files[path] = content
        self.mtimes[path] = datetime.now()

    async def stat(self, path: str) -> FileStat:
        self._check(path)
        if path not in self.files:
            return FileStat(exists=False)
        return FileStat(
            exists=True,
            size=len(self.files[path].encode("utf-8")),
            mtime=self.mtimes.get(path),
        )
