"""Reconciliation between the record cache and the external catalog file."""

import asyncio
import logging
from datetime import datetime
from pathlib import Path

from shelf_sync.cache.manager import CatalogStore
from shelf_sync.cache.models import CurrentFile, RecordSet
from shelf_sync.config import SyncSettings
from shelf_sync.core.backup import BackupService
from shelf_sync.core.book_parser import (
    STRICT_CONTAINER_CLOSE,
    STRICT_CONTAINER_OPEN,
    contains_book_signals,
    parse_catalog,
)
from shelf_sync.core.differ import compare_all_content, compare_structure
from shelf_sync.core.file_access import FileAccess
from shelf_sync.core.fingerprint import fingerprint
from shelf_sync.core.html_generator import render_catalog
from shelf_sync.errors import (
    EmptyFileError,
    ExternalFileNotFoundError,
    NotConfiguredError,
    ParseEmptyResultError,
    ReadTimeoutError,
    SyncError,
)
from shelf_sync.models.book import Book, OriginalFileStructure
from shelf_sync.models.sync import (
    ConflictResolution,
    ResolutionAction,
    SyncConfig,
    VersionCompareResult,
)

log = logging.getLogger(__name__)


def discard_late_outcome(task: asyncio.Future) -> None:
    """Consume the result of an operation nobody waits for anymore."""
    if not task.cancelled() and task.exception() is not None:
        log.debug(f"Abandoned operation failed late: {task.exception()}")


class Reconciler:
    """Compares, pulls and pushes between the cache and one external file.

    The store is synchronous; file access is async so slow or locked files
    can be abandoned after a timeout.
    """

    def __init__(
        self,
        store: CatalogStore,
        files: FileAccess,
        backups: BackupService | None = None,
        settings: SyncSettings | None = None,
    ):
        self.store = store
        self.files = files
        self.backups = backups
        self.settings = settings or SyncSettings()

    # ------------------------------------------------------------------
    # Link management
    # ------------------------------------------------------------------

    def get_sync_config(self) -> SyncConfig | None:
        """Return the link, or None when no external file is configured."""
        config = self.store.get_sync_config()
        if config is None or not config.is_linked:
            return None
        return config

    def _require_config(self) -> SyncConfig:
        config = self.get_sync_config()
        if config is None:
            raise NotConfiguredError("No external file is linked")
        return config

    async def link_external_file(self, path: str) -> SyncConfig:
        """Link the cache to `path`, recording the current cache fingerprint."""
        stat = await self.files.stat(path)
        if not stat.exists:
            raise ExternalFileNotFoundError(f"{path} does not exist", path=path)

        config = SyncConfig(
            external_file_path=path,
            last_sync_time=datetime.now(),
            cache_version=self.current_cache_fingerprint(),
            auto_version_check=True,
        )
        self.store.save_sync_config(config)
        log.info(f"Linked external file {path}")
        return config

    def unlink(self) -> None:
        self.store.clear_sync_config()
        log.info("Unlinked external file")

    def current_cache_fingerprint(self) -> str:
        record_set = self.store.get_records()
        return fingerprint(record_set.books, record_set.original_structure)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def _read_external(self, path: str) -> str:
        """Read the external file, giving up after the read timeout.

        The read itself is left running on timeout; its late result is dropped.
        """
        task = asyncio.ensure_future(self.files.read_text(path))
        try:
            return await asyncio.wait_for(asyncio.shield(task), self.settings.read_timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(discard_late_outcome)
            raise ReadTimeoutError(
                f"Reading {path} took longer than {self.settings.read_timeout:g}s", path=path
            ) from None

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    async def compare_versions(self) -> VersionCompareResult | None:
        """Compare the cache with the external file.

        Returns None when there is nothing to compare: no link, no file, or
        a blank file. Read failures raise.
        """
        config = self.get_sync_config()
        if config is None:
            log.debug("Compare skipped: no external file linked")
            return None

        path = config.external_file_path
        stat = await self.files.stat(path)
        if not stat.exists:
            log.info(f"Compare skipped: {path} does not exist")
            return None

        record_set = self.store.get_records()
        cache_books = record_set.books
        cache_structure = record_set.original_structure

        try:
            content = await self._read_external(path)
        except SyncError as e:
            raise type(e)(f"Unable to read external file: {e.message}", path=path) from e

        if not content.strip():
            log.info(f"Compare skipped: {path} is blank")
            return None

        parsed = parse_catalog(content, cache_books)
        for warning in self.validate_parse_result(parsed.records, content):
            log.warning(f"Parse result may be incomplete: {warning}")

        cache_fp = fingerprint(cache_books, cache_structure)
        file_fp = fingerprint(parsed.records, parsed.structure)

        if cache_fp == file_fp:
            log.debug("Fingerprints match, comparing structure only")
            differences = compare_structure(cache_structure, parsed.structure)
        else:
            differences = compare_all_content(
                cache_books, parsed.records, cache_structure, parsed.structure
            )

        has_conflict = any(not d.is_warning for d in differences)
        result = VersionCompareResult(
            has_conflict=has_conflict,
            cache_count=len(cache_books),
            file_count=len(parsed.records),
            cache_modified_time=record_set.saved_at,
            file_modified_time=stat.mtime,
            differences=differences,
            conflict_type="content" if has_conflict else "none",
            cache_fingerprint=cache_fp,
            file_fingerprint=file_fp,
        )

        if has_conflict:
            log.info(f"Conflict: {len(result.meaningful_differences)} difference(s)")
        return result

    def validate_parse_result(self, records: list[Book], content: str) -> list[str]:
        """Warnings about a parse that looks incomplete."""
        warnings = []
        if not records:
            warnings.append("no records were parsed")
            if contains_book_signals(content):
                warnings.append("the file contains book information but nothing was parsed")

        incomplete = [b for b in records if not b.title or not b.author]
        if incomplete:
            warnings.append(f"{len(incomplete)} record(s) are incomplete")
        return warnings

    def validate_file_structure(self, structure: OriginalFileStructure) -> list[str]:
        """Problems with a stored structure that would break a write-back."""
        problems = []
        if not structure.header:
            problems.append("header is empty")
        elif STRICT_CONTAINER_OPEN not in structure.header:
            problems.append(f"header has no {STRICT_CONTAINER_OPEN} tag")

        if not structure.footer:
            problems.append("footer is empty")
        elif STRICT_CONTAINER_CLOSE not in structure.footer:
            problems.append(f"footer has no {STRICT_CONTAINER_CLOSE} tag")
        return problems

    # ------------------------------------------------------------------
    # Synchronization
    # ------------------------------------------------------------------

    async def sync_from_external(self) -> list[Book]:
        """Replace the cache with the records in the external file.

        Returns an empty list (and leaves the cache alone) when the file
        genuinely has no books.
        """
        config = self._require_config()
        path = config.external_file_path

        stat = await self.files.stat(path)
        if not stat.exists:
            raise ExternalFileNotFoundError(f"{path} does not exist", path=path)

        content = await self._read_external(path)
        if not content.strip():
            raise EmptyFileError(f"{path} has no content", path=path)

        record_set = self.store.get_records()
        parsed = parse_catalog(content, record_set.books)

        if not parsed.records:
            if contains_book_signals(content):
                raise ParseEmptyResultError(
                    f"{path} contains book information but no book could be parsed", path=path
                )
            log.info(f"{path} contains no books")
            return []

        books = [book.model_copy(update={"sort_order": i}) for i, book in enumerate(parsed.records)]

        try:
            self.store.backup_records()
        except OSError as e:
            log.warning(f"Could not back up the cache before replacing it: {e}")

        self.store.save_records(
            RecordSet(
                books=books,
                original_structure=parsed.structure,
                current_file=CurrentFile(file_name=Path(path).name, file_path=path),
            )
        )

        config.last_sync_time = datetime.now()
        config.cache_version = fingerprint(books, parsed.structure)
        self.store.save_sync_config(config)

        log.info(f"Pulled {len(books)} book(s) from {path}")
        return books

    def _backup_external(self, path: str) -> None:
        if self.backups is None:
            return
        try:
            info = self.backups.create_backup(
                path, self.settings.backup_dir, self.settings.max_backups
            )
        except (SyncError, OSError) as e:
            log.warning(f"Backup of {path} failed, continuing without it: {e}")
            return
        log.info(f"Backup created: {info.path} ({info.size} bytes)")

    async def sync_to_external(self, create_backup: bool = True) -> bool:
        """Write the cache to the external file.

        Returns False for recoverable problems (no link, empty cache, markup
        generation failure). File errors from the write itself raise.
        """
        config = self.get_sync_config()
        if config is None:
            log.error("Push skipped: no external file linked")
            return False
        path = config.external_file_path

        record_set = self.store.get_records()
        structure = record_set.original_structure
        cache_fp = fingerprint(record_set.books, structure)

        if structure is not None:
            for problem in self.validate_file_structure(structure):
                log.warning(f"Stored file structure looks wrong: {problem}")

        if not record_set.books:
            log.warning("Push skipped: the cache has no books")
            return False

        if create_backup:
            await asyncio.to_thread(self._backup_external, path)

        try:
            content = render_catalog(record_set.books, structure)
        except Exception:
            log.exception("Failed to generate catalog markup")
            return False

        if not content.strip():
            log.error("Generated markup is empty, nothing written")
            return False

        await self.files.write_text(path, content)

        try:
            written = await self._read_external(path)
        except SyncError as e:
            log.warning(f"Could not verify the write, but it reported success: {e}")
        else:
            if written != content:
                log.warning(
                    f"Written content differs from what was generated "
                    f"(expected {len(content)} chars, found {len(written)})"
                )

        config.last_sync_time = datetime.now()
        config.cache_version = cache_fp
        self.store.save_sync_config(config)

        log.info(f"Pushed {len(record_set.books)} book(s) to {path}")
        return True

    async def resolve_conflict(self, resolution: ConflictResolution) -> bool:
        """Apply the user's choice. Abort has no side effects."""
        if resolution.action == ResolutionAction.ABORT:
            log.info("Conflict resolution aborted")
            return False

        if resolution.action == ResolutionAction.USE_CACHE:
            return await self.sync_to_external(resolution.create_backup)

        books = await self.sync_from_external()
        return len(books) > 0

    async def manual_sync(self) -> bool:
        """Push the cache when the file has drifted; True when in sync afterwards."""
        result = await self.compare_versions()
        if result is None:
            return False
        if not result.has_conflict:
            return True
        return await self.sync_to_external(create_backup=True)
