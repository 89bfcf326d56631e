"""Tests for the version status controller."""

import asyncio

import pytest

from conftest import CATALOG_PATH, SlowFileAccess, seed_in_sync
from shelf_sync.config import SyncSettings
from shelf_sync.core.file_access import InMemoryFileAccess, LocalFileAccess
from shelf_sync.core.reconciler import Reconciler
from shelf_sync.core.status import VersionStatus, VersionStatusController
from shelf_sync.errors import (
    CheckInProgressError,
    CheckTimeoutError,
    FileEncodingError,
    NotConfiguredError,
    PermissionDeniedError,
    SyncError,
)
from shelf_sync.models.sync import ConflictResolution, ResolutionAction, SyncConfig


def edit_cached(store, index, **fields):
    record_set = store.get_records()
    record_set.books[index] = record_set.books[index].model_copy(update=fields)
    store.save_records(record_set)


@pytest.fixture
def controller(reconciler):
    return VersionStatusController(reconciler)


class TestStatusLock:
    def test_soft_update_is_ignored_while_locked(self, controller):
        async def scenario():
            assert controller.set_status(VersionStatus.CONFLICT, lock_duration=10)
            assert controller.is_locked
            assert not controller.set_status(VersionStatus.SYNCED)
            assert controller.status == VersionStatus.CONFLICT

            controller.force_set_status(VersionStatus.SYNCED)
            assert controller.status == VersionStatus.SYNCED
            assert not controller.is_locked
            controller.close()

        asyncio.run(scenario())

    def test_lock_expires(self, controller):
        async def scenario():
            controller.set_status(VersionStatus.CONFLICT, lock_duration=0.01)
            await asyncio.sleep(0.05)
            assert not controller.is_locked
            assert controller.set_status(VersionStatus.SYNCED)

        asyncio.run(scenario())

    def test_new_lock_replaces_pending_timer(self, controller):
        async def scenario():
            controller.set_status(VersionStatus.CONFLICT, lock_duration=0.01)
            controller.force_set_status(VersionStatus.UNKNOWN)
            controller.set_status(VersionStatus.CONFLICT, lock_duration=10)
            await asyncio.sleep(0.05)
            assert controller.is_locked
            controller.close()
            assert not controller.is_locked

        asyncio.run(scenario())

    def test_status_change_callback(self, reconciler):
        seen = []
        controller = VersionStatusController(reconciler, on_status_change=seen.append)

        controller.set_status(VersionStatus.SYNCED)
        controller.set_status(VersionStatus.SYNCED)
        controller.force_set_status(VersionStatus.CONFLICT)

        assert seen == [VersionStatus.SYNCED, VersionStatus.CONFLICT]


class TestAutomaticCheck:
    def test_in_sync(self, controller, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        result = asyncio.run(controller.check_versions())
        assert not result.has_conflict
        assert controller.status == VersionStatus.SYNCED

    def test_conflict_locks_status(self, controller, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        edit_cached(store, 0, description="A")

        async def scenario():
            result = await controller.check_versions()
            assert result.has_conflict
            assert controller.status == VersionStatus.CONFLICT
            assert controller.is_locked

            edit_cached(store, 0, description="一个人和一座园子")
            assert await controller.check_versions() is None
            assert controller.status == VersionStatus.CONFLICT
            controller.close()

        asyncio.run(scenario())

    def test_skipped_after_user_modification(self, reconciler, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        now = [100.0]
        controller = VersionStatusController(reconciler, clock=lambda: now[0])

        controller.note_user_modification(mark_conflict=False)
        assert asyncio.run(controller.check_versions()) is None
        assert controller.status == VersionStatus.UNKNOWN

        now[0] += 5
        assert asyncio.run(controller.check_versions()) is not None
        assert controller.status == VersionStatus.SYNCED

    def test_user_modification_marks_conflict(self, controller):
        controller.note_user_modification()
        assert controller.status == VersionStatus.CONFLICT

    def test_user_modification_without_link(self, reconciler, store):
        store.config = None
        controller = VersionStatusController(reconciler)
        controller.note_user_modification()
        assert controller.status == VersionStatus.UNKNOWN

    def test_disabled(self, controller, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        store.config = SyncConfig(external_file_path=CATALOG_PATH, auto_version_check=False)
        assert asyncio.run(controller.check_versions()) is None
        assert controller.status == VersionStatus.UNKNOWN

    def test_failure_becomes_unknown(self, controller, files):
        files.files[CATALOG_PATH] = "x"
        files.deny(CATALOG_PATH)
        controller.force_set_status(VersionStatus.SYNCED)

        assert asyncio.run(controller.check_versions()) is None
        assert controller.status == VersionStatus.UNKNOWN
        assert isinstance(controller.last_error, PermissionDeniedError)


class TestManualCheck:
    def test_conflict(self, controller, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        edit_cached(store, 0, description="A")

        result = asyncio.run(controller.manual_check())

        assert result.has_conflict
        assert controller.status == VersionStatus.CONFLICT
        assert not controller.is_locked
        assert not controller.check_in_flight

    def test_not_configured(self, controller, store):
        store.config = None
        with pytest.raises(NotConfiguredError):
            asyncio.run(controller.manual_check())

    def test_rejects_concurrent_check(self, store, sample_books):
        files = SlowFileAccess(0.1)
        seed_in_sync(store, files, sample_books)
        controller = VersionStatusController(Reconciler(store, files))

        async def scenario():
            first = asyncio.create_task(controller.manual_check())
            await asyncio.sleep(0)
            assert controller.check_in_flight
            assert controller.status == VersionStatus.CHECKING

            with pytest.raises(CheckInProgressError):
                await controller.manual_check()
            assert await controller.check_versions() is None

            result = await first
            assert not result.has_conflict

        asyncio.run(scenario())
        assert not controller.check_in_flight
        assert controller.status == VersionStatus.SYNCED

    def test_timeout(self, store, sample_books):
        files = SlowFileAccess(1.0)
        seed_in_sync(store, files, sample_books)
        settings = SyncSettings(read_timeout=5.0, manual_check_timeout=0.05)
        controller = VersionStatusController(Reconciler(store, files, settings=settings))

        with pytest.raises(CheckTimeoutError):
            asyncio.run(controller.manual_check())

        assert controller.status == VersionStatus.UNKNOWN
        assert not controller.check_in_flight
        assert isinstance(controller.last_error, CheckTimeoutError)


class TestResolve:
    def test_use_cache_marks_synced(self, controller, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        edit_cached(store, 0, description="A")
        controller.force_set_status(VersionStatus.CONFLICT)

        resolution = ConflictResolution(action=ResolutionAction.USE_CACHE, create_backup=False)
        assert asyncio.run(controller.resolve(resolution))
        assert controller.status == VersionStatus.SYNCED

    def test_abort_keeps_status(self, controller):
        controller.force_set_status(VersionStatus.CONFLICT)
        resolution = ConflictResolution(action=ResolutionAction.ABORT)
        assert asyncio.run(controller.resolve(resolution)) is False
        assert controller.status == VersionStatus.CONFLICT

    def test_failed_write_keeps_conflict(self, controller, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        files.deny(CATALOG_PATH)
        controller.force_set_status(VersionStatus.SYNCED)

        resolution = ConflictResolution(action=ResolutionAction.USE_CACHE, create_backup=False)
        with pytest.raises(PermissionDeniedError):
            asyncio.run(controller.resolve(resolution))
        assert controller.status == VersionStatus.CONFLICT

    def test_empty_cache_push_keeps_conflict(self, controller, files):
        files.files[CATALOG_PATH] = "x"
        resolution = ConflictResolution(action=ResolutionAction.USE_CACHE)
        assert asyncio.run(controller.resolve(resolution)) is False
        assert controller.status == VersionStatus.CONFLICT


class TestDisplay:
    def test_plain_statuses(self, controller):
        assert controller.display() == ("Not checked", "dim")
        controller.force_set_status(VersionStatus.SYNCED)
        assert controller.display() == ("In sync", "green")

    def test_conflict_counts_differences(self, controller, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        edit_cached(store, 0, description="A")
        asyncio.run(controller.manual_check())
        assert controller.display() == ("Conflict (1 difference)", "bold red")


class BrokenFileAccess(InMemoryFileAccess):
    """Reads fail with an exception from outside the error taxonomy."""

    async def read_text(self, path: str) -> str:
        raise RuntimeError("disk driver exploded")


class TestUnexpectedFailures:
    def test_manual_check_on_non_utf8_file(self, tmp_path, store):
        target = tmp_path / "index.md"
        target.write_bytes('<ul class="content"><li>作者：史铁生</li></ul>'.encode("gbk"))
        store.config = SyncConfig(external_file_path=str(target))
        controller = VersionStatusController(Reconciler(store, LocalFileAccess()))

        with pytest.raises(FileEncodingError):
            asyncio.run(controller.manual_check())

        assert controller.status == VersionStatus.UNKNOWN
        assert not controller.check_in_flight
        assert isinstance(controller.last_error, FileEncodingError)

    def test_manual_check_wraps_unknown_exceptions(self, store):
        files = BrokenFileAccess({CATALOG_PATH: "x"})
        controller = VersionStatusController(Reconciler(store, files))

        with pytest.raises(SyncError) as exc_info:
            asyncio.run(controller.manual_check())

        assert "disk driver exploded" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert controller.status == VersionStatus.UNKNOWN
        assert not controller.check_in_flight
        assert controller.last_error is exc_info.value

    def test_automatic_check_survives_unknown_exceptions(self, store):
        files = BrokenFileAccess({CATALOG_PATH: "x"})
        controller = VersionStatusController(Reconciler(store, files))
        controller.force_set_status(VersionStatus.SYNCED)

        assert asyncio.run(controller.check_versions()) is None

        assert controller.status == VersionStatus.UNKNOWN
        assert isinstance(controller.last_error, SyncError)
        assert "RuntimeError" in controller.last_error.message
