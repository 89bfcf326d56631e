"""Tests for the reconciliation engine."""

import asyncio

import pytest

from conftest import CATALOG_PATH, SlowFileAccess, make_book, seed_in_sync
from shelf_sync.cache.models import RecordSet
from shelf_sync.config import SyncSettings
from shelf_sync.core.book_parser import parse_catalog
from shelf_sync.core.file_access import LocalFileAccess
from shelf_sync.core.fingerprint import fingerprint
from shelf_sync.core.html_generator import render_catalog
from shelf_sync.core.reconciler import Reconciler
from shelf_sync.errors import (
    EmptyFileError,
    ExternalFileNotFoundError,
    FileEncodingError,
    NotConfiguredError,
    ParseEmptyResultError,
    PermissionDeniedError,
    ReadTimeoutError,
)
from shelf_sync.models.book import OriginalFileStructure
from shelf_sync.models.sync import ConflictResolution, DifferenceKind, ResolutionAction


def edit_cached(store, index, **fields):
    record_set = store.get_records()
    record_set.books[index] = record_set.books[index].model_copy(update=fields)
    store.save_records(record_set)


class TestLink:
    def test_link_records_cache_fingerprint(self, reconciler, store, files, sample_books):
        store.config = None
        store.save_records(RecordSet(books=sample_books))
        files.files["/other/index.md"] = "x"

        config = asyncio.run(reconciler.link_external_file("/other/index.md"))

        assert config.external_file_path == "/other/index.md"
        assert config.cache_version == fingerprint(sample_books)
        assert reconciler.get_sync_config().external_file_path == "/other/index.md"

    def test_link_missing_file(self, reconciler):
        with pytest.raises(ExternalFileNotFoundError):
            asyncio.run(reconciler.link_external_file("/nope.md"))

    def test_unlink(self, reconciler):
        reconciler.unlink()
        assert reconciler.get_sync_config() is None


class TestCompareVersions:
    def test_nothing_to_compare_when_unlinked(self, reconciler, store):
        store.config = None
        assert asyncio.run(reconciler.compare_versions()) is None

    def test_nothing_to_compare_when_file_missing(self, reconciler):
        assert asyncio.run(reconciler.compare_versions()) is None

    def test_nothing_to_compare_when_file_blank(self, reconciler, files):
        files.files[CATALOG_PATH] = "  \n"
        assert asyncio.run(reconciler.compare_versions()) is None

    def test_in_sync(self, reconciler, store, files, sample_books):
        seed_in_sync(store, files, sample_books)

        result = asyncio.run(reconciler.compare_versions())

        assert not result.has_conflict
        assert result.conflict_type == "none"
        assert result.differences == []
        assert result.cache_fingerprint == result.file_fingerprint
        assert result.cache_count == result.file_count == 2

    def test_description_edited_in_cache(self, reconciler, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        edit_cached(store, 0, description="A")

        result = asyncio.run(reconciler.compare_versions())

        assert result.has_conflict
        assert result.conflict_type == "content"
        assert len(result.meaningful_differences) == 1
        diff = result.meaningful_differences[0]
        assert diff.kind == DifferenceKind.MODIFIED
        assert diff.field == "description"
        assert diff.old_value == "一个人和一座园子"
        assert diff.new_value == "A"

    def test_custom_footer_is_a_structure_conflict(self, reconciler, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        files.files[CATALOG_PATH] += "\n<script>alert(1)</script>"

        result = asyncio.run(reconciler.compare_versions())

        assert result.has_conflict
        assert [d.kind for d in result.differences] == [
            DifferenceKind.STRUCTURE_CHANGED,
            DifferenceKind.STRUCTURE_CHANGED,
        ]

    def test_validation_warnings_accompany_differences(self, reconciler, store, files):
        books = [make_book("1", "无名", "")]
        content = render_catalog(books)
        files.files[CATALOG_PATH] = content
        store.save_records(
            RecordSet(books=books, original_structure=parse_catalog(content, books).structure)
        )
        edit_cached(store, 0, description="不同")

        result = asyncio.run(reconciler.compare_versions())

        assert result.has_conflict
        assert result.warnings

    def test_read_failure_is_wrapped(self, reconciler, files):
        files.files[CATALOG_PATH] = "x"
        files.deny(CATALOG_PATH)
        with pytest.raises(PermissionDeniedError):
            asyncio.run(reconciler.compare_versions())

    def test_read_timeout(self, store):
        files = SlowFileAccess(1.0, files={CATALOG_PATH: "x"})
        reconciler = Reconciler(store, files, settings=SyncSettings(read_timeout=0.05))

        with pytest.raises(ReadTimeoutError) as exc_info:
            asyncio.run(reconciler.compare_versions())
        assert "Unable to read external file" in exc_info.value.message


class TestSyncFromExternal:
    def test_replaces_cache(self, reconciler, store, files, sample_books):
        files.files[CATALOG_PATH] = render_catalog(sample_books)

        books = asyncio.run(reconciler.sync_from_external())

        assert [b.title for b in books] == ["我与地坛", "活着"]
        assert [b.sort_order for b in books] == [0, 1]
        cached = store.get_records()
        assert cached.books == books
        assert cached.current_file.file_name == "index.md"
        assert cached.original_structure is not None
        assert store.config.cache_version == fingerprint(books, cached.original_structure)
        assert store.config.last_sync_time is not None

    def test_idempotent(self, reconciler, store, files, sample_books):
        files.files[CATALOG_PATH] = render_catalog(sample_books)

        first = asyncio.run(reconciler.sync_from_external())
        second = asyncio.run(reconciler.sync_from_external())

        assert first == second
        assert store.config.cache_version == fingerprint(second, store.get_records().original_structure)

    def test_backs_up_previous_cache(self, reconciler, store, files, sample_books):
        store.save_records(RecordSet(books=sample_books[:1]))
        files.files[CATALOG_PATH] = render_catalog(sample_books)

        asyncio.run(reconciler.sync_from_external())

        assert len(store.backups) == 1
        assert len(store.backups[0].books) == 1

    def test_not_configured(self, reconciler, store):
        store.config = None
        with pytest.raises(NotConfiguredError):
            asyncio.run(reconciler.sync_from_external())

    def test_missing_file(self, reconciler):
        with pytest.raises(ExternalFileNotFoundError):
            asyncio.run(reconciler.sync_from_external())

    def test_empty_file(self, reconciler, files):
        files.files[CATALOG_PATH] = "   "
        with pytest.raises(EmptyFileError):
            asyncio.run(reconciler.sync_from_external())

    def test_unparseable_books(self, reconciler, files):
        files.files[CATALOG_PATH] = "<p>《某书》</p>"
        with pytest.raises(ParseEmptyResultError):
            asyncio.run(reconciler.sync_from_external())

    def test_file_without_books_leaves_cache(self, reconciler, store, files, sample_books):
        store.save_records(RecordSet(books=sample_books))
        files.files[CATALOG_PATH] = "<p>nothing here</p>"

        assert asyncio.run(reconciler.sync_from_external()) == []
        assert store.get_records().books == sample_books
        assert store.backups == []

    def test_read_timeout(self, store):
        files = SlowFileAccess(1.0, files={CATALOG_PATH: "x"})
        reconciler = Reconciler(store, files, settings=SyncSettings(read_timeout=0.05))
        with pytest.raises(ReadTimeoutError):
            asyncio.run(reconciler.sync_from_external())


class TestSyncToExternal:
    def test_writes_rendered_cache(self, reconciler, store, files, sample_books):
        store.save_records(RecordSet(books=sample_books))
        files.files[CATALOG_PATH] = "old"

        assert asyncio.run(reconciler.sync_to_external())

        assert files.files[CATALOG_PATH] == render_catalog(sample_books)
        assert store.config.cache_version == fingerprint(sample_books)
        result = asyncio.run(reconciler.compare_versions())
        assert not result.has_conflict

    def test_keeps_stored_structure(self, reconciler, store, files, sample_books):
        structure = OriginalFileStructure(
            header='<h1>书</h1>\n<ul class="content">',
            footer="</ul>\n<footer>end</footer>",
        )
        store.save_records(RecordSet(books=sample_books, original_structure=structure))

        asyncio.run(reconciler.sync_to_external(create_backup=False))

        content = files.files[CATALOG_PATH]
        assert content.startswith("<h1>书</h1>")
        assert content.endswith("<footer>end</footer>")

    def test_spaced_access_code_does_not_leave_a_conflict(self, reconciler, store, files, sample_books):
        spaced = [sample_books[0].model_copy(update={"extract_code": "ab 12"}), sample_books[1]]
        store.save_records(RecordSet(books=spaced))
        files.files[CATALOG_PATH] = "old"

        assert asyncio.run(reconciler.sync_to_external(create_backup=False))

        result = asyncio.run(reconciler.compare_versions())
        assert not result.has_conflict
        assert result.differences == []

    def test_empty_cache(self, reconciler, files):
        files.files[CATALOG_PATH] = "old"
        assert asyncio.run(reconciler.sync_to_external()) is False
        assert files.files[CATALOG_PATH] == "old"

    def test_not_linked(self, reconciler, store, sample_books):
        store.config = None
        store.save_records(RecordSet(books=sample_books))
        assert asyncio.run(reconciler.sync_to_external()) is False

    def test_permission_denied(self, reconciler, store, files, sample_books):
        store.save_records(RecordSet(books=sample_books))
        files.deny(CATALOG_PATH)
        with pytest.raises(PermissionDeniedError):
            asyncio.run(reconciler.sync_to_external())


class TestResolveConflict:
    def test_abort_has_no_side_effects(self, reconciler, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        edit_cached(store, 0, description="A")
        before = files.files[CATALOG_PATH]

        resolution = ConflictResolution(action=ResolutionAction.ABORT)
        assert asyncio.run(reconciler.resolve_conflict(resolution)) is False
        assert files.files[CATALOG_PATH] == before
        assert store.get_records().books[0].description == "A"

    def test_use_cache(self, reconciler, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        edit_cached(store, 0, description="A")

        resolution = ConflictResolution(action=ResolutionAction.USE_CACHE, create_backup=False)
        assert asyncio.run(reconciler.resolve_conflict(resolution))
        assert not asyncio.run(reconciler.compare_versions()).has_conflict

    def test_use_file(self, reconciler, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        edit_cached(store, 0, description="A")

        resolution = ConflictResolution(action=ResolutionAction.USE_FILE)
        assert asyncio.run(reconciler.resolve_conflict(resolution))
        assert store.get_records().books[0].description == "一个人和一座园子"


class TestManualSync:
    def test_in_sync_writes_nothing(self, reconciler, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        before = dict(files.mtimes)
        assert asyncio.run(reconciler.manual_sync())
        assert files.mtimes == before

    def test_pushes_on_conflict(self, reconciler, store, files, sample_books):
        seed_in_sync(store, files, sample_books)
        edit_cached(store, 1, description="B")

        assert asyncio.run(reconciler.manual_sync())
        assert "<p class=\"text\">B</p>" in files.files[CATALOG_PATH]

    def test_nothing_to_compare(self, reconciler):
        assert asyncio.run(reconciler.manual_sync()) is False


class TestValidation:
    def test_parse_result_warnings(self, reconciler):
        assert reconciler.validate_parse_result([], "《活着》") == [
            "no records were parsed",
            "the file contains book information but nothing was parsed",
        ]
        assert reconciler.validate_parse_result([make_book("1", "甲", "")], "") == [
            "1 record(s) are incomplete"
        ]

    def test_file_structure_problems(self, reconciler):
        good = OriginalFileStructure(header='<ul class="content">', footer="</ul>")
        assert reconciler.validate_file_structure(good) == []
        bad = OriginalFileStructure(header="", footer="<div>")
        assert reconciler.validate_file_structure(bad) == [
            "header is empty",
            "footer has no </ul> tag",
        ]


class TestLocalFiles:
    def test_non_utf8_file_is_a_typed_error(self, tmp_path, store, sample_books):
        target = tmp_path / "index.md"
        target.write_bytes('<ul class="content"><li>作者：史铁生</li></ul>'.encode("gbk"))
        store.save_records(RecordSet(books=sample_books))
        store.config = None
        reconciler = Reconciler(store, LocalFileAccess())
        asyncio.run(reconciler.link_external_file(str(target)))

        with pytest.raises(FileEncodingError) as exc_info:
            asyncio.run(reconciler.compare_versions())
        assert "Unable to read external file" in exc_info.value.message

        with pytest.raises(FileEncodingError):
            asyncio.run(reconciler.sync_from_external())
        assert store.get_records().books == sample_books
