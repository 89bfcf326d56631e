"""Shared fixtures."""

import asyncio

import pytest

from shelf_sync.cache.manager import InMemoryCatalogStore
from shelf_sync.cache.models import RecordSet
from shelf_sync.config import SyncSettings
from shelf_sync.core.book_parser import parse_catalog
from shelf_sync.core.file_access import InMemoryFileAccess
from shelf_sync.core.html_generator import render_catalog
from shelf_sync.core.reconciler import Reconciler
from shelf_sync.models.book import Book
from shelf_sync.models.sync import SyncConfig

CATALOG_PATH = "/blog/source/books/index.md"


def make_book(book_id: str, title: str, author: str, **fields) -> Book:
    return Book(id=book_id, title=title, author=author, **fields)


@pytest.fixture
def sample_books() -> list[Book]:
    return [
        make_book(
            "1",
            "我与地坛",
            "史铁生",
            cover="https://img.example.com/ditan.jpg",
            external_url="https://book.douban.com/subject/1084165/",
            description="一个人和一座园子",
            download_link="https://pan.example.com/s/ditan",
            extract_code="ab12",
            publish_date="2011年1月",
            created_at="2024-01-01T10:00:00",
            updated_at="2024-01-01T10:00:00",
        ),
        make_book(
            "2",
            "活着",
            "余华",
            cover="https://img.example.com/huozhe.jpg",
            external_url="https://book.douban.com/subject/4913064/",
            description="福贵的一生",
            download_link="https://pan.example.com/s/huozhe",
            extract_code="",
            publish_date="2012年8月",
            created_at="2024-01-02T10:00:00",
            updated_at="2024-01-02T10:00:00",
        ),
    ]


@pytest.fixture
def settings(tmp_path) -> SyncSettings:
    return SyncSettings(config_dir=tmp_path / "home", read_timeout=5.0, manual_check_timeout=5.0)


@pytest.fixture
def files() -> InMemoryFileAccess:
    return InMemoryFileAccess()


@pytest.fixture
def store() -> InMemoryCatalogStore:
    return InMemoryCatalogStore(config=SyncConfig(external_file_path=CATALOG_PATH))


@pytest.fixture
def reconciler(store, files, settings) -> Reconciler:
    return Reconciler(store=store, files=files, settings=settings)


def seed_in_sync(store: InMemoryCatalogStore, files: InMemoryFileAccess, books: list[Book]) -> str:
    """Write `books` to the catalog file and cache them with the parsed structure."""
    content = render_catalog(books)
    files.files[CATALOG_PATH] = content
    structure = parse_catalog(content, books).structure
    store.save_records(RecordSet(books=books, original_structure=structure))
    return content


class SlowFileAccess(InMemoryFileAccess):
    """Reads take `delay` seconds."""

    def __init__(self, delay: float, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay

    async def read_text(self, path: str) -> str:
        await asyncio.sleep(self.delay)
        return await super().read_text(path)
