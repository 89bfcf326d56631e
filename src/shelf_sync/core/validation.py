"""Record validation. Failures become warnings, never rejections."""

import re
from urllib.parse import urlparse

from shelf_sync.models.book import Book

_EXTRACT_CODE_RE = re.compile(r"^[a-zA-Z0-9]{1,8}$")


def is_valid_url(url: str) -> bool:
    """Check that a URL is blank or an absolute http(s) URL."""
    if not isinstance(url, str):
        return False
    if url.strip() == "":
        return True

    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_extract_code(code: str) -> bool:
    """Check that an access code is blank or 1-8 ASCII letters/digits."""
    if not isinstance(code, str):
        return False
    if code.strip() == "":
        return True
    return bool(_EXTRACT_CODE_RE.match(code.strip()))


def validate_book(book: Book) -> list[str]:
    """Return human-readable problems with a record (empty list = valid)."""
    problems: list[str] = []

    if not book.title.strip():
        problems.append("title is empty")
    if not book.author.strip():
        problems.append("author is empty")

    if book.download_link and not is_valid_url(book.download_link):
        problems.append("download link is not a valid URL")
    if book.external_url and not is_valid_url(book.external_url):
        problems.append("reference link is not a valid URL")
    if book.cover and not is_valid_url(book.cover):
        problems.append("cover is not a valid URL")

    if book.extract_code and not is_valid_extract_code(book.extract_code):
        problems.append("access code is malformed")

    return problems
