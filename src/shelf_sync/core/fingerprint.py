"""Version fingerprint over a record list's canonical content."""

import json

from shelf_sync.core.hashing import rolling_hash, to_base36
from shelf_sync.models.book import Book, OriginalFileStructure, normalize_field

# Key order is part of the fingerprint, keep it stable
FINGERPRINT_FIELDS = (
    "title",
    "author",
    "description",
    "download_link",
    "extract_code",
    "cover",
    "external_url",
    "publish_date",
    "isbn",
)


def canonical_summary(
    records: list[Book], structure: OriginalFileStructure | None
) -> str:
    """Serialize the fingerprinted content deterministically."""
    books = []
    for position, book in enumerate(records):
        entry = {name: normalize_field(getattr(book, name), name) for name in FINGERPRINT_FIELDS}
        entry["position"] = position
        books.append(entry)

    summary = {
        "books": books,
        "book_count": len(records),
        "has_custom_content": bool(structure.has_custom_content) if structure else False,
    }
    return json.dumps(summary, ensure_ascii=False, separators=(",", ":"))


def fingerprint(
    records: list[Book], structure: OriginalFileStructure | None = None
) -> str:
    """Return `<base36 hash>-<record count>`.

    Record order is part of the content: the same records in a different
    order produce a different fingerprint.
    """
    digest = abs(rolling_hash(canonical_summary(records, structure)))
    return f"{to_base36(digest)}-{len(records)}"
