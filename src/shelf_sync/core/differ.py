"""Enumerate the differences between cached records and the external file."""

import logging

from shelf_sync.core.book_parser import strip_title_decorations
from shelf_sync.core.validation import validate_book
from shelf_sync.models.book import Book, OriginalFileStructure, normalize_field
from shelf_sync.models.sync import ContentDifference, DifferenceKind

log = logging.getLogger(__name__)

# Fields compared between matched records
COMPARED_FIELDS = (
    "description",
    "download_link",
    "extract_code",
    "cover",
    "external_url",
    "publish_date",
)


def match_records(cache_records: list[Book], file_records: list[Book]) -> dict[int, int]:
    """Pair cache records with file records one-to-one.

    Exact (title, author) pairs are taken first; the remaining records are
    paired on decoration-stripped title plus exact author.

    Returns:
        Mapping of cache index to file index
    """
    pairs: dict[int, int] = {}
    taken: set[int] = set()

    def _pair(key) -> None:
        for ci, cache_book in enumerate(cache_records):
            if ci in pairs:
                continue
            wanted = key(cache_book)
            for fi, file_book in enumerate(file_records):
                if fi not in taken and key(file_book) == wanted:
                    pairs[ci] = fi
                    taken.add(fi)
                    break

    _pair(lambda b: b.identity)
    _pair(lambda b: (strip_title_decorations(b.identity[0]), b.identity[1]))
    return pairs


def _validation_warnings(records: list[Book], side: str) -> list[ContentDifference]:
    label = "cache" if side == "cache_data" else "file"
    warnings = []
    for index, book in enumerate(records):
        problems = validate_book(book)
        if not problems:
            continue
        joined = "; ".join(problems)
        warnings.append(
            ContentDifference(
                kind=DifferenceKind.VALIDATION_WARNING,
                field=side,
                new_value=joined,
                record_id=book.id,
                record_title=book.title,
                description=f'{label} record "{book.title}" (index {index}): {joined}',
            )
        )
    return warnings


def compare_records(cache_records: list[Book], file_records: list[Book]) -> list[ContentDifference]:
    """Record-level differences: added, removed, modified, reordered."""
    differences: list[ContentDifference] = []
    pairs = match_records(cache_records, file_records)
    matched_file = set(pairs.values())

    for ci, book in enumerate(cache_records):
        if ci not in pairs:
            differences.append(
                ContentDifference(
                    kind=DifferenceKind.ADDED,
                    field="book",
                    new_value=book.model_dump(),
                    record_id=book.id,
                    record_title=book.title,
                    description=f"Added book: 《{book.title}》",
                )
            )

    for fi, book in enumerate(file_records):
        if fi not in matched_file:
            differences.append(
                ContentDifference(
                    kind=DifferenceKind.REMOVED,
                    field="book",
                    old_value=book.model_dump(),
                    record_id=book.id,
                    record_title=book.title,
                    description=f"Removed book: 《{book.title}》",
                )
            )

    for ci, fi in pairs.items():
        cache_book = cache_records[ci]
        file_book = file_records[fi]
        for name in COMPARED_FIELDS:
            cache_value = normalize_field(getattr(cache_book, name), name)
            file_value = normalize_field(getattr(file_book, name), name)
            if cache_value != file_value:
                differences.append(
                    ContentDifference(
                        kind=DifferenceKind.MODIFIED,
                        field=name,
                        old_value=file_value,
                        new_value=cache_value,
                        record_id=cache_book.id,
                        record_title=cache_book.title,
                        description=f"《{cache_book.title}》: {name} changed",
                    )
                )

    # Only meaningful when both sides hold the same number of records
    if cache_records and len(cache_records) == len(file_records):
        in_order = all(pairs.get(i) == i for i in range(len(cache_records)))
        if not in_order:
            differences.append(
                ContentDifference(
                    kind=DifferenceKind.REORDERED,
                    field="book_order",
                    old_value=[{"id": b.id, "title": b.title} for b in file_records],
                    new_value=[{"id": b.id, "title": b.title} for b in cache_records],
                    description="Book order changed",
                )
            )

    return differences


def compare_structure(
    cache_structure: OriginalFileStructure | None,
    file_structure: OriginalFileStructure | None,
) -> list[ContentDifference]:
    """Boilerplate differences. Skipped when either side has no structure."""
    if cache_structure is None or file_structure is None:
        return []

    differences = []
    if cache_structure.header != file_structure.header:
        differences.append(
            ContentDifference(
                kind=DifferenceKind.STRUCTURE_CHANGED,
                field="header",
                old_value=file_structure.header,
                new_value=cache_structure.header,
                description="File header changed (front matter or page setup)",
            )
        )
    if cache_structure.footer != file_structure.footer:
        differences.append(
            ContentDifference(
                kind=DifferenceKind.STRUCTURE_CHANGED,
                field="footer",
                old_value=file_structure.footer,
                new_value=cache_structure.footer,
                description="File footer changed (scripts or styles)",
            )
        )
    if cache_structure.has_custom_content != file_structure.has_custom_content:
        differences.append(
            ContentDifference(
                kind=DifferenceKind.STRUCTURE_CHANGED,
                field="custom_content",
                old_value=file_structure.has_custom_content,
                new_value=cache_structure.has_custom_content,
                description=(
                    "Custom content (JS/CSS) added"
                    if cache_structure.has_custom_content
                    else "Custom content (JS/CSS) removed"
                ),
            )
        )
    return differences


def compare_all_content(
    cache_records: list[Book],
    file_records: list[Book],
    cache_structure: OriginalFileStructure | None,
    file_structure: OriginalFileStructure | None,
) -> list[ContentDifference]:
    """Every difference between the cache and the parsed file.

    Validation warnings come first and never make a conflict on their own.
    """
    differences = _validation_warnings(cache_records, "cache_data")
    differences += _validation_warnings(file_records, "file_data")
    differences += compare_records(cache_records, file_records)
    differences += compare_structure(cache_structure, file_structure)

    log.debug(f"Found {len(differences)} difference(s)")
    return differences
