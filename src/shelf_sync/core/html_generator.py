"""Render a record list back into the external file's markup."""

from shelf_sync.models.book import Book, OriginalFileStructure, normalize_field

# Used when the external file has no recognizable structure of its own
DEFAULT_HEADER = """---
title: 书单
date: 2024-11-27 10:33:03
comment: true
---
<div id="book">
    <div class="page">
        <ul class="content">"""

DEFAULT_FOOTER = """        </ul>
    </div>
</div>"""

BOOK_TEMPLATE = """            <!-- 书籍{title} -->
            <li>
                <div class="info">
                    <a href="{external_url}" target="_blank" rel="noopener noreferrer" class="book-container">
                        <div class="book" title="{title}">
                            <img src="{cover}" alt="{title}">
                        </div>
                    </a>
                    <div class="info-card">
                        <div class="hidden-content">
                            <p class="text">{description}</p>
                        </div>
                        <h3>《{title}》</h3>
                        <p>作者：{author}</p>
                        <p>出版时间：{publish_date}</p>
                        <p>
                            <a href="{download_link}" target="_blank" rel="noopener noreferrer">📥 下载</a>
                        </p>
                        <p class="pwd-text">
                            提取码：{extract_code}
                        </p>
                    </div>
                </div>
            </li>"""


def default_structure() -> OriginalFileStructure:
    """Boilerplate for a catalog page that has never been parsed."""
    return OriginalFileStructure(
        header=DEFAULT_HEADER,
        footer=DEFAULT_FOOTER,
        has_custom_content=False,
    )


def render_book(book: Book) -> str:
    """Render one record as a list item block.

    The access code is written without internal whitespace; the parser reads it
    up to the first blank.
    """
    return BOOK_TEMPLATE.format(
        title=book.title,
        author=book.author,
        cover=book.cover,
        external_url=book.external_url,
        description=book.description,
        download_link=book.download_link,
        extract_code=normalize_field(book.extract_code, "extract_code"),
        publish_date=book.publish_date,
    )


def render_catalog(
    records: list[Book], structure: OriginalFileStructure | None = None
) -> str:
    """Render the whole external file.

    The header and footer are emitted byte-for-byte; only the record blocks
    between them are regenerated.
    """
    header = structure.header if structure and structure.header else DEFAULT_HEADER
    footer = structure.footer if structure and structure.footer else DEFAULT_FOOTER

    body = "\n".join(render_book(book) for book in records)
    return header + "\n" + body + "\n" + footer
