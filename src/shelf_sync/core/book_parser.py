"""Tolerant parsing of the catalog page with cascading strategies."""

import html
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from bs4 import BeautifulSoup

from shelf_sync.core.hashing import rolling_hash
from shelf_sync.core.html_generator import DEFAULT_FOOTER, DEFAULT_HEADER
from shelf_sync.models.book import Book, OriginalFileStructure, detect_custom_content
from shelf_sync.models.sync import ParseStrategyName

log = logging.getLogger(__name__)


# =============================================================================
# Result types
# =============================================================================


@dataclass
class ExtractedFields:
    """Raw field values pulled out of one record block."""

    title: str = ""
    author: str = ""
    cover: str = ""
    external_url: str = ""
    description: str = ""
    download_link: str = ""
    # None = no access-code label at all, "" = label present but empty
    extract_code: str | None = None
    publish_date: str = ""


@dataclass
class ParseAttempt:
    """What a single strategy produced."""

    records: list[Book]
    structure: OriginalFileStructure


@dataclass
class ParseResult:
    """Final parse outcome for a file."""

    records: list[Book]
    structure: OriginalFileStructure
    strategy: ParseStrategyName | None = None  # None when every strategy came up empty
    warnings: list[str] = field(default_factory=list)


@dataclass
class ParseStrategy:
    """Configuration for one parse strategy."""

    name: ParseStrategyName
    fn: Callable[[str, list[Book]], ParseAttempt]
    description: str


# =============================================================================
# Field extraction patterns (first match wins, in order)
# =============================================================================

EXTERNAL_URL_PATTERNS = [
    re.compile(r'<a\s+href="([^"]*)"[^>]*class="book-container"'),
    re.compile(r'href="(https?://book\.douban\.com/subject/[^"]+)"'),
    re.compile(r"href='(https?://book\.douban\.com/subject/[^']+)'"),
    re.compile(r"douban\.com/subject/(\d+)"),
]

TITLE_PATTERNS = [
    re.compile(r'title="([^"]*)"'),
    re.compile(r"title='([^']*)'"),
    re.compile(r"<h[1-6][^>]*>《([^》]+)》</h[1-6]>"),
    re.compile(r"<h[1-6][^>]*>([^<]+)</h[1-6]>"),
    re.compile(r"《([^》]+)》"),
    re.compile(r"<[^>]*class=[^>]*title[^>]*>([^<]+)</[^>]*>"),
    re.compile(r"<strong[^>]*>([^<]+)</strong>"),
]

COVER_PATTERNS = [
    re.compile(r'<div class="book"[^>]*>\s*<img\s+src="([^"]*)"'),
    re.compile(r'src="([^"]+\.(?:jpg|jpeg|png|gif|webp)[^"]*)"[^>]*alt="[^"]*书[^"]*"', re.I),
    re.compile(r'src="([^"]+\.(?:jpg|jpeg|png|gif|webp)[^"]*)"', re.I),
    re.compile(r"src='([^']+\.(?:jpg|jpeg|png|gif|webp)[^']*)'", re.I),
]

DESCRIPTION_PATTERNS = [
    re.compile(r"""<p[^>]*class=["']text["'][^>]*>([^<]*)</p>"""),
    re.compile(r"""<p[^>]*class=["'](?![^"']*pwd)[^"']*text[^"']*["'][^>]*>([^<]+)</p>"""),
    re.compile(r"<p[^>]*>([^<]{20,})</p>"),
    re.compile(r"<div[^>]*class=[^>]*desc[^>]*>([^<]+)</div>"),
    re.compile(r"<span[^>]*class=[^>]*desc[^>]*>([^<]+)</span>"),
]

AUTHOR_PATTERNS = [
    re.compile(r"作者：([^<\n]*)(?=<|\n|$)"),
    re.compile(r"作者:([^<\n]*)(?=<|\n|$)"),
    re.compile(r"著者：([^<\n]+)(?=<|\n|$)"),
    re.compile(r"\bby ([^<\n]+)(?=<|\n|$)", re.I),
    re.compile(r"<[^>]*class=[^>]*author[^>]*>([^<]+)</[^>]*>"),
]

PUBLISH_DATE_PATTERNS = [
    re.compile(r"出版时间：([^<\n]*)(?=<|\n|$)"),
    re.compile(r"出版时间:([^<\n]*)(?=<|\n|$)"),
    re.compile(r"出版：([^<\n]+)(?=<|\n|$)"),
    re.compile(r"(\d{4}年\d{1,2}月|\d{4}-\d{1,2}-\d{1,2}|\d{4}/\d{1,2}/\d{1,2})"),
]

DOWNLOAD_PATTERNS = [
    re.compile(r'href="([^"]*)"[^>]*>📥 下载</a>'),
    re.compile(r'href="([^"]+)"[^>]*>下载</a>'),
    re.compile(r'href="([^"]+)"[^>]*>[^<]*下载[^<]*</a>'),
    re.compile(r'<a[^>]*href="([^"]+)"[^>]*>[^<]*(?:下载|download)[^<]*</a>', re.I),
]

EXTRACT_CODE_PATTERNS = [
    re.compile(r"""<p\s+class=["']pwd-text["'][^>]*>[^<]*?提取码[：:]\s*([^<\s]+)[^<]*</p>""", re.I),
    re.compile(r"提取码[：:][ \t]*([^<\s]+)(?=\s*(?:<|$))"),
    re.compile(r"密码[：:][ \t]*([^<\s]+)(?=\s*(?:<|$))"),
    re.compile(r"code[：:][ \t]*([^<\s]+)(?=\s*(?:<|$))", re.I),
]

# Access-code label with nothing after it
EMPTY_EXTRACT_CODE_PATTERNS = [
    re.compile(r"""<p\s+class=["']pwd-text["'][^>]*>[^<]*提取码[：:]""", re.I),
    re.compile(r"提取码[：:]\s*(?:<|$)"),
]

# Textual hints that a chunk of markup describes a book
BOOK_SIGNAL_PATTERNS = [
    re.compile(r"douban\.com"),
    re.compile(r"作者："),
    re.compile(r"出版时间："),
    re.compile(r"提取码："),
    re.compile(r"下载"),
    re.compile(r"《.*?》"),
    re.compile(r'title=.*?书.*?"'),
]

# Decorations stripped before fuzzy title comparison
TITLE_DECORATION_RE = re.compile(r"[《》「」『』]")


def _first_match(patterns: list[re.Pattern], text: str) -> str | None:
    """Return group 1 of the first pattern that matches."""
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def extract_fields(block_html: str, unescape: bool = False) -> ExtractedFields:
    """Extract every known field from one record block.

    Args:
        block_html: Markup of a single record
        unescape: Decode HTML entities in the extracted values (for markup
            that went through an HTML serializer)
    """
    info = ExtractedFields()

    external_url = _first_match(EXTERNAL_URL_PATTERNS, block_html)
    if external_url:
        # A bare subject number only comes from the last pattern
        if external_url.isdigit():
            external_url = f"https://book.douban.com/subject/{external_url}/"
        info.external_url = external_url.strip()

    info.title = (_first_match(TITLE_PATTERNS, block_html) or "").strip()
    info.cover = (_first_match(COVER_PATTERNS, block_html) or "").strip()
    info.description = (_first_match(DESCRIPTION_PATTERNS, block_html) or "").strip()
    info.author = (_first_match(AUTHOR_PATTERNS, block_html) or "").strip()
    info.publish_date = (_first_match(PUBLISH_DATE_PATTERNS, block_html) or "").strip()
    info.download_link = (_first_match(DOWNLOAD_PATTERNS, block_html) or "").strip()

    code = _first_match(EXTRACT_CODE_PATTERNS, block_html)
    if code is not None:
        info.extract_code = code.strip()
    elif any(p.search(block_html) for p in EMPTY_EXTRACT_CODE_PATTERNS):
        info.extract_code = ""

    if unescape:
        for name in ("title", "author", "cover", "external_url", "description",
                     "download_link", "publish_date"):
            setattr(info, name, html.unescape(getattr(info, name)))
        if info.extract_code:
            info.extract_code = html.unescape(info.extract_code)

    return info


def contains_book_signals(text: str) -> bool:
    """Check whether markup carries any book-like textual signal."""
    return any(pattern.search(text) for pattern in BOOK_SIGNAL_PATTERNS)


# =============================================================================
# Record identity
# =============================================================================


def generate_book_id(title: str, author: str) -> str:
    """Deterministic id for a record that matches nothing in the cache."""
    return str(abs(rolling_hash(f"{title}-{author}")))


def strip_title_decorations(title: str) -> str:
    return TITLE_DECORATION_RE.sub("", title).strip()


def match_existing(
    title: str, author: str, external_url: str, existing: list[Book] | None
) -> Book | None:
    """Find the cached record a parsed record corresponds to.

    Tries exact title+author, then the reference URL, then the title with
    bracket decorations stripped plus an exact author.
    """
    if not existing:
        return None

    for book in existing:
        if book.title == title and book.author == author:
            return book

    if external_url and external_url.strip():
        for book in existing:
            if book.external_url == external_url:
                return book

    bare_title = strip_title_decorations(title)
    for book in existing:
        if strip_title_decorations(book.title) == bare_title and book.author == author:
            return book

    return None


def find_or_generate_id(
    title: str, author: str, external_url: str, existing: list[Book] | None
) -> str:
    """Reuse a cached record's id when possible, otherwise synthesize one."""
    match = match_existing(title, author, external_url, existing)
    if match:
        return match.id
    return generate_book_id(title, author)


def parse_block(
    block_html: str, existing: list[Book] | None, unescape: bool = False
) -> Book | None:
    """Build a record from one block, or None when it has no title."""
    info = extract_fields(block_html, unescape=unescape)
    if not info.title:
        log.debug("Skipping block without a title")
        return None

    match = match_existing(info.title, info.author, info.external_url, existing)
    now = datetime.now().isoformat(timespec="seconds")

    book = Book(
        id=match.id if match else generate_book_id(info.title, info.author),
        title=info.title,
        author=info.author,
        # The page has no ISBN slot, keep what the cache knows
        isbn=match.isbn if match else "",
        cover=info.cover,
        external_url=info.external_url,
        description=info.description,
        download_link=info.download_link,
        extract_code=info.extract_code or "",
        publish_date=info.publish_date,
        created_at=(match.created_at if match and match.created_at else now),
        updated_at=now,
    )

    if match and match.updated_at and book.same_content(match):
        book.updated_at = match.updated_at

    return book


# =============================================================================
# File structure
# =============================================================================

_CONTAINER_TAG_RE = re.compile(r"<(ul|ol|div)[^>]*>", re.I)


def extract_file_structure(content: str) -> OriginalFileStructure:
    """Best-effort header/footer split when no record container was found.

    The header runs through the first list or container tag, the footer
    starts at the last closing tag. Without either, the default boilerplate
    is used so the generator always has something to emit.
    """
    container = _CONTAINER_TAG_RE.search(content)
    last_close = content.rfind("</")

    if container is None or last_close == -1:
        return OriginalFileStructure(
            header=DEFAULT_HEADER,
            footer=DEFAULT_FOOTER,
            has_custom_content=detect_custom_content(content),
        )

    header = content[: container.end()]
    footer = content[last_close:] if last_close >= container.end() else ""

    return OriginalFileStructure(
        header=header or DEFAULT_HEADER,
        footer=footer or DEFAULT_FOOTER,
        has_custom_content=detect_custom_content(footer),
    )


# =============================================================================
# Strategy 1: exact container and block layout
# =============================================================================

STRICT_CONTAINER_OPEN = '<ul class="content">'
STRICT_CONTAINER_CLOSE = "</ul>"
STRICT_BLOCK_RE = re.compile(r'<li>\s*<div class="info">([\s\S]*?)</div>\s*</div>\s*</li>')


def _footer_start(content: str, close_at: int, floor: int) -> int:
    """Back up over the indentation in front of the container's closing tag."""
    start = close_at
    while start > floor and content[start - 1] in " \t":
        start -= 1
    return start


def parse_strict(content: str, existing: list[Book] | None = None) -> ParseAttempt:
    """Parse the exact layout the generator writes."""
    start = content.find(STRICT_CONTAINER_OPEN)
    end = content.find(STRICT_CONTAINER_CLOSE, start) if start != -1 else -1

    if start == -1 or end == -1:
        log.debug("Strict parse: record container not found")
        return ParseAttempt(records=[], structure=extract_file_structure(content))

    header_end = content.index(">", start) + 1
    header = content[:header_end]
    footer = content[_footer_start(content, end, header_end):]
    body = content[header_end:end]

    records = []
    for match in STRICT_BLOCK_RE.finditer(body):
        book = parse_block(match.group(1), existing)
        if book:
            records.append(book)

    return ParseAttempt(
        records=records,
        structure=OriginalFileStructure(
            header=header,
            footer=footer,
            has_custom_content=detect_custom_content(footer),
        ),
    )


# =============================================================================
# Strategy 2: loose container, progressively looser blocks
# =============================================================================

RELAXED_CONTAINER_RE = re.compile(r"<ul[^>]*class=[^>]*content[^>]*>[\s\S]*?</ul>", re.I)

RELAXED_BLOCK_PATTERNS = [
    STRICT_BLOCK_RE,
    re.compile(r"<li[^>]*>([\s\S]*?)</li>", re.I),
    re.compile(r"<div[^>]*class=[^>]*info[^>]*>([\s\S]*?)</div>", re.I),
]


def parse_relaxed(content: str, existing: list[Book] | None = None) -> ParseAttempt:
    """Parse a hand-edited variant of the layout."""
    container = RELAXED_CONTAINER_RE.search(content)
    if container is None:
        log.debug("Relaxed parse: no list with a content class")
        return ParseAttempt(records=[], structure=extract_file_structure(content))

    list_html = container.group(0)
    header = content[: container.start() + list_html.index(">") + 1]
    header_end = len(header)
    close_at = container.end() - len(STRICT_CONTAINER_CLOSE)
    footer = content[_footer_start(content, close_at, header_end):]

    records: list[Book] = []
    for pattern in RELAXED_BLOCK_PATTERNS:
        for match in pattern.finditer(list_html):
            book = parse_block(match.group(1), existing)
            if book:
                records.append(book)

        if records:
            log.debug(f"Relaxed parse: matched blocks with {pattern.pattern}")
            break

    return ParseAttempt(
        records=records,
        structure=OriginalFileStructure(
            header=header,
            footer=footer,
            has_custom_content=detect_custom_content(footer),
        ),
    )


# =============================================================================
# Strategy 3: any element that looks like a book
# =============================================================================

# Element queries in priority order; the first query that yields books wins
GENERIC_ELEMENT_QUERIES: list[dict] = [
    {"href": re.compile(r"douban\.com")},
    {"title": True},
    {"name": "li"},
    {"name": "div"},
]


def parse_generic(content: str, existing: list[Book] | None = None) -> ParseAttempt:
    """Scan the whole document for elements carrying book signals."""
    soup = BeautifulSoup(content, "lxml")
    records: list[Book] = []
    seen: set[tuple[str, str]] = set()

    for query in GENERIC_ELEMENT_QUERIES:
        for element in soup.find_all(**query):
            element_html = str(element)
            if not contains_book_signals(element_html):
                continue

            book = parse_block(element_html, existing, unescape=True)
            if book is None or (book.title, book.author) in seen:
                continue

            seen.add((book.title, book.author))
            records.append(book)

        if records:
            log.debug(f"Generic parse: matched elements with {query}")
            break

    return ParseAttempt(records=records, structure=extract_file_structure(content))


# =============================================================================
# Cascade
# =============================================================================

PARSE_STRATEGIES: list[ParseStrategy] = [
    ParseStrategy(
        name=ParseStrategyName.STRICT,
        fn=parse_strict,
        description="Exact record container and block layout",
    ),
    ParseStrategy(
        name=ParseStrategyName.RELAXED,
        fn=parse_relaxed,
        description="Loose container match, looser block patterns",
    ),
    ParseStrategy(
        name=ParseStrategyName.GENERIC,
        fn=parse_generic,
        description="Any element with book-like signals",
    ),
]


def parse_catalog(content: str, existing: list[Book] | None = None) -> ParseResult:
    """Parse the external file into records plus its boilerplate.

    Strategies run in order and the first one that yields records wins.
    Never raises: on total failure the result has no records and a
    best-effort structure.

    Args:
        content: Full text of the external file
        existing: Cached records, used to keep ids stable across edits
    """
    existing = existing or []
    log.debug(f"Parsing catalog file ({len(content)} chars)")

    for strategy in PARSE_STRATEGIES:
        try:
            attempt = strategy.fn(content, existing)
        except Exception as e:
            log.warning(f"Parse strategy {strategy.name.value} failed with error: {e}")
            continue

        if attempt.records:
            log.info(
                f"Parse strategy {strategy.name.value} found {len(attempt.records)} book(s)"
            )
            result = ParseResult(
                records=attempt.records,
                structure=attempt.structure,
                strategy=strategy.name,
            )
            result.warnings = _incomplete_record_warnings(result.records)
            return result

        log.debug(f"Parse strategy {strategy.name.value}: no records")

    log.warning("All parse strategies came up empty")
    return ParseResult(records=[], structure=extract_file_structure(content))


def _incomplete_record_warnings(records: list[Book]) -> list[str]:
    warnings = []
    for index, book in enumerate(records):
        if not book.author:
            warnings.append(f'Book "{book.title}" (index {index}) has no author')
    return warnings
