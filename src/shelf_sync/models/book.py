"""Data models for catalog records and the external file's boilerplate."""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

# Fields that carry catalog content (everything except identity and bookkeeping)
CONTENT_FIELDS = (
    "title",
    "author",
    "isbn",
    "cover",
    "external_url",
    "description",
    "download_link",
    "extract_code",
    "publish_date",
)

# Placeholder strings that leak in from loosely typed front-ends
_NULLISH = {"undefined", "null"}

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_field(value: Any, field_name: str) -> str:
    """Normalize a single field value for comparison and fingerprinting.

    None and the literal strings "undefined"/"null" collapse to "", every
    value is trimmed, and the access code loses all internal whitespace.
    """
    if value is None:
        return ""

    normalized = str(value).strip()
    if normalized in _NULLISH:
        return ""

    if field_name == "extract_code":
        normalized = _WHITESPACE_RE.sub("", normalized)

    return normalized


class Book(BaseModel):
    """One catalog entry."""

    id: str
    title: str = ""
    author: str = ""
    isbn: str = ""
    cover: str = ""
    external_url: str = ""  # reference link, e.g. a douban subject page
    description: str = ""
    download_link: str = ""
    extract_code: str = ""
    publish_date: str = ""
    created_at: str | None = None
    updated_at: str | None = None
    sort_order: int | None = None  # lower = earlier

    @field_validator(*CONTENT_FIELDS, mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def normalized(self) -> "Book":
        """Return a copy with every content field normalized."""
        updates = {name: normalize_field(getattr(self, name), name) for name in CONTENT_FIELDS}
        return self.model_copy(update=updates)

    def same_content(self, other: "Book") -> bool:
        """Check whether two records carry the same normalized content."""
        return all(
            normalize_field(getattr(self, name), name)
            == normalize_field(getattr(other, name), name)
            for name in CONTENT_FIELDS
        )

    @property
    def identity(self) -> tuple[str, str]:
        """(title, author) pair used to match records across sources."""
        return (
            normalize_field(self.title, "title"),
            normalize_field(self.author, "author"),
        )


def detect_custom_content(text: str) -> bool:
    """Check whether a chunk of markup embeds script or style blocks."""
    return any(marker in text for marker in ("<script", "<style", "</script>", "</style>"))


class OriginalFileStructure(BaseModel):
    """Boilerplate surrounding the record list in the external file.

    Produced fresh on every parse and replaced wholesale, never edited.
    """

    model_config = ConfigDict(frozen=True)

    header: str  # file start through the record container's opening tag
    footer: str  # record container's closing tag through end of file
    has_custom_content: bool = False
