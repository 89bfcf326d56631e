"""Cache data models."""

from datetime import datetime

from pydantic import BaseModel, Field

from shelf_sync.models.book import Book, OriginalFileStructure


class CurrentFile(BaseModel):
    """External file the records were last loaded from or written to."""

    file_name: str
    file_path: str


class RecordSet(BaseModel):
    """Persisted cache document: the records plus the file's boilerplate."""

    books: list[Book] = Field(default_factory=list)
    original_structure: OriginalFileStructure | None = None
    current_file: CurrentFile | None = None
    saved_at: datetime | None = None
