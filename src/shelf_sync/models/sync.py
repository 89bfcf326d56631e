"""Data models for reconciliation state and comparison results."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ParseStrategyName(str, Enum):
    """Parse strategy that produced a record list."""

    STRICT = "strict"
    RELAXED = "relaxed"
    GENERIC = "generic"


class DifferenceKind(str, Enum):
    """Kind of divergence between the cache and the external file."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    REORDERED = "reordered"
    STRUCTURE_CHANGED = "structure_changed"
    VALIDATION_WARNING = "validation_warning"


class ContentDifference(BaseModel):
    """One unit of detected divergence. Transient, never persisted."""

    kind: DifferenceKind
    field: str
    old_value: Any = None  # value on the external-file side
    new_value: Any = None  # value on the cache side
    record_id: str | None = None
    record_title: str | None = None
    description: str = ""

    @property
    def is_warning(self) -> bool:
        return self.kind == DifferenceKind.VALIDATION_WARNING


class SyncConfig(BaseModel):
    """Link between the cache and one external file."""

    external_file_path: str = ""
    last_sync_time: datetime | None = None
    cache_version: str = ""  # fingerprint of the cache at the last sync
    auto_version_check: bool = True

    @property
    def is_linked(self) -> bool:
        return bool(self.external_file_path.strip())


class VersionCompareResult(BaseModel):
    """Outcome of comparing the cache with the external file."""

    has_conflict: bool
    cache_count: int
    file_count: int
    cache_modified_time: datetime | None = None
    file_modified_time: datetime | None = None
    differences: list[ContentDifference] = Field(default_factory=list)
    conflict_type: str = "none"  # "content" | "none"
    cache_fingerprint: str = ""
    file_fingerprint: str = ""

    @property
    def meaningful_differences(self) -> list[ContentDifference]:
        """Differences that drive the conflict verdict."""
        return [d for d in self.differences if not d.is_warning]

    @property
    def warnings(self) -> list[ContentDifference]:
        return [d for d in self.differences if d.is_warning]


class ResolutionAction(str, Enum):
    """Direction in which a conflict is resolved."""

    USE_CACHE = "use_cache"
    USE_FILE = "use_file"
    ABORT = "abort"


class ConflictResolution(BaseModel):
    """User's choice for resolving a conflict."""

    action: ResolutionAction
    create_backup: bool = True
