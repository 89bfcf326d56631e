"""Data models."""

from shelf_sync.models.book import (
    CONTENT_FIELDS,
    Book,
    OriginalFileStructure,
    detect_custom_content,
    normalize_field,
)
from shelf_sync.models.sync import (
    ConflictResolution,
    ContentDifference,
    DifferenceKind,
    ParseStrategyName,
    ResolutionAction,
    SyncConfig,
    VersionCompareResult,
)

__all__ = [
    # Record models
    "CONTENT_FIELDS",
    "Book",
    "OriginalFileStructure",
    "detect_custom_content",
    "normalize_field",
    # Sync models
    "ConflictResolution",
    "ContentDifference",
    "DifferenceKind",
    "ParseStrategyName",
    "ResolutionAction",
    "SyncConfig",
    "VersionCompareResult",
]
