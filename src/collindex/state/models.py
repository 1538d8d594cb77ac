"""Bookkeeping models persisted alongside the index."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

SCHEMA_VERSION = "v1"


class CollectionIndexState(BaseModel):
    """Per-record bookkeeping consulted to decide whether re-indexing is needed.

    Attributes:
        record_id: Identifier of the indexed primary record.
        indexed_at: When the record was last written to the index.
        source_updated_at: The record's ``updated_at`` at the time of that write.
        child_count: Child item count at index time.
        cached_derivative_count: Cached derivative count at index time.
        has_first_thumbnail: Whether a thumbnail entry was cached for the record.
        first_thumbnail_source_path: Path of the representative asset at index time.
        library_id: Owning library, kept so secondary entries can be removed later.
        collection_type: Collection type, kept for the same reason.
        schema_version: Layout version of the index entries written for the record.
    """

    record_id: str
    indexed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_updated_at: datetime
    child_count: int = 0
    cached_derivative_count: int = 0
    has_first_thumbnail: bool = False
    first_thumbnail_source_path: Optional[str] = None
    library_id: Optional[str] = None
    collection_type: Optional[str] = None
    schema_version: str = SCHEMA_VERSION

    @field_validator("indexed_at", "source_updated_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


__all__ = ["SCHEMA_VERSION", "CollectionIndexState"]
