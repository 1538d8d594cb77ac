"""Primary record models consumed (read-only) by the index engine."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PreviewAsset(BaseModel):
    """Preview image descriptor embedded in a primary record.

    Attributes:
        path: Byte-source reference resolved by the asset source.
        width: Pixel width recorded for the asset.
        height: Pixel height recorded for the asset.
        byte_size: Stored size of the asset in bytes.
        is_direct: True when the asset is an unmodified original rather than a derivative.
        sort_index: Position of the asset within the record.
        format: Image format of the stored bytes.
    """

    path: str
    width: int = 0
    height: int = 0
    byte_size: int = 0
    is_direct: bool = False
    sort_index: int = 0
    format: str = "jpeg"


class PrimaryRecord(BaseModel):
    """Collection document owned by the primary store.

    Attributes:
        id: Unique record identifier.
        name: Display name.
        sort_key: Numeric key ordering the primary index.
        updated_at: Monotonically increasing modification timestamp.
        created_at: Creation timestamp when known.
        library_id: Owning library, used for secondary indexes.
        type: Collection type, used for per-type secondary indexes.
        path: Source location of the collection.
        child_count: Number of child items in the collection.
        cached_derivative_count: Number of cached derivatives generated for the collection.
        total_size: Total byte size of the collection's items.
        previews: Embedded preview asset descriptors.
        deleted: Soft-deletion marker.
    """

    id: str
    name: str = ""
    sort_key: float = 0.0
    updated_at: datetime
    created_at: Optional[datetime] = None
    library_id: Optional[str] = None
    type: Optional[str] = None
    path: Optional[str] = None
    child_count: int = 0
    cached_derivative_count: int = 0
    total_size: int = 0
    previews: List[PreviewAsset] = Field(default_factory=list)
    deleted: bool = False

    @field_validator("updated_at", "created_at")
    @classmethod
    def _normalize_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value) if value is not None else None

    def representative_preview(self) -> Optional[PreviewAsset]:
        """Return the preview shown for the record in lists and grids.

        Returns:
            Optional[PreviewAsset]: The valid preview with the lowest sort index
            (earliest in the list on ties), or ``None`` when no preview has a path.
        """
        best: Optional[PreviewAsset] = None
        for asset in self.previews:
            if not asset.path:
                continue
            if best is None or asset.sort_index < best.sort_index:
                best = asset
        return best


__all__ = ["PreviewAsset", "PrimaryRecord"]
