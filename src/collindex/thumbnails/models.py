"""Thumbnail payloads stored in the index hash map."""

from __future__ import annotations

import base64
from enum import Enum
from typing import Optional

from pydantic import BaseModel

_CONTENT_TYPES = {
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "bmp": "image/bmp",
}


class ResizeReason(str, Enum):
    """Why an asset was resized before caching."""

    DIRECT_ASSET = "direct_asset"
    DIMENSIONS = "dimensions"
    BYTE_SIZE = "byte_size"


class ThumbnailCacheEntry(BaseModel):
    """Encoded preview blob plus the metadata needed to serve it.

    Attributes:
        format: Image format of ``data``.
        quality: Encoder quality when the blob was re-encoded, otherwise ``None``.
        width: Pixel width of the cached blob.
        height: Pixel height of the cached blob.
        byte_size: Length of the decoded blob.
        resized: Whether the blob was produced by resizing the source asset.
        source_path: Reference of the asset the blob was derived from.
        data: Base64-encoded image bytes.
    """

    format: str
    quality: Optional[int] = None
    width: int = 0
    height: int = 0
    byte_size: int
    resized: bool = False
    source_path: str
    data: str

    @classmethod
    def from_bytes(
        cls,
        payload: bytes,
        *,
        format: str,
        width: int,
        height: int,
        source_path: str,
        resized: bool = False,
        quality: Optional[int] = None,
    ) -> "ThumbnailCacheEntry":
        return cls(
            format=format.lower(),
            quality=quality,
            width=width,
            height=height,
            byte_size=len(payload),
            resized=resized,
            source_path=source_path,
            data=base64.b64encode(payload).decode("ascii"),
        )

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES.get(self.format.lower(), "image/jpeg")

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    def data_url(self) -> str:
        """Return the blob as a ``data:`` URL ready for an ``<img>`` tag."""
        return f"data:{self.content_type};base64,{self.data}"


__all__ = ["ResizeReason", "ThumbnailCacheEntry"]
