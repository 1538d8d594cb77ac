"""Interfaces for the collaborators the index engine reads from."""

from __future__ import annotations

from typing import AsyncIterator, Optional, Protocol

from .models import PreviewAsset, PrimaryRecord


class PrimaryStore(Protocol):
    """Read-only view of the primary document store."""

    def stream_all(self) -> AsyncIterator[PrimaryRecord]:
        """Yield every live record without loading the corpus into memory."""
        ...

    async def get_by_id(self, record_id: str) -> Optional[PrimaryRecord]:
        """Return the record with ``record_id`` (possibly marked deleted) or ``None``."""
        ...


class AssetSource(Protocol):
    """Resolve preview asset references to raw bytes."""

    async def read(self, asset: PreviewAsset) -> bytes:
        """Return the asset bytes.

        Raises:
            AssetNotFoundError: If the reference cannot be resolved.
            AssetCorruptError: If the bytes exist but cannot be read.
        """
        ...


__all__ = ["PrimaryStore", "AssetSource"]
