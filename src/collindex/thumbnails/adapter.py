"""Decide whether preview assets need resizing before they enter the index."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from collindex.records.base import AssetSource
from collindex.records.models import PreviewAsset

from .models import ResizeReason, ThumbnailCacheEntry
from .resizer import ImageResizer, PillowResizer, ResizeError
from .settings import ThumbnailSettingsProvider

LOGGER = logging.getLogger(__name__)


class ThumbnailCacheAdapter:
    """Produce bounded-size thumbnail blobs for the index hash map.

    The resize decision only looks at asset metadata. Bytes are read once the
    decision is made, and the resizer runs in a worker thread.
    """

    def __init__(
        self,
        asset_source: AssetSource,
        settings: ThumbnailSettingsProvider,
        resizer: Optional[ImageResizer] = None,
    ) -> None:
        self._assets = asset_source
        self._settings = settings
        self._resizer = resizer or PillowResizer()

    def resize_reason(self, asset: PreviewAsset) -> Optional[ResizeReason]:
        """Return why ``asset`` must be resized, or ``None`` to cache it unmodified.

        Checks run in order and the first match wins: direct originals, then
        dimensions strictly above the threshold, then byte size strictly above it.
        """
        settings = self._settings.get()
        if asset.is_direct:
            return ResizeReason.DIRECT_ASSET
        if asset.width > settings.max_width or asset.height > settings.max_height:
            return ResizeReason.DIMENSIONS
        if asset.byte_size > settings.max_bytes:
            return ResizeReason.BYTE_SIZE
        return None

    async def prepare_for_cache(self, asset: PreviewAsset) -> ThumbnailCacheEntry:
        """Return an index-ready thumbnail for ``asset``.

        Args:
            asset: Representative preview of a record.

        Returns:
            ThumbnailCacheEntry: Resized blob when a resize was required and
            succeeded without growing the payload, otherwise the original bytes.

        Raises:
            AssetNotFoundError: If the asset bytes cannot be located.
            AssetCorruptError: If the asset bytes cannot be read.
        """
        reason = self.resize_reason(asset)
        original = await self._assets.read(asset)

        if reason is None:
            LOGGER.debug(
                "Caching %s as-is (%sx%s, %d bytes)",
                asset.path,
                asset.width,
                asset.height,
                len(original),
            )
            return self._unmodified(asset, original)

        settings = self._settings.get()
        LOGGER.debug(
            "Resizing %s (%s) to %spx %s q=%s",
            asset.path,
            reason.value,
            settings.target_size,
            settings.format,
            settings.quality,
        )
        try:
            resized = await asyncio.to_thread(
                self._resizer.resize,
                original,
                size=settings.target_size,
                format=settings.format,
                quality=settings.quality,
            )
        except ResizeError as exc:
            LOGGER.warning("Resize failed for %s, caching original bytes: %s", asset.path, exc)
            return self._unmodified(asset, original)
        except Exception as exc:
            LOGGER.warning(
                "Resizer raised %s for %s, caching original bytes: %s",
                type(exc).__name__,
                asset.path,
                exc,
            )
            return self._unmodified(asset, original)

        if len(resized.data) > len(original):
            LOGGER.debug(
                "Resized %s is larger than the original (%d > %d bytes); keeping original",
                asset.path,
                len(resized.data),
                len(original),
            )
            return self._unmodified(asset, original)

        return ThumbnailCacheEntry.from_bytes(
            resized.data,
            format=resized.format,
            width=resized.width,
            height=resized.height,
            source_path=asset.path,
            resized=True,
            quality=settings.quality,
        )

    @staticmethod
    def _unmodified(asset: PreviewAsset, payload: bytes) -> ThumbnailCacheEntry:
        return ThumbnailCacheEntry.from_bytes(
            payload,
            format=asset.format,
            width=asset.width,
            height=asset.height,
            source_path=asset.path,
        )


__all__ = ["ThumbnailCacheAdapter"]
