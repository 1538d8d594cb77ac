"""Thumbnail preparation for the index hash map."""

from .adapter import ThumbnailCacheAdapter
from .models import ResizeReason, ThumbnailCacheEntry
from .resizer import ImageResizer, PillowResizer, ResizedImage, ResizeError
from .settings import ThumbnailSettingsProvider

__all__ = [
    "ImageResizer",
    "PillowResizer",
    "ResizeError",
    "ResizeReason",
    "ResizedImage",
    "ThumbnailCacheAdapter",
    "ThumbnailCacheEntry",
    "ThumbnailSettingsProvider",
]
