"""Primary records and the collaborators that supply them."""

from .assets import Exact, FallbackByName, FilesystemAssetSource, MatchResult, NotFound
from .base import AssetSource, PrimaryStore
from .errors import (
    AssetCorruptError,
    AssetError,
    AssetNotFoundError,
    PrimaryStoreError,
    PrimaryStoreUnavailableError,
)
from .models import PreviewAsset, PrimaryRecord
from .store import JsonDirectoryPrimaryStore

__all__ = [
    "AssetCorruptError",
    "AssetError",
    "AssetNotFoundError",
    "AssetSource",
    "Exact",
    "FallbackByName",
    "FilesystemAssetSource",
    "JsonDirectoryPrimaryStore",
    "MatchResult",
    "NotFound",
    "PreviewAsset",
    "PrimaryRecord",
    "PrimaryStore",
    "PrimaryStoreError",
    "PrimaryStoreUnavailableError",
]
