"""Errors raised by primary-store and asset-source collaborators."""


class AssetError(Exception):
    """Base exception for preview asset retrieval."""


class AssetNotFoundError(AssetError):
    """Raised when an asset reference cannot be resolved to bytes."""


class AssetCorruptError(AssetError):
    """Raised when asset bytes exist but cannot be read or decoded."""


class PrimaryStoreError(Exception):
    """Base exception for primary store access."""


class PrimaryStoreUnavailableError(PrimaryStoreError):
    """Raised when the primary store cannot be reached at all."""
