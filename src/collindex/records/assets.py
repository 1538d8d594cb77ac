"""Filesystem-backed preview asset source."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .errors import AssetCorruptError, AssetNotFoundError
from .models import PreviewAsset

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Exact:
    """The asset reference resolved to the stored path."""

    path: Path


@dataclass(frozen=True, slots=True)
class FallbackByName:
    """The stored path is gone; a file with the same name was found nearby."""

    path: Path
    original: Path


@dataclass(frozen=True, slots=True)
class NotFound:
    """Neither the stored path nor a same-name file exists."""

    original: Path


MatchResult = Union[Exact, FallbackByName, NotFound]


class FilesystemAssetSource:
    """Read preview bytes from disk, resolving stale paths explicitly."""

    def __init__(self, root: Optional[Path] = None, *, fallback_by_name: bool = True) -> None:
        """Initialize the source.

        Args:
            root: Base directory for relative asset paths.
            fallback_by_name: Whether to search the parent directory for a
                case-insensitive filename match when the exact path is missing.
        """
        self._root = root.expanduser() if root is not None else None
        self._fallback_by_name = fallback_by_name

    def resolve(self, reference: str) -> MatchResult:
        """Resolve ``reference`` to a concrete file.

        Args:
            reference: Stored asset path, absolute or relative to the root.

        Returns:
            MatchResult: Exact match, same-name fallback, or not found.
        """
        original = Path(reference).expanduser()
        if not original.is_absolute() and self._root is not None:
            original = self._root / original

        if original.is_file():
            return Exact(original)

        if self._fallback_by_name and original.parent.is_dir():
            wanted = original.name.casefold()
            for candidate in sorted(original.parent.iterdir()):
                if candidate.is_file() and candidate.name.casefold() == wanted:
                    return FallbackByName(candidate, original)

        return NotFound(original)

    async def read(self, asset: PreviewAsset) -> bytes:
        """Return the bytes for ``asset``.

        Raises:
            AssetNotFoundError: If the path cannot be resolved.
            AssetCorruptError: If the file cannot be read or is empty.
        """
        match = await asyncio.to_thread(self.resolve, asset.path)
        if isinstance(match, NotFound):
            raise AssetNotFoundError(f"Asset not found: {match.original}")
        if isinstance(match, FallbackByName):
            LOGGER.warning(
                "Asset %s missing; using same-name fallback %s", match.original, match.path
            )

        try:
            data = await asyncio.to_thread(match.path.read_bytes)
        except OSError as exc:
            raise AssetCorruptError(f"Unable to read asset {match.path}: {exc}") from exc
        if not data:
            raise AssetCorruptError(f"Asset {match.path} is empty")
        return data


__all__ = ["Exact", "FallbackByName", "NotFound", "MatchResult", "FilesystemAssetSource"]
