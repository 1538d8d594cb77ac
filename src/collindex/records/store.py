"""JSON-directory primary store used by the CLI and local tooling."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator, Optional

from pydantic import ValidationError

from .errors import PrimaryStoreError, PrimaryStoreUnavailableError
from .models import PrimaryRecord

LOGGER = logging.getLogger(__name__)


class JsonDirectoryPrimaryStore:
    """Serve primary records stored as one ``<id>.json`` document per record."""

    def __init__(self, root: Path) -> None:
        """Initialize the store.

        Args:
            root: Directory containing the record documents.
        """
        self._root = root.expanduser()

    @property
    def root(self) -> Path:
        """Return the directory backing the store."""
        return self._root

    async def stream_all(self) -> AsyncIterator[PrimaryRecord]:
        """Yield live records in id order, one document at a time.

        Raises:
            PrimaryStoreUnavailableError: If the records directory is missing.
        """
        if not self._root.is_dir():
            raise PrimaryStoreUnavailableError(f"Records directory not found: {self._root}")

        for path in sorted(self._root.glob("*.json")):
            try:
                record = await asyncio.to_thread(self._load, path)
            except PrimaryStoreError as exc:
                LOGGER.error("Skipping unreadable record document %s: %s", path, exc)
                continue
            if record.deleted:
                continue
            yield record

    async def get_by_id(self, record_id: str) -> Optional[PrimaryRecord]:
        """Return the record stored for ``record_id``, or ``None`` when absent."""
        if not self._root.is_dir():
            raise PrimaryStoreUnavailableError(f"Records directory not found: {self._root}")
        path = self._root / f"{record_id}.json"
        if not path.exists():
            return None
        return await asyncio.to_thread(self._load, path)

    def write(self, record: PrimaryRecord) -> Path:
        """Persist ``record`` as a JSON document and return its path."""
        self._root.mkdir(parents=True, exist_ok=True)
        path = self._root / f"{record.id}.json"
        path.write_text(record.model_dump_json(indent=2), encoding="utf-8")
        return path

    def _load(self, path: Path) -> PrimaryRecord:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise PrimaryStoreError(f"Invalid record document {path.name}: {exc}") from exc
        try:
            return PrimaryRecord.model_validate(data)
        except ValidationError as exc:
            raise PrimaryStoreError(f"Invalid record document {path.name}: {exc}") from exc


__all__ = ["JsonDirectoryPrimaryStore"]
