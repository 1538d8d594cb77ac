"""Index bookkeeping persisted in the key-value store."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Iterable, Optional, Sequence

from pydantic import ValidationError

from collindex.keys import IndexKeys

from .errors import MissingStateError, StateError
from .models import SCHEMA_VERSION, CollectionIndexState

LOGGER = logging.getLogger(__name__)


class StateStore:
    """Read and stage writes of ``CollectionIndexState`` records.

    Writes are staged onto a caller-owned pipeline so state updates travel in the
    same round trip as the index entries they describe.
    """

    def __init__(self, client: Any, keys: IndexKeys) -> None:
        """Initialize the store.

        Args:
            client: ``redis.asyncio`` client created with ``decode_responses=True``.
            keys: Key layout shared with the rest of the engine.
        """
        self._client = client
        self._keys = keys

    async def get(self, record_id: str) -> Optional[CollectionIndexState]:
        """Return the state for ``record_id`` or ``None`` when absent or unreadable."""
        raw = await self._client.get(self._keys.state(record_id))
        return self._decode_or_none(record_id, raw)

    async def load(self, record_id: str) -> CollectionIndexState:
        """Return the state for ``record_id``.

        Raises:
            MissingStateError: If no state is stored.
            StateError: If the stored payload cannot be parsed.
        """
        raw = await self._client.get(self._keys.state(record_id))
        if raw is None:
            raise MissingStateError(f"No index state stored for {record_id}")
        return self.decode(raw)

    async def get_many(
        self, record_ids: Sequence[str]
    ) -> dict[str, Optional[CollectionIndexState]]:
        """Fetch states for ``record_ids`` with a single multi-get.

        Args:
            record_ids: Identifiers to look up.

        Returns:
            dict[str, Optional[CollectionIndexState]]: State per id; ``None`` for
            ids without a readable state.
        """
        if not record_ids:
            return {}
        values = await self._client.mget([self._keys.state(rid) for rid in record_ids])
        return {
            record_id: self._decode_or_none(record_id, raw)
            for record_id, raw in zip(record_ids, values)
        }

    async def exists_many(self, record_ids: Sequence[str]) -> list[bool]:
        """Return whether a state key exists for each id, in order."""
        if not record_ids:
            return []
        values = await self._client.mget([self._keys.state(rid) for rid in record_ids])
        return [value is not None for value in values]

    async def iter_ids(self, *, count: int = 1000) -> AsyncIterator[str]:
        """Yield every record id present in the state keyspace using SCAN."""
        async for key in self._client.scan_iter(match=self._keys.state_pattern, count=count):
            yield self._keys.record_id_from_state_key(key)

    def stage_put(self, pipe: Any, state: CollectionIndexState) -> None:
        """Queue a write of ``state`` onto ``pipe``."""
        pipe.set(self._keys.state(state.record_id), state.model_dump_json())

    def stage_delete(self, pipe: Any, record_ids: Iterable[str]) -> None:
        """Queue deletion of the state keys for ``record_ids`` onto ``pipe``."""
        keys = [self._keys.state(record_id) for record_id in record_ids]
        if keys:
            pipe.delete(*keys)

    @staticmethod
    def decode(raw: str) -> CollectionIndexState:
        """Parse a stored state payload.

        Raises:
            StateError: If the payload is not a valid state document.
        """
        try:
            return CollectionIndexState.model_validate_json(raw)
        except ValidationError as exc:
            raise StateError(f"Invalid index state payload: {exc}") from exc

    def _decode_or_none(self, record_id: str, raw: Optional[str]) -> Optional[CollectionIndexState]:
        if raw is None:
            return None
        try:
            return self.decode(raw)
        except StateError as exc:
            LOGGER.warning("Ignoring unreadable index state for %s: %s", record_id, exc)
            return None


__all__ = [
    "StateStore",
    "CollectionIndexState",
    "SCHEMA_VERSION",
    "StateError",
    "MissingStateError",
]
