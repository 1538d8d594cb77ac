"""Classify primary records as needing a rebuild or safe to skip."""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional

from collindex.records.base import PrimaryStore
from collindex.records.models import PrimaryRecord
from collindex.state import SCHEMA_VERSION, CollectionIndexState, StateStore

from .errors import ConfigurationError, connectivity_guard
from .models import PlanAction, PlanItem, RebuildMode

LOGGER = logging.getLogger(__name__)

REASON_NEVER_INDEXED = "never indexed"
REASON_SOURCE_UPDATED = "source updated"
REASON_SCHEMA_CHANGED = "schema version changed"
REASON_FULL = "full rebuild"
REASON_FORCED = "forced rebuild"
REASON_UNCHANGED = "unchanged"


def stale_reason(record: PrimaryRecord, state: Optional[CollectionIndexState]) -> Optional[str]:
    """Return why ``record`` must be re-indexed given its stored state, or ``None``.

    A missing state always means a rebuild, even if index entries exist for the
    record, because nothing vouches for them.
    """
    if state is None:
        return REASON_NEVER_INDEXED
    if record.updated_at > state.source_updated_at:
        return REASON_SOURCE_UPDATED
    if state.schema_version != SCHEMA_VERSION:
        return REASON_SCHEMA_CHANGED
    return None


def thumbnail_drifted(record: PrimaryRecord, state: Optional[CollectionIndexState]) -> bool:
    """Return whether a cached thumbnail no longer matches the representative preview."""
    if state is None or not state.has_first_thumbnail:
        return False
    preview = record.representative_preview()
    current = preview.path if preview is not None else None
    return current != state.first_thumbnail_source_path


class RebuildPlanner:
    """Stream primary records in fixed-size batches and classify each one."""

    def __init__(
        self,
        store: PrimaryStore,
        state_store: StateStore,
        *,
        batch_size: int = 100,
    ) -> None:
        if batch_size <= 0:
            raise ConfigurationError("batch_size must be positive")
        self._store = store
        self._state = state_store
        self.batch_size = batch_size

    async def plan(self, mode: RebuildMode) -> AsyncIterator[List[PlanItem]]:
        """Yield classified batches for ``mode``.

        Only one batch of records and its states is held at a time; states are
        fetched with one multi-get per batch.

        Args:
            mode: ``changed_only``, ``full`` or ``force_rebuild_all``.

        Yields:
            List[PlanItem]: At most ``batch_size`` classified records.

        Raises:
            ConfigurationError: If ``mode`` is ``verify``.
            StoreConnectivityError: If either store becomes unreachable.
        """
        if mode is RebuildMode.VERIFY:
            raise ConfigurationError("verify mode is handled by the consistency verifier")

        buffer: List[PrimaryRecord] = []
        with connectivity_guard("streaming primary records"):
            async for record in self._store.stream_all():
                buffer.append(record)
                if len(buffer) >= self.batch_size:
                    yield await self.classify_batch(buffer, mode)
                    buffer = []
            if buffer:
                yield await self.classify_batch(buffer, mode)

    async def classify_batch(
        self, records: List[PrimaryRecord], mode: RebuildMode
    ) -> List[PlanItem]:
        """Classify ``records`` against their stored states."""
        if mode is RebuildMode.FULL:
            # Full rebuilds clear the keyspace first; there is nothing to compare.
            return [PlanItem(record, PlanAction.REBUILD, REASON_FULL) for record in records]

        with connectivity_guard("loading index state"):
            states = await self._state.get_many([record.id for record in records])

        items: List[PlanItem] = []
        for record in records:
            state = states.get(record.id)
            if mode is RebuildMode.FORCE_REBUILD_ALL:
                item = PlanItem(record, PlanAction.REBUILD, REASON_FORCED, state is not None)
            else:
                reason = stale_reason(record, state)
                if reason is None:
                    item = PlanItem(record, PlanAction.SKIP, REASON_UNCHANGED, True)
                else:
                    item = PlanItem(record, PlanAction.REBUILD, reason, state is not None)
            LOGGER.debug("%s -> %s (%s)", record.id, item.action.value, item.reason)
            items.append(item)
        return items


__all__ = [
    "RebuildPlanner",
    "stale_reason",
    "thumbnail_drifted",
    "REASON_NEVER_INDEXED",
    "REASON_SOURCE_UPDATED",
    "REASON_SCHEMA_CHANGED",
    "REASON_FULL",
    "REASON_FORCED",
    "REASON_UNCHANGED",
]
