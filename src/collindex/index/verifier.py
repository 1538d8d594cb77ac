"""Two-directional consistency check between the primary store and the index."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing
from typing import Any, AsyncIterator, List, Optional, Sequence, Set

from collindex.keys import IndexKeys, SortField
from collindex.memory import MemoryMonitor
from collindex.records.base import PrimaryStore
from collindex.records.errors import PrimaryStoreError, PrimaryStoreUnavailableError
from collindex.records.models import PrimaryRecord
from collindex.state import StateStore

from .errors import ConfigurationError, StoreConnectivityError, connectivity_guard
from .models import VerifyResult
from .planner import REASON_NEVER_INDEXED, stale_reason, thumbnail_drifted
from .writer import IndexWriter

LOGGER = logging.getLogger(__name__)


class ConsistencyVerifier:
    """Find and repair missing, outdated, and orphaned index entries.

    The forward phase streams the primary store in batches and repairs each
    batch before reading the next, so no more than one batch of records is held
    at a time. The reverse phase walks the state keyspace (and ordered-set
    members without state) and asks the primary store about each id.
    """

    def __init__(
        self,
        client: Any,
        keys: IndexKeys,
        store: PrimaryStore,
        state_store: StateStore,
        writer: IndexWriter,
        *,
        batch_size: int = 100,
        memory: Optional[MemoryMonitor] = None,
    ) -> None:
        if batch_size <= 0:
            raise ConfigurationError("batch_size must be positive")
        self._client = client
        self._keys = keys
        self._store = store
        self._state = state_store
        self._writer = writer
        self.batch_size = batch_size
        self._memory = memory

    async def verify(
        self,
        *,
        dry_run: bool = True,
        skip_thumbnails: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> VerifyResult:
        """Compare both stores and, unless ``dry_run``, repair the differences.

        Classification happens before any repair, so a dry run reports the same
        counts a repairing run would.

        Args:
            dry_run: Report drift without touching the index.
            skip_thumbnails: Passed through to the writer for repaired records.
            cancel_event: Checked between batches; a set event stops the run.

        Returns:
            VerifyResult: Drift classification, repair errors, and timing.

        Raises:
            StoreConnectivityError: If either store becomes unreachable. The
                partial result is attached as ``statistics``.
        """
        started = time.perf_counter()
        result = VerifyResult(dry_run=dry_run)
        try:
            await self._forward(result, dry_run, skip_thumbnails, cancel_event)
            if not result.cancelled:
                await self._reverse(result, cancel_event)
            if not result.cancelled and result.orphan_ids:
                await self._remove_orphans(result, dry_run)
            with connectivity_guard("counting index entries"):
                result.total_indexed = await self._client.zcard(self._keys.sorted_set())
        except StoreConnectivityError as exc:
            _tally(result)
            result.duration_ms = _elapsed_ms(started)
            exc.statistics = result
            LOGGER.error("Verify aborted: %s", exc)
            raise

        _tally(result)
        result.duration_ms = _elapsed_ms(started)
        if result.consistent:
            LOGGER.info("Index consistent (%d primary records)", result.total_primary)
        else:
            LOGGER.warning(
                "Drift detected: %d missing, %d outdated, %d thumbnail-stale, %d orphaned%s",
                len(result.missing_ids),
                len(result.outdated_ids),
                len(result.thumbnail_stale_ids),
                len(result.orphan_ids),
                " (dry run)" if dry_run else "",
            )
        return result

    async def remove(self, record_ids: Sequence[str]) -> List[str]:
        """Delete every index artifact of ``record_ids``, one transaction per id.

        Returns:
            List[str]: ``"<id>: <reason>"`` messages for ids that could not be removed.
        """
        errors: List[str] = []
        secondary_keys: Optional[List[str]] = None
        with connectivity_guard("removing orphaned entries"):
            for record_id in record_ids:
                state = await self._state.get(record_id)
                if state is not None:
                    targets = self._secondary_keys(state.library_id, state.collection_type)
                else:
                    # Without state the owning library and type are unknown; sweep them all.
                    if secondary_keys is None:
                        secondary_keys = await self._scan_secondary_keys()
                    targets = secondary_keys

                async with self._client.pipeline(transaction=True) as pipe:
                    for field in SortField:
                        pipe.zrem(self._keys.sorted_set(field), record_id)
                    for key in targets:
                        pipe.zrem(key, record_id)
                    pipe.hdel(self._keys.summaries, record_id)
                    pipe.hdel(self._keys.thumbnails, record_id)
                    self._state.stage_delete(pipe, [record_id])
                    replies = await pipe.execute(raise_on_error=False)

                failure = next((reply for reply in replies if isinstance(reply, Exception)), None)
                if failure is not None:
                    LOGGER.warning("Failed to remove %s from the index: %s", record_id, failure)
                    errors.append(f"{record_id}: remove failed: {failure}")
                else:
                    LOGGER.debug("Removed %s from the index", record_id)
        return errors

    def _secondary_keys(
        self, library_id: Optional[str], collection_type: Optional[str]
    ) -> List[str]:
        targets: List[str] = []
        for field in SortField:
            if library_id:
                targets.append(self._keys.library_sorted_set(library_id, field))
            if collection_type:
                targets.append(self._keys.type_sorted_set(collection_type, field))
        return targets

    async def _scan_secondary_keys(self) -> List[str]:
        keys: List[str] = []
        for pattern in (self._keys.library_pattern, self._keys.type_pattern):
            keys.extend([key async for key in self._client.scan_iter(match=pattern, count=1000)])
        return keys

    # ------------------------------------------------------------------ #
    # Phases                                                             #
    # ------------------------------------------------------------------ #

    async def _forward(
        self,
        result: VerifyResult,
        dry_run: bool,
        skip_thumbnails: bool,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        batch_number = 0
        async with aclosing(self._primary_batches()) as batches:
            async for records in batches:
                if _cancelled(cancel_event):
                    result.cancelled = True
                    LOGGER.warning("Verify cancelled during forward phase")
                    return
                batch_number += 1
                result.total_primary += len(records)
                with connectivity_guard("loading index state"):
                    states = await self._state.get_many([record.id for record in records])

                repairs: List[PrimaryRecord] = []
                for record in records:
                    state = states.get(record.id)
                    reason = stale_reason(record, state)
                    if reason == REASON_NEVER_INDEXED:
                        result.missing_ids.append(record.id)
                    elif reason is not None:
                        result.outdated_ids.append(record.id)
                    elif thumbnail_drifted(record, state):
                        result.thumbnail_stale_ids.append(record.id)
                    else:
                        continue
                    repairs.append(record)

                if repairs and dry_run:
                    result.repaired += len(repairs)
                elif repairs:
                    written = await self._writer.write_batch(
                        repairs, skip_thumbnails=skip_thumbnails
                    )
                    result.repaired += len(written.written)
                    result.errors.extend(failure.message for failure in written.failures)
                del records, states, repairs
                if self._memory is not None:
                    self._memory.reclaim(f"verify batch {batch_number}")

        LOGGER.info(
            "Forward phase: %d primary records, %d missing, %d outdated, %d thumbnail-stale",
            result.total_primary,
            len(result.missing_ids),
            len(result.outdated_ids),
            len(result.thumbnail_stale_ids),
        )

    async def _reverse(self, result: VerifyResult, cancel_event: Optional[asyncio.Event]) -> None:
        seen: Set[str] = set()
        async with aclosing(self._index_id_batches()) as batches:
            async for ids in batches:
                if _cancelled(cancel_event):
                    result.cancelled = True
                    LOGGER.warning("Verify cancelled during reverse phase")
                    return
                for record_id in await self._find_orphans(ids, result):
                    if record_id not in seen:
                        seen.add(record_id)
                        result.orphan_ids.append(record_id)
        LOGGER.info("Reverse phase: %d orphaned entries", len(result.orphan_ids))

    async def _remove_orphans(self, result: VerifyResult, dry_run: bool) -> None:
        if dry_run:
            result.orphans_removed = len(result.orphan_ids)
            return
        failures = await self.remove(result.orphan_ids)
        result.orphans_removed = len(result.orphan_ids) - len(failures)
        result.errors.extend(failures)

    async def _find_orphans(self, ids: List[str], result: VerifyResult) -> List[str]:
        semaphore = asyncio.Semaphore(self._writer.concurrency)

        async def lookup(record_id: str) -> Optional[PrimaryRecord]:
            async with semaphore:
                return await self._store.get_by_id(record_id)

        orphans: List[str] = []
        with connectivity_guard("looking up primary records"):
            outcomes = await asyncio.gather(
                *(lookup(record_id) for record_id in ids), return_exceptions=True
            )
            for record_id, outcome in zip(ids, outcomes):
                if isinstance(outcome, PrimaryStoreUnavailableError):
                    raise outcome
                if isinstance(outcome, PrimaryStoreError):
                    # An unreadable document still exists, so its entry is not an orphan.
                    LOGGER.warning("Could not read primary record %s: %s", record_id, outcome)
                    result.errors.append(f"{record_id}: {outcome}")
                elif isinstance(outcome, BaseException):
                    raise outcome
                elif outcome is None or outcome.deleted:
                    orphans.append(record_id)
        return orphans

    # ------------------------------------------------------------------ #
    # Streams                                                            #
    # ------------------------------------------------------------------ #

    async def _primary_batches(self) -> AsyncIterator[List[PrimaryRecord]]:
        buffer: List[PrimaryRecord] = []
        with connectivity_guard("streaming primary records"):
            async for record in self._store.stream_all():
                buffer.append(record)
                if len(buffer) >= self.batch_size:
                    yield buffer
                    buffer = []
        if buffer:
            yield buffer

    async def _index_id_batches(self) -> AsyncIterator[List[str]]:
        """Yield batches of ids known to the index.

        State keys come first; ordered-set members follow only when they have no
        state key, so entries written without bookkeeping are still checked.
        """
        buffer: List[str] = []
        with connectivity_guard("scanning index state"):
            async for record_id in self._state.iter_ids():
                buffer.append(record_id)
                if len(buffer) >= self.batch_size:
                    yield buffer
                    buffer = []
            if buffer:
                yield buffer
                buffer = []

            members: List[str] = []
            async for member, _score in self._client.zscan_iter(
                self._keys.sorted_set(), count=1000
            ):
                members.append(member)
                if len(members) >= self.batch_size:
                    untracked = await self._untracked(members)
                    if untracked:
                        yield untracked
                    members = []
            if members:
                untracked = await self._untracked(members)
                if untracked:
                    yield untracked

    async def _untracked(self, members: List[str]) -> List[str]:
        exists = await self._state.exists_many(members)
        return [member for member, present in zip(members, exists) if not present]


def _cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _tally(result: VerifyResult) -> None:
    result.added = len(result.missing_ids)
    result.updated = len(result.outdated_ids) + len(result.thumbnail_stale_ids)
    result.removed = len(result.orphan_ids)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


__all__ = ["ConsistencyVerifier"]
